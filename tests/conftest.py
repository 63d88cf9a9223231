"""Test configuration.

Ensure the project root is on sys.path so tests can import the top-level
modules when executed from different working directories.
"""

import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from models import DecodeResult, DetectionCandidate, Frame, Rect, Symbology  # noqa: E402


class FakeDetector:
    def __init__(self, candidates=None, exc=None):
        self.candidates = candidates or []
        self.exc = exc
        self.calls = []

    def detect(self, frame, preview_size):
        self.calls.append((frame, preview_size))
        if self.exc is not None:
            raise self.exc
        return list(self.candidates)


class FakeDecoder:
    """Stands in for a single decode strategy; returns the queued results in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.images = []

    def decode(self, image, hints=None):
        self.images.append(image)
        if not self.results:
            return None
        return self.results.pop(0)


class FakeSuperResolution:
    def __init__(self, output=None):
        self.output = output
        self.inputs = []

    def enhance(self, image):
        self.inputs.append(image)
        return self.output


class FakeRotation:
    def __init__(self, angle=0.0):
        self.angle = angle
        self.last_angle = 0.0
        self.inputs = []

    def deskew(self, image):
        self.inputs.append(image)
        self.last_angle = self.angle
        return image


class FakeFeedback:
    def __init__(self):
        self.count = 0

    def notify_success(self):
        self.count += 1


def make_candidate(symbology=Symbology.QR, rect=(100, 100, 40, 40), crop_shape=(40, 40, 3), confidence=0.9):
    crop = np.full(crop_shape, 200, dtype=np.uint8)
    return DetectionCandidate(symbology=symbology, confidence=confidence, rect=Rect(*rect), crop=crop)


def make_frame(brightness=0.8, shape=(480, 640, 3), value=120):
    return Frame(image=np.full(shape, value, dtype=np.uint8), timestamp=1.0, brightness=brightness)


def ok(text, label):
    return DecodeResult(success=True, text=text, symbology=label)


@pytest.fixture
def blank_frame():
    return make_frame()
