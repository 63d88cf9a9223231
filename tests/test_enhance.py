import cv2
import numpy as np

import enhance
from enhance import FrameEnhancer
from models import Frame


def _frame(brightness):
    return Frame(image=np.full((20, 30, 3), 50, dtype=np.uint8), brightness=brightness)


def test_dark_frame_is_boosted_without_touching_input():
    frame = _frame(0.3)
    before = frame.image.copy()

    out = FrameEnhancer().enhance(frame, 0.3)

    assert out is not frame
    assert out.image is not frame.image
    assert np.array_equal(frame.image, before)
    assert out.image.mean() > frame.image.mean()
    assert out.timestamp == frame.timestamp


def test_bright_frame_passes_through():
    frame = _frame(0.8)
    assert FrameEnhancer().enhance(frame, 0.8) is frame


def test_threshold_itself_is_not_enhanced():
    frame = _frame(0.5)
    assert FrameEnhancer(threshold=0.5).enhance(frame, 0.5) is frame


def test_missing_brightness_counts_as_zero():
    frame = _frame(None)
    out = FrameEnhancer().enhance(frame)
    assert out is not frame


def test_transform_error_returns_original(monkeypatch):
    def boom(*args, **kwargs):
        raise cv2.error("boom")

    monkeypatch.setattr(enhance.cv2, "convertScaleAbs", boom)
    frame = _frame(0.1)
    assert FrameEnhancer().enhance(frame, 0.1) is frame
