import math

import pytest

from distance import DistanceClassifier
from models import DistanceClass, Symbology

PREVIEW = (1000, 1000)
EPS = 1e-6


def _side_for_ratio(ratio):
    return math.sqrt(ratio * PREVIEW[0] * PREVIEW[1])


@pytest.mark.parametrize("symbology,ratio", [(Symbology.QR, 0.04), (Symbology.LINEAR, 0.06)])
def test_boundary_is_near_inclusive(symbology, ratio):
    clf = DistanceClassifier(qr_ratio=0.04, linear_ratio=0.06)
    w = ratio * PREVIEW[0] * PREVIEW[1] / 100.0

    assert clf.classify(symbology, w, 100, *PREVIEW) == DistanceClass.NEAR
    assert clf.classify(symbology, w * (1 + EPS), 100, *PREVIEW) == DistanceClass.NEAR
    assert clf.classify(symbology, w * (1 - EPS), 100, *PREVIEW) == DistanceClass.FAR


def test_thresholds_differ_per_symbology():
    clf = DistanceClassifier(qr_ratio=0.04, linear_ratio=0.06)
    side = _side_for_ratio(0.05)

    assert clf.classify(Symbology.QR, side, side, *PREVIEW) == DistanceClass.NEAR
    assert clf.classify(Symbology.LINEAR, side, side, *PREVIEW) == DistanceClass.FAR


def test_zero_preview_is_far():
    clf = DistanceClassifier()
    assert clf.classify(Symbology.QR, 50, 50, 0, 0) == DistanceClass.FAR


def test_area_ratio():
    assert DistanceClassifier.area_ratio(10, 20, 100, 100) == pytest.approx(0.02)
