"""Near/Far decision from crop size relative to the preview."""

import logging

from models import DistanceClass, Symbology

logger = logging.getLogger("scanner")

# Crop area / preview area below which a code counts as far away.
# QR codes are square and fill more of their box than elongated barcodes.
QR_FAR_RATIO = 0.04
LINEAR_FAR_RATIO = 0.06


class DistanceClassifier:
    def __init__(self, qr_ratio: float = QR_FAR_RATIO, linear_ratio: float = LINEAR_FAR_RATIO):
        self._thresholds = {
            Symbology.QR: qr_ratio,
            Symbology.LINEAR: linear_ratio,
        }

    def threshold(self, symbology: Symbology) -> float:
        return self._thresholds[Symbology(symbology)]

    @staticmethod
    def area_ratio(crop_w: float, crop_h: float, preview_w: float, preview_h: float) -> float:
        preview_area = preview_w * preview_h
        if preview_area <= 0:
            return 0.0
        return (crop_w * crop_h) / preview_area

    def classify(
        self,
        symbology: Symbology,
        crop_w: float,
        crop_h: float,
        preview_w: float,
        preview_h: float,
    ) -> DistanceClass:
        """Far when the ratio is strictly below the class threshold, else Near."""
        ratio = self.area_ratio(crop_w, crop_h, preview_w, preview_h)
        distance = DistanceClass.FAR if ratio < self.threshold(symbology) else DistanceClass.NEAR
        logger.debug("%s crop ratio %.4f -> %s", Symbology(symbology).value, ratio, distance.value)
        return distance
