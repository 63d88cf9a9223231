"""Multi-strategy decoding for detector candidates.

QR candidates: WeChat QR (CNN detector, tolerant of perspective) only.
Linear candidates: pyzbar with no hints -> deskew -> zxingcpp with the full
format set and rotate/downscale/invert retries.
"""

import logging
import time
from pathlib import Path

import cv2
import numpy as np
import zxingcpp
from pyzbar.pyzbar_error import PyZbarError

from models import DecodeResult, DetectionCandidate, Symbology
from rotation import RotationCorrector

logger = logging.getLogger("scanner")

QR_LABEL = "QR Code"

# zxingcpp format names covering matrix, linear and stacked symbologies
PERMISSIVE_FORMATS = (
    "Aztec", "Codabar", "Code39", "Code93", "Code128",
    "DataMatrix", "EAN8", "EAN13", "ITF", "MaxiCode",
    "PDF417", "QRCode", "MicroQRCode", "DataBar", "DataBarExpanded",
    "UPCA", "UPCE",
)

FRIENDLY_FORMAT = {
    # zxingcpp names
    "Aztec": "Aztec",
    "Codabar": "CODABAR",
    "Code39": "Code 39",
    "Code93": "Code 93",
    "Code128": "Code 128",
    "DataMatrix": "Data Matrix",
    "EAN8": "EAN-8",
    "EAN13": "EAN-13",
    "ITF": "ITF",
    "MaxiCode": "MaxiCode",
    "PDF417": "PDF417",
    "QRCode": QR_LABEL,
    "MicroQRCode": QR_LABEL,
    "DataBar": "RSS 14",
    "DataBarExpanded": "RSS EXPANDED",
    "UPCA": "UPC-A",
    "UPCE": "UPC-E",
    # pyzbar / zbar names
    "CODABAR": "CODABAR",
    "CODE39": "Code 39",
    "CODE93": "Code 93",
    "CODE128": "Code 128",
    "I25": "ITF",
    "QRCODE": QR_LABEL,
    "DATABAR": "RSS 14",
    "DATABAR_EXP": "RSS EXPANDED",
}


def friendly_format(fmt) -> str:
    name = getattr(fmt, "name", None) or str(fmt)
    name = name.replace("BarcodeFormat.", "")
    return FRIENDLY_FORMAT.get(name, name)


def _to_gray(frame: np.ndarray) -> np.ndarray:
    if len(frame.shape) == 3:
        if frame.shape[2] == 4:
            return cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return frame


def _as_bgr(image: np.ndarray) -> np.ndarray:
    if len(image.shape) == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


class WeChatQRDecoder:
    """QR decoder backed by OpenCV's WeChat QR module (opencv-contrib).

    With ``model_dir`` the CNN detector and SR models are used, otherwise the
    module runs with its traditional detector.
    """

    def __init__(self, model_dir: str = ""):
        self.model_dir = model_dir
        self._detector = None

    def _get_detector(self):
        if self._detector is None:
            base = Path(self.model_dir) if self.model_dir else None
            if base is not None and (base / "detect.prototxt").is_file():
                self._detector = cv2.wechat_qrcode_WeChatQRCode(
                    str(base / "detect.prototxt"), str(base / "detect.caffemodel"),
                    str(base / "sr.prototxt"), str(base / "sr.caffemodel"),
                )
            else:
                self._detector = cv2.wechat_qrcode_WeChatQRCode()
        return self._detector

    def decode(self, image: np.ndarray) -> DecodeResult | None:
        try:
            texts, _points = self._get_detector().detectAndDecode(_as_bgr(image))
        except cv2.error as e:
            logger.debug("WeChat QR decode error: %s", e)
            return None
        for text in texts:
            if text:
                return DecodeResult(True, text, QR_LABEL, image, strategy="wechat")
        return None


class OpenCVQRDecoder:
    """Plain cv2.QRCodeDetector, for OpenCV builds without the contrib modules."""

    def __init__(self):
        self._detector = cv2.QRCodeDetector()

    def decode(self, image: np.ndarray) -> DecodeResult | None:
        try:
            retval, decoded_info, _points, _ = self._detector.detectAndDecodeMulti(_to_gray(image))
        except cv2.error as e:
            logger.debug("OpenCV QR decode error: %s", e)
            return None
        if retval:
            for text in decoded_info:
                if text:
                    return DecodeResult(True, text, QR_LABEL, image, strategy="opencv")
        return None


class PyzbarDecoder:
    """Fast zbar decode over every symbology zbar knows (no hints)."""

    def __init__(self):
        self._decode = None

    def decode(self, image: np.ndarray) -> DecodeResult | None:
        try:
            if self._decode is None:
                # Loaded on first use; pyzbar needs the zbar shared library
                from pyzbar.pyzbar import decode as pyzbar_decode

                self._decode = pyzbar_decode
            results = self._decode(_to_gray(image))
        except (PyZbarError, ImportError, OSError) as e:
            logger.debug("pyzbar decode error: %s", e)
            return None
        for r in results:
            text = r.data.decode("utf-8", errors="replace")
            if text:
                return DecodeResult(True, text, friendly_format(r.type), image, strategy="pyzbar")
        return None


def build_format_hints(names=PERMISSIVE_FORMATS) -> tuple:
    return tuple(getattr(zxingcpp.BarcodeFormat, n) for n in names if hasattr(zxingcpp.BarcodeFormat, n))


class ZxingDecoder:
    """zxingcpp reader restricted to a hint set, trying rotated, downscaled and inverted variants."""

    def __init__(self, format_names=PERMISSIVE_FORMATS):
        self.hints = build_format_hints(format_names)

    def _read(self, gray: np.ndarray, hints):
        return zxingcpp.read_barcodes(
            gray, formats=hints, try_rotate=True, try_downscale=True, try_invert=True
        )

    def decode(self, image: np.ndarray, hints=None) -> DecodeResult | None:
        try:
            results = self._read(_to_gray(image), self.hints if hints is None else hints)
        except (RuntimeError, ValueError) as e:
            logger.debug("zxingcpp decode error: %s", e)
            return None
        for r in results:
            if r.text:
                return DecodeResult(True, r.text, friendly_format(r.format), image, strategy="zxing")
        return None


class MultiStrategyDecoder:
    """Runs the per-symbology decode chain, stopping on the first hit."""

    def __init__(
        self,
        qr_decoder=None,
        native_decoder=None,
        permissive_decoder=None,
        rotation_corrector: RotationCorrector | None = None,
    ):
        self.qr_decoder = qr_decoder if qr_decoder is not None else WeChatQRDecoder()
        self.native_decoder = native_decoder if native_decoder is not None else PyzbarDecoder()
        self.permissive_decoder = (
            permissive_decoder if permissive_decoder is not None else ZxingDecoder()
        )
        self.rotation_corrector = rotation_corrector or RotationCorrector()

    def decode(self, candidate: DetectionCandidate, image: np.ndarray) -> DecodeResult:
        if image is None or image.size == 0:
            return DecodeResult.failed(image)
        if candidate.symbology == Symbology.QR:
            return self._decode_qr(image)
        return self._decode_linear(image)

    def _decode_qr(self, image: np.ndarray) -> DecodeResult:
        result = self.qr_decoder.decode(image)
        if result is None or not result.text:
            logger.debug("QR decoder found nothing")
            return DecodeResult.failed(image)
        return self._stamp(result)

    def _decode_linear(self, image: np.ndarray) -> DecodeResult:
        result = self.native_decoder.decode(image)
        if result is not None and result.text:
            return self._stamp(result)

        logger.debug("Native decode missed, deskewing")
        rotated = self.rotation_corrector.deskew(image)
        result = self.permissive_decoder.decode(rotated)
        if result is not None and result.text:
            logger.debug("Decoded after deskew (%.1f deg)", self.rotation_corrector.last_angle)
            return self._stamp(result)
        return DecodeResult.failed(rotated)

    @staticmethod
    def _stamp(result: DecodeResult) -> DecodeResult:
        result.success = True
        result.completed_at = time.time()
        return result
