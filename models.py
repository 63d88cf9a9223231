"""Data types shared by the scan pipeline stages."""

import enum
import time
from dataclasses import dataclass, field

import numpy as np


class Symbology(str, enum.Enum):
    QR = "QR"
    LINEAR = "Linear"


class DistanceClass(str, enum.Enum):
    NEAR = "Near"
    FAR = "Far"


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    w: float
    h: float

    @property
    def area(self) -> float:
        return self.w * self.h

    @property
    def max_x(self) -> float:
        return self.x + self.w

    @property
    def max_y(self) -> float:
        return self.y + self.h

    def scaled(self, sx: float, sy: float) -> "Rect":
        return Rect(self.x * sx, self.y * sy, self.w * sx, self.h * sy)


@dataclass
class Frame:
    """One captured BGR frame.

    brightness is the capture brightness metric; None means the source did not
    report one and is treated as 0.
    """

    image: np.ndarray
    timestamp: float = field(default_factory=time.time)
    brightness: float | None = None

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def brightness_value(self) -> float:
        return 0.0 if self.brightness is None else float(self.brightness)


@dataclass(frozen=True)
class DetectionCandidate:
    symbology: Symbology
    confidence: float
    rect: Rect  # preview coordinates
    crop: np.ndarray

    @property
    def crop_width(self) -> int:
        return int(self.crop.shape[1]) if self.crop.ndim >= 2 else 0

    @property
    def crop_height(self) -> int:
        return int(self.crop.shape[0]) if self.crop.ndim >= 2 else 0


@dataclass
class DecodeResult:
    success: bool
    text: str = ""
    symbology: str = ""
    image: np.ndarray | None = None
    strategy: str = ""
    completed_at: float = field(default_factory=time.time)

    @classmethod
    def failed(cls, image: np.ndarray | None = None) -> "DecodeResult":
        return cls(success=False, image=image)


@dataclass
class CandidateTimings:
    classify_ms: float = 0.0
    upscale_ms: float = 0.0
    super_resolution_ms: float = 0.0
    decode_ms: float = 0.0


@dataclass
class PipelineRun:
    """Everything produced while processing a single frame."""

    frame_index: int
    captured_at: float
    candidates: list[DetectionCandidate] = field(default_factory=list)
    distances: list[DistanceClass] = field(default_factory=list)
    results: list[DecodeResult] = field(default_factory=list)
    candidate_timings: list[CandidateTimings] = field(default_factory=list)
    enhanced: bool = False
    enhancement_ms: float = 0.0
    detection_ms: float = 0.0
    total_ms: float = 0.0
    skipped_candidates: int = 0

    @property
    def successes(self) -> int:
        return sum(1 for r in self.results if r.success)

    def timings(self) -> dict:
        return {
            "enhancement_ms": round(self.enhancement_ms, 2),
            "detection_ms": round(self.detection_ms, 2),
            "total_ms": round(self.total_ms, 2),
            "candidates": [
                {
                    "upscale_ms": round(t.upscale_ms, 2),
                    "super_resolution_ms": round(t.super_resolution_ms, 2),
                    "decode_ms": round(t.decode_ms, 2),
                }
                for t in self.candidate_timings
            ],
        }


# RGBA colours for overlay boxes
SUCCESS_COLOR = (0x07, 0xC1, 0x60, 255)
NO_RESULT_COLOR = (0, 0, 0, 0)


@dataclass(frozen=True)
class OverlayDescriptor:
    label: str
    rect: Rect
    color: tuple[int, int, int, int]
    font_size: float
    success: bool


class PipelineCounters:
    """Successful-detection counter; it can only go up."""

    def __init__(self):
        self._successful = 0

    @property
    def successful_detection_count(self) -> int:
        return self._successful

    def record_success(self) -> int:
        self._successful += 1
        return self._successful


@dataclass
class PipelineContext:
    """Per-pipeline state: counters plus the latest diagnostic snapshots.

    Only the pipeline worker writes here. Readers get copies through
    ``snapshot()``.
    """

    counters: PipelineCounters = field(default_factory=PipelineCounters)
    frame_count: int = 0
    images: dict[str, np.ndarray] = field(default_factory=dict)
    image_times: dict[str, float] = field(default_factory=dict)

    def record_image(self, name: str, image: np.ndarray):
        self.images[name] = image.copy()
        self.image_times[name] = time.time()

    @property
    def last_original_image(self) -> np.ndarray | None:
        image = self.images.get("original")
        return None if image is None else image.copy()

    def snapshot(self) -> dict:
        return {
            "successful_detection_count": self.counters.successful_detection_count,
            "frame_count": self.frame_count,
            "images": {k: v.copy() for k, v in self.images.items()},
            "image_times": dict(self.image_times),
        }
