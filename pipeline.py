"""Per-frame orchestration: enhance -> detect -> classify -> upscale -> decode.

One frame is processed at a time. ``offer`` refuses a frame while another run
is in flight, so the frame source can drop it. Every admitted frame after
warm-up ends with decode callbacks plus a single overlay update.
"""

import logging
import threading
import time
from typing import Callable

from decoder import MultiStrategyDecoder, OpenCVQRDecoder, PyzbarDecoder, WeChatQRDecoder, ZxingDecoder
from detection import GradientDetector, YoloDetector
from distance import LINEAR_FAR_RATIO, QR_FAR_RATIO, DistanceClassifier
from enhance import FrameEnhancer
from models import (
    NO_RESULT_COLOR,
    SUCCESS_COLOR,
    CandidateTimings,
    DecodeResult,
    DetectionCandidate,
    DistanceClass,
    Frame,
    OverlayDescriptor,
    PipelineContext,
    PipelineRun,
    Rect,
)
from rotation import RotationCorrector
from upscale import ImageUpscaler, SuperResolution

logger = logging.getLogger("scanner")

WARMUP_FRAMES = 5
EDGE_OFFSET = 2.0
FONT_SIZE = 14.0

DecodeCallback = Callable[[str, str], None]
OverlayCallback = Callable[[list[OverlayDescriptor]], None]


def _ms_since(t0: float) -> float:
    return (time.perf_counter() - t0) * 1000


class ScanPipeline:
    def __init__(
        self,
        detector,
        decoder: MultiStrategyDecoder,
        upscaler: ImageUpscaler | None = None,
        enhancer: FrameEnhancer | None = None,
        classifier: DistanceClassifier | None = None,
        on_decode_result: DecodeCallback | None = None,
        on_overlay_update: OverlayCallback | None = None,
        feedback=None,
        production: bool = False,
        warmup_frames: int = WARMUP_FRAMES,
        preview_size: tuple[int, int] | None = None,
        context: PipelineContext | None = None,
    ):
        self.detector = detector
        self.decoder = decoder
        self.upscaler = upscaler or ImageUpscaler()
        self.enhancer = enhancer or FrameEnhancer()
        self.classifier = classifier or DistanceClassifier()
        self.on_decode_result = on_decode_result
        self.on_overlay_update = on_overlay_update
        self.feedback = feedback
        self.production = production
        self.warmup_frames = warmup_frames
        self.preview_size = preview_size
        self.context = context or PipelineContext()
        self._busy = threading.Lock()

    @property
    def successful_detection_count(self) -> int:
        return self.context.counters.successful_detection_count

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def offer(self, frame: Frame) -> PipelineRun | None:
        """Process ``frame`` unless a run is already in flight.

        Returns None both for refused frames and for warm-up frames.
        """
        if not self._busy.acquire(blocking=False):
            logger.debug("Pipeline busy, frame refused")
            return None
        try:
            return self._process(frame)
        finally:
            self._busy.release()

    def process(self, frame: Frame) -> PipelineRun | None:
        """Blocking variant of ``offer`` for callers that never overlap."""
        with self._busy:
            return self._process(frame)

    # -- internals --------------------------------------------------------

    def _process(self, frame: Frame) -> PipelineRun | None:
        ctx = self.context
        ctx.frame_count += 1
        if ctx.frame_count <= self.warmup_frames:
            logger.debug("Warm-up frame %d/%d discarded", ctx.frame_count, self.warmup_frames)
            return None

        t_start = time.perf_counter()
        run = PipelineRun(frame_index=ctx.frame_count, captured_at=frame.timestamp)
        ctx.record_image("original", frame.image)

        t0 = time.perf_counter()
        enhanced = self.enhancer.enhance(frame, frame.brightness_value)
        run.enhancement_ms = _ms_since(t0)
        run.enhanced = enhanced is not frame
        if run.enhanced:
            ctx.record_image("brightness_applied", enhanced.image)

        preview_size = self.preview_size or (frame.width, frame.height)
        t0 = time.perf_counter()
        candidates = self._detect(enhanced, preview_size)
        run.detection_ms = _ms_since(t0)

        valid = []
        for candidate in candidates:
            if self._is_degenerate(candidate, preview_size):
                logger.debug("Skipping degenerate candidate %s", candidate.rect)
                run.skipped_candidates += 1
                continue
            valid.append(candidate)

        if not valid:
            self._emit_result("", "")
            self._emit_overlays([])
            run.total_ms = _ms_since(t_start)
            return run

        overlays = []
        for candidate in valid:
            timings = CandidateTimings()
            distance, result = self._process_candidate(candidate, preview_size, timings)
            run.candidates.append(candidate)
            run.distances.append(distance)
            run.results.append(result)
            run.candidate_timings.append(timings)

            if result.success:
                self._on_success(result)
            self._emit_result(result.text, result.symbology)
            overlays.append(self.build_overlay(candidate, result, preview_size))

        self._emit_overlays(overlays)
        run.total_ms = _ms_since(t_start)
        return run

    def _detect(self, frame: Frame, preview_size: tuple[int, int]) -> list[DetectionCandidate]:
        try:
            candidates = self.detector.detect(frame, preview_size)
        except Exception:
            logger.exception("Detector failed, treating frame as empty")
            return []
        return list(candidates or [])

    @staticmethod
    def _is_degenerate(candidate: DetectionCandidate, preview_size: tuple[int, int]) -> bool:
        rect = candidate.rect
        if rect.w <= 0 or rect.h <= 0:
            return True
        if candidate.crop is None or candidate.crop.size == 0:
            return True
        pw, ph = preview_size
        return rect.max_x <= 0 or rect.max_y <= 0 or rect.x >= pw or rect.y >= ph

    def _process_candidate(
        self,
        candidate: DetectionCandidate,
        preview_size: tuple[int, int],
        timings: CandidateTimings,
    ) -> tuple[DistanceClass, DecodeResult]:
        t0 = time.perf_counter()
        distance = self.classifier.classify(
            candidate.symbology,
            candidate.crop_width,
            candidate.crop_height,
            preview_size[0],
            preview_size[1],
        )
        timings.classify_ms = _ms_since(t0)

        try:
            stages = {}
            image = self.upscaler.upscale(candidate.crop, candidate.symbology, distance, timings, stages)
            suffix = candidate.symbology.value.lower()
            for stage, stage_image in stages.items():
                self.context.record_image(f"{stage}_{suffix}", stage_image)

            t0 = time.perf_counter()
            result = self.decoder.decode(candidate, image)
            timings.decode_ms = _ms_since(t0)
        except Exception:
            logger.exception("Candidate processing failed")
            result = DecodeResult.failed(candidate.crop)
        return distance, result

    def _on_success(self, result: DecodeResult):
        count = self.context.counters.record_success()
        logger.info("=== %s DECODED: %s (total %d)", result.symbology, result.text[:120], count)
        if self.feedback is not None and not self.production:
            try:
                self.feedback.notify_success()
            except Exception as e:
                logger.debug("Feedback trigger failed: %s", e)

    def build_overlay(
        self,
        candidate: DetectionCandidate,
        result: DecodeResult,
        preview_size: tuple[int, int],
    ) -> OverlayDescriptor:
        confidence = int(candidate.confidence * 100.0)
        label = f"{candidate.symbology.value}  ({confidence}%)"
        return OverlayDescriptor(
            label=label,
            rect=clamp_rect(candidate.rect, preview_size),
            color=SUCCESS_COLOR if result.success else NO_RESULT_COLOR,
            font_size=FONT_SIZE,
            success=result.success,
        )

    def _emit_result(self, text: str, symbology: str):
        if self.on_decode_result is None:
            return
        try:
            self.on_decode_result(text, symbology)
        except Exception:
            logger.exception("Decode result callback failed")

    def _emit_overlays(self, overlays: list[OverlayDescriptor]):
        if self.on_overlay_update is None:
            return
        try:
            self.on_overlay_update(list(overlays))
        except Exception:
            logger.exception("Overlay callback failed")


def clamp_rect(rect: Rect, preview_size: tuple[int, int], offset: float = EDGE_OFFSET) -> Rect:
    """Keep a detection box inside the preview bounds."""
    pw, ph = preview_size
    x, y, w, h = rect.x, rect.y, rect.w, rect.h
    if x < 0:
        w += x - offset
        x = offset
    if y < 0:
        h += y - offset
        y = offset
    if x + w > pw:
        w = pw - x - offset
    if y + h > ph:
        h = ph - y - offset
    return Rect(x, y, max(w, 0.0), max(h, 0.0))


def build_pipeline(
    config: dict,
    detector=None,
    on_decode_result: DecodeCallback | None = None,
    on_overlay_update: OverlayCallback | None = None,
    feedback=None,
) -> ScanPipeline:
    """Wire a ScanPipeline from a config dict (see config.json)."""
    if detector is None:
        if config.get("detector", "gradient") == "yolo":
            detector = YoloDetector(
                config["yolo_model_path"],
                min_confidence=config.get("min_confidence", 0.3),
            )
        else:
            detector = GradientDetector()

    if config.get("qr_engine", "wechat") == "opencv":
        qr_decoder = OpenCVQRDecoder()
    else:
        qr_decoder = WeChatQRDecoder(config.get("wechat_model_dir", ""))

    decoder = MultiStrategyDecoder(
        qr_decoder=qr_decoder,
        native_decoder=PyzbarDecoder(),
        permissive_decoder=ZxingDecoder(),
        rotation_corrector=RotationCorrector(),
    )
    upscaler = ImageUpscaler(
        super_resolution=SuperResolution(
            config.get("superres_model_path", ""),
            config.get("superres_model_name", "espcn"),
            config.get("superres_scale", 2),
        ),
        qr_factor=config.get("qr_upscale_factor", 2.0),
        linear_fx=config.get("linear_upscale_fx", 3.0),
        linear_fy=config.get("linear_upscale_fy", 2.0),
    )

    preview_size = None
    if config.get("preview_width") and config.get("preview_height"):
        preview_size = (int(config["preview_width"]), int(config["preview_height"]))

    return ScanPipeline(
        detector=detector,
        decoder=decoder,
        upscaler=upscaler,
        enhancer=FrameEnhancer(
            threshold=config.get("brightness_threshold", 0.5),
            alpha=config.get("enhance_alpha", 1.5),
            beta=config.get("enhance_beta", 40),
        ),
        classifier=DistanceClassifier(
            qr_ratio=config.get("qr_far_ratio", QR_FAR_RATIO),
            linear_ratio=config.get("linear_far_ratio", LINEAR_FAR_RATIO),
        ),
        on_decode_result=on_decode_result,
        on_overlay_update=on_overlay_update,
        feedback=feedback,
        production=config.get("production", False),
        warmup_frames=config.get("warmup_frames", WARMUP_FRAMES),
        preview_size=preview_size,
    )
