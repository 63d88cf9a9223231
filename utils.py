"""Shared helpers: config, logging, frame pHash, recent-result cache, event log."""

import json
import time
import logging
from pathlib import Path
from collections import OrderedDict

import numpy as np
import imagehash
from PIL import Image

logger = logging.getLogger("scanner")

CONFIG_PATH = Path(__file__).parent / "config.json"

DEFAULT_CONFIG = {
    "warmup_frames": 5,
    "brightness_threshold": 0.5,
    "enhance_alpha": 1.5,
    "enhance_beta": 40,
    "qr_far_ratio": 0.04,
    "linear_far_ratio": 0.06,
    "qr_upscale_factor": 2.0,
    "linear_upscale_fx": 3.0,
    "linear_upscale_fy": 2.0,
    "superres_model_path": "",
    "superres_model_name": "espcn",
    "superres_scale": 2,
    "qr_engine": "wechat",
    "wechat_model_dir": "",
    "detector": "gradient",
    "yolo_model_path": "",
    "min_confidence": 0.3,
    "preview_width": None,
    "preview_height": None,
    "production": False,
    "camera_index": 0,
    "log_file": "scanner.log.jsonl",
    "discord_webhook_url": "",
    "dedup_ttl_s": 30,
}


def load_config(path: str | Path | None = None) -> dict:
    """Read the JSON config over DEFAULT_CONFIG. A missing file gives the defaults."""
    cfg = dict(DEFAULT_CONFIG)
    config_path = Path(path) if path else CONFIG_PATH
    if not config_path.is_file():
        logger.warning("Config file %s not found, using defaults", config_path)
        return cfg
    with open(config_path) as f:
        cfg.update(json.load(f))
    return cfg


def phash(image: np.ndarray) -> str:
    """Compute perceptual hash of a numpy BGR image."""
    if image.ndim == 3:
        pil = Image.fromarray(np.ascontiguousarray(image[..., 2::-1]))  # BGR → RGB
    else:
        pil = Image.fromarray(image)
    return str(imagehash.phash(pil))


class RecentResults:
    """Remembers decoded (symbology, text) pairs for ``ttl_s`` seconds.

    Used to forward a code once while it stays in view. Oldest entries are
    dropped first when more than ``max_entries`` are held.
    """

    def __init__(self, max_entries: int = 500, ttl_s: float = 30):
        self._expiry: OrderedDict[tuple[str, str], float] = OrderedDict()
        self._max = max_entries
        self._ttl = ttl_s

    def is_repeat(self, text: str, code_type: str = "", now: float | None = None) -> bool:
        """True if the pair is still fresh; otherwise remember it and return False."""
        now = time.time() if now is None else now
        self._expire(now)
        key = (code_type, text)
        if key in self._expiry:
            return True
        self._expiry[key] = now + self._ttl
        while len(self._expiry) > self._max:
            self._expiry.popitem(last=False)
        return False

    def __len__(self) -> int:
        return len(self._expiry)

    def _expire(self, now: float):
        # Insertion order equals expiry order since the TTL is fixed
        while self._expiry and next(iter(self._expiry.values())) <= now:
            self._expiry.popitem(last=False)


class EventLog:
    """Append scanner events (start, frame, decoded, stop) as JSON lines."""

    def __init__(self, path: str):
        self._path = Path(path)

    def log(self, event: str, **data):
        entry = {"ts": time.time(), "event": event, **data}
        with open(self._path, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def log_run(self, run, original: np.ndarray | None = None):
        """Record one pipeline run: counts, timings and the original frame's pHash."""
        self.log(
            "frame",
            index=run.frame_index,
            enhanced=run.enhanced,
            candidates=len(run.candidates),
            successes=run.successes,
            skipped=run.skipped_candidates,
            results=[{"text": r.text, "code_type": r.symbology, "strategy": r.strategy}
                     for r in run.results if r.success],
            original_phash=phash(original) if original is not None else None,
            timings=run.timings(),
        )


def setup_logging(level: int = logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
