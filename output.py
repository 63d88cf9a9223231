"""Host-side outputs: success feedback, Discord webhook posting, overlay drawing."""

import logging
import sys
from datetime import datetime, timezone
from threading import Thread

import cv2
import numpy as np
import requests

from models import OverlayDescriptor
from utils import RecentResults

logger = logging.getLogger("scanner")


class BellFeedback:
    """Audible success cue via the terminal bell."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def notify_success(self):
        self.stream.write("\a")
        self.stream.flush()


def send_discord(webhook_url: str, content: str, code_type: str = "QR Code"):
    """Post decoded content to Discord via webhook embed."""
    if not webhook_url:
        logger.warning("Discord webhook URL not configured, skipping")
        return

    embed = {
        "title": f"{code_type} Detected",
        "description": content[:2000],
        "color": 0x07C160,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "footer": {"text": "Scanner"},
    }
    payload = {"embeds": [embed]}

    try:
        resp = requests.post(webhook_url, json=payload, timeout=10)
        if resp.status_code in (200, 204):
            logger.info("Discord message sent")
        else:
            logger.error("Discord webhook failed: %d %s", resp.status_code, resp.text[:200])
    except requests.RequestException as e:
        logger.error("Discord webhook error: %s", e)


class ResultSink:
    """Decode-result callback for the host: logs, dedups and forwards results.

    Empty results (no code found) are ignored. The same text is forwarded at
    most once per ``ttl_s`` seconds so a code held in view is posted once.
    """

    def __init__(self, webhook_url: str = "", jlog=None, ttl_s: int = 30):
        self.webhook_url = webhook_url
        self.jlog = jlog
        self._recent = RecentResults(ttl_s=ttl_s)
        self._threads: list[Thread] = []

    def __call__(self, text: str, code_type: str):
        if not text:
            return
        if self._recent.is_repeat(text, code_type):
            logger.debug("Duplicate result suppressed: %s", text[:80])
            return

        if self.jlog is not None:
            self.jlog.log("decoded", content=text, code_type=code_type)
        if self.webhook_url:
            t = Thread(target=send_discord, args=(self.webhook_url, text, code_type), daemon=True)
            t.start()
            self._threads.append(t)
        self._threads = [t for t in self._threads if t.is_alive()]

    def close(self, timeout: float = 15):
        for t in self._threads:
            t.join(timeout=timeout)


def render_overlays(image: np.ndarray, overlays: list[OverlayDescriptor], scale=(1.0, 1.0)) -> np.ndarray:
    """Draw overlay boxes onto a copy of ``image``; transparent colours are skipped.

    ``scale`` maps preview coordinates back to image pixels.
    """
    out = image.copy()
    sx, sy = scale
    for ov in overlays:
        r, g, b, a = ov.color
        if a == 0:
            continue
        color = (b, g, r)
        x1, y1 = int(ov.rect.x * sx), int(ov.rect.y * sy)
        x2, y2 = int(ov.rect.max_x * sx), int(ov.rect.max_y * sy)
        cv2.rectangle(out, (x1, y1), (x2, y2), color, 2)
        font_scale = ov.font_size / 28.0
        cv2.putText(out, ov.label, (x1, max(y1 - 6, 12)), cv2.FONT_HERSHEY_SIMPLEX,
                    font_scale, color, 1, cv2.LINE_AA)
    return out
