"""Main loop: frame source → scan pipeline → result sinks."""

import argparse
import logging
import signal
import sys

import cv2

from capture import CameraSource, ImageFolderSource
from output import BellFeedback, ResultSink, render_overlays
from pipeline import build_pipeline
from utils import (
    load_config,
    setup_logging,
    EventLog,
)

logger = logging.getLogger("scanner")

_running = True


def _sigint_handler(sig, frame):
    global _running
    logger.info("Shutting down...")
    _running = False


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Scan QR codes and barcodes from a camera or images")
    parser.add_argument("--config", default=None, help="path to config.json")
    parser.add_argument("--images", default=None, help="replay images from a file or folder instead of the camera")
    parser.add_argument("--brightness", type=float, default=None, help="brightness reported for replayed images")
    parser.add_argument("--show", action="store_true", help="show a preview window with overlays")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    signal.signal(signal.SIGINT, _sigint_handler)

    config = load_config(args.config)
    if args.images:
        # Still images need no exposure settling
        config["warmup_frames"] = 0
        source = ImageFolderSource(args.images, brightness=args.brightness)
    else:
        source = CameraSource(config.get("camera_index", 0))
        if not source.opened:
            logger.error("Camera %s could not be opened", config.get("camera_index", 0))
            sys.exit(1)

    if not config.get("discord_webhook_url"):
        logger.warning("Discord webhook URL not set, Discord output disabled")

    jlog = EventLog(config.get("log_file", "scanner.log.jsonl"))
    sink = ResultSink(
        webhook_url=config.get("discord_webhook_url", ""),
        jlog=jlog,
        ttl_s=config.get("dedup_ttl_s", 30),
    )
    latest_overlays = []

    def on_overlay_update(overlays):
        latest_overlays[:] = overlays

    pipeline = build_pipeline(
        config,
        on_decode_result=sink,
        on_overlay_update=on_overlay_update,
        feedback=BellFeedback(),
    )

    logger.info("Scanner started. Press Ctrl+C to stop.")
    jlog.log("start")

    for frame in source:
        if not _running:
            break

        run = pipeline.offer(frame)
        if run is None:
            continue

        jlog.log_run(run, pipeline.context.last_original_image)

        if args.show:
            preview = pipeline.preview_size or (frame.width, frame.height)
            scale = (frame.width / preview[0], frame.height / preview[1])
            cv2.imshow("scanner", render_overlays(frame.image, latest_overlays, scale))
            if cv2.waitKey(1) & 0xFF == 27:  # ESC
                break

    source.close()
    sink.close()
    if args.show:
        cv2.destroyAllWindows()

    jlog.log("stop", successful_detections=pipeline.successful_detection_count)
    logger.info("Scanner stopped. %d successful detections.", pipeline.successful_detection_count)


if __name__ == "__main__":
    main()
