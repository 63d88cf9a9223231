import json

import numpy as np

from models import DecodeResult, PipelineRun
from utils import DEFAULT_CONFIG, EventLog, RecentResults, load_config, phash


def test_load_config_merges_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"warmup_frames": 3, "qr_far_ratio": 0.1}))

    cfg = load_config(path)

    assert cfg["warmup_frames"] == 3
    assert cfg["qr_far_ratio"] == 0.1
    assert cfg["linear_far_ratio"] == DEFAULT_CONFIG["linear_far_ratio"]


def test_load_config_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "nope.json") == DEFAULT_CONFIG


def test_recent_results_suppress_repeats_per_code_type():
    recent = RecentResults(ttl_s=30)

    assert not recent.is_repeat("ABC123", "Code 128", now=100.0)
    assert recent.is_repeat("ABC123", "Code 128", now=105.0)
    # Same text under another symbology is a different result
    assert not recent.is_repeat("ABC123", "QR Code", now=105.0)
    assert len(recent) == 2


def test_recent_results_expire_after_ttl():
    recent = RecentResults(ttl_s=30)
    recent.is_repeat("https://example.com", "QR Code", now=0.0)

    assert not recent.is_repeat("https://example.com", "QR Code", now=31.0)
    assert len(recent) == 1


def test_recent_results_drop_oldest_over_capacity():
    recent = RecentResults(max_entries=2, ttl_s=3600)
    for text in ("a", "b", "c"):
        recent.is_repeat(text, now=1.0)

    assert len(recent) == 2
    assert not recent.is_repeat("a", now=2.0)


def test_event_log_appends(tmp_path):
    path = tmp_path / "log.jsonl"
    jlog = EventLog(str(path))
    jlog.log("start")
    jlog.log("decoded", content="ABC123")

    lines = [json.loads(l) for l in path.read_text().splitlines()]
    assert [l["event"] for l in lines] == ["start", "decoded"]
    assert lines[1]["content"] == "ABC123"


def test_event_log_records_run_with_original_phash(tmp_path):
    path = tmp_path / "log.jsonl"
    original = np.random.default_rng(5).integers(0, 255, (48, 64, 3), dtype=np.uint8)
    run = PipelineRun(frame_index=7, captured_at=0.0, enhanced=True, skipped_candidates=1)
    run.results = [
        DecodeResult(success=True, text="ABC123", symbology="Code 128", strategy="native"),
        DecodeResult.failed(),
    ]

    EventLog(str(path)).log_run(run, original)

    entry = json.loads(path.read_text())
    assert entry["event"] == "frame"
    assert entry["index"] == 7
    assert entry["enhanced"] is True
    assert entry["successes"] == 1
    assert entry["skipped"] == 1
    assert entry["results"] == [{"text": "ABC123", "code_type": "Code 128", "strategy": "native"}]
    assert entry["original_phash"] == phash(original)


def test_event_log_run_without_original(tmp_path):
    path = tmp_path / "log.jsonl"
    EventLog(str(path)).log_run(PipelineRun(frame_index=1, captured_at=0.0))

    entry = json.loads(path.read_text())
    assert entry["original_phash"] is None
    assert entry["results"] == []


def test_phash_handles_color_and_gray():
    color = np.random.default_rng(3).integers(0, 255, (64, 64, 3), dtype=np.uint8)
    gray = color[..., 0].copy()
    assert len(phash(color)) == 16
    assert len(phash(gray)) == 16
