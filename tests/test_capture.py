import cv2
import numpy as np

from capture import ImageFolderSource, estimate_brightness


def test_estimate_brightness_range():
    assert estimate_brightness(np.zeros((10, 10, 3), np.uint8)) == 0.0
    assert estimate_brightness(np.full((10, 10, 3), 255, np.uint8)) == 1.0


def test_image_folder_source_replays_images(tmp_path):
    cv2.imwrite(str(tmp_path / "a.png"), np.full((20, 30, 3), 40, np.uint8))
    cv2.imwrite(str(tmp_path / "b.png"), np.full((20, 30, 3), 200, np.uint8))
    (tmp_path / "notes.txt").write_text("skip me")

    frames = list(ImageFolderSource(str(tmp_path), repeat=2))

    assert len(frames) == 4
    assert frames[0].width == 30 and frames[0].height == 20
    assert frames[0].brightness < 0.5 < frames[-1].brightness


def test_image_folder_source_fixed_brightness(tmp_path):
    path = tmp_path / "a.png"
    cv2.imwrite(str(path), np.full((20, 30, 3), 200, np.uint8))
    frames = list(ImageFolderSource(str(path), brightness=0.2))
    assert frames[0].brightness == 0.2
