import io

import numpy as np
import pytest
from PIL import Image

cv2 = pytest.importorskip("cv2")
from reel_planner import focus


def _square_on_black(w=200, h=100, box=(140, 40, 150, 50)):
    arr = np.zeros((h, w), dtype=np.uint8)
    x0, y0, x1, y1 = box
    arr[y0:y1, x0:x1] = 255
    return Image.fromarray(arr)


def test_gradient_energy_border_is_zero():
    gray = np.random.RandomState(0).rand(32, 48).astype(np.float32) * 255
    energy = focus.gradient_energy(gray)
    assert energy.shape == gray.shape
    assert not energy[0, :].any()
    assert not energy[-1, :].any()
    assert not energy[:, 0].any()
    assert not energy[:, -1].any()


def test_flat_image_has_low_confidence():
    peak = focus.detect_focus_point(Image.new("L", (64, 64), 128))
    assert peak.peak_mean_ratio == 0.0
    assert peak.confidence == pytest.approx(0.3)


def test_bright_square_becomes_anchor():
    peak = focus.detect_focus_point(_square_on_black())
    assert peak.peak_mean_ratio >= 2.0
    assert peak.confidence == pytest.approx(0.9)
    assert 0.65 < peak.x < 0.8
    assert 0.35 < peak.y < 0.55


def test_downsample_limits_long_edge():
    gray = focus.downsample_gray(Image.new("RGB", (1024, 512)), max_dim=256)
    assert max(gray.shape) == 256
    assert gray.shape == (128, 256)


def test_exif_rotation_reads_orientation():
    img = Image.new("RGB", (300, 200), "white")
    exif = Image.Exif()
    exif[focus.ORIENTATION_TAG] = 6
    buf = io.BytesIO()
    img.save(buf, format="JPEG", exif=exif.tobytes())
    reopened = Image.open(io.BytesIO(buf.getvalue()))
    rotation = focus.exif_rotation(reopened)
    assert rotation == 90
    assert focus.rotated_size(reopened.size, rotation) == (200, 300)


def test_exif_rotation_defaults_to_zero():
    assert focus.exif_rotation(Image.new("RGB", (10, 10))) == 0


@pytest.mark.parametrize("size", [(400, 300), (1000, 700), (257, 513)])
def test_flat_image_stays_flat_after_resampling(size):
    gray = focus.downsample_gray(Image.new("RGB", size, "gray"))
    assert gray.dtype == np.float32
    assert gray.min() == gray.max()
    peak = focus.detect_focus_point(Image.new("RGB", size, "gray"))
    assert peak.peak_mean_ratio == 0.0
    assert peak.confidence == pytest.approx(0.3)


def test_faint_energy_is_not_a_peak():
    energy = np.zeros((20, 20), dtype=np.float32)
    energy[5, 3] = 8e-5
    energy[10:12, 10:12] = 1e-5
    peak = focus.find_energy_peak(energy)
    assert peak.peak_mean_ratio == 0.0
    assert peak.confidence == pytest.approx(0.3)
