"""Focus point detection from gradient energy."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps

# EXIF orientation tag and the clockwise rotation each value implies.
ORIENTATION_TAG = 0x0112
_ROTATION_BY_ORIENTATION = {1: 0, 2: 0, 3: 180, 4: 180, 5: 90, 6: 90, 7: 270, 8: 270}

# Gradients below this are resampling noise, not structure.
MIN_PEAK_ENERGY = 1.0


@dataclass(frozen=True)
class EnergyPeak:
    x: float
    y: float
    peak: float
    mean: float
    peak_mean_ratio: float
    confidence: float


def exif_rotation(img: Image.Image) -> int:
    """Return the rotation (0/90/180/270) encoded in the EXIF orientation."""
    try:
        orientation = img.getexif().get(ORIENTATION_TAG, 1)
    except (AttributeError, ValueError, OSError):
        orientation = 1
    return _ROTATION_BY_ORIENTATION.get(int(orientation or 1), 0)


def rotated_size(size: Tuple[int, int], rotation: int) -> Tuple[int, int]:
    w, h = size
    if rotation in (90, 270):
        return h, w
    return w, h


def downsample_gray(img: Image.Image, max_dim: int = 256) -> np.ndarray:
    """Grayscale copy in display orientation with the long edge <= ``max_dim``."""
    upright = ImageOps.exif_transpose(img)
    gray = np.asarray(upright.convert("L"), dtype=np.uint8)
    h, w = gray.shape[:2]
    if h == 0 or w == 0:
        raise ValueError(f"zero-size image ({w}x{h})")
    scale = min(1.0, max_dim / float(max(w, h)))
    if scale < 1.0:
        size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
        gray = cv2.resize(gray, size, interpolation=cv2.INTER_AREA)
    # resampling stays in 8 bits so a flat image stays exactly flat
    return gray.astype(np.float32)


def gradient_energy(gray: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude with a zeroed one-pixel border."""
    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    energy = cv2.magnitude(gx, gy)
    energy[0, :] = 0
    energy[-1, :] = 0
    energy[:, 0] = 0
    energy[:, -1] = 0
    return energy


def find_energy_peak(energy: np.ndarray, ratio_threshold: float = 2.0) -> EnergyPeak:
    """Locate the strongest gradient and score how much it stands out.

    The confidence grows with ``peak / mean`` once the ratio clears
    ``ratio_threshold``; below it the result only supports a centre anchor.
    """
    h, w = energy.shape[:2]
    idx = int(np.argmax(energy))
    peak = float(energy.flat[idx])
    mean = float(energy.mean())
    ratio = peak / mean if mean > 0 and peak >= MIN_PEAK_ENERGY else 0.0
    if ratio >= ratio_threshold:
        confidence = min(0.9, 0.7 + 0.05 * (ratio / ratio_threshold - 1.0))
    else:
        confidence = max(0.3, 0.5 * (ratio / ratio_threshold))
    return EnergyPeak(
        x=(idx % w) / w,
        y=(idx // w) / h,
        peak=peak,
        mean=mean,
        peak_mean_ratio=ratio,
        confidence=confidence,
    )


def detect_focus_point(img: Image.Image, max_dim: int = 256, ratio_threshold: float = 2.0) -> EnergyPeak:
    """Return the normalized energy peak of ``img`` in display orientation."""
    return find_energy_peak(gradient_energy(downsample_gray(img, max_dim)), ratio_threshold)
