"""Saliency-driven reframing: one crop rectangle per image and target aspect.

Plans are computed in the post-rotation coordinate space. The pixels are not
touched here; :func:`apply_frame_plan` performs the rotation exactly once
when a derived asset is actually needed.
"""
from __future__ import annotations

import io
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Tuple

from PIL import Image, ImageOps

from .errors import CropBoundsError
from .focus import detect_focus_point, exif_rotation, rotated_size

ASPECT_TOLERANCE = 0.02
SAFE_MODE_CONFIDENCE = 0.35
ERROR_CONFIDENCE = 0.3

_ASPECT_LABELS = {
    "16:9": 16 / 9,
    "9:16": 9 / 16,
    "portrait": 9 / 16,
    "1:1": 1.0,
    "square": 1.0,
    "4:5": 4 / 5,
    "2.39:1": 2.39,
    "239:100": 2.39,
}

_OUTPUT_SIZES = {
    round(16 / 9, 4): (1920, 1080),
    round(9 / 16, 4): (1080, 1920),
    1.0: (1080, 1080),
    round(4 / 5, 4): (1080, 1350),
    2.39: (1920, 804),
}


@dataclass(frozen=True)
class CropRect:
    x: int
    y: int
    w: int
    h: int

    def as_box(self) -> Tuple[int, int, int, int]:
        """PIL-style ``(left, top, right, bottom)``."""
        return (self.x, self.y, self.x + self.w, self.y + self.h)


@dataclass(frozen=True)
class SaliencyPlan:
    rotation: int
    crop: CropRect
    anchor: Tuple[float, float]
    confidence: float
    needs_review: bool
    reason: str
    safe_mode: bool
    source_size: Tuple[int, int]

    def to_dict(self) -> Dict[str, object]:
        return {
            "rotation": self.rotation,
            "crop": {"x": self.crop.x, "y": self.crop.y, "w": self.crop.w, "h": self.crop.h},
            "anchor": {"x": round(self.anchor[0], 4), "y": round(self.anchor[1], 4)},
            "confidence": round(self.confidence, 4),
            "needs_review": self.needs_review,
            "reason": self.reason,
            "safe_mode": self.safe_mode,
        }


def parse_aspect(label: str | float) -> float:
    """Parse ``"16:9"``, ``"2.39:1"``, ``"portrait"`` or a plain number."""
    if isinstance(label, (int, float)):
        value = float(label)
    else:
        text = str(label).strip().lower()
        if text in _ASPECT_LABELS:
            return _ASPECT_LABELS[text]
        if ":" in text:
            num, _, den = text.partition(":")
            value = float(num) / float(den)
        elif "x" in text:
            num, _, den = text.partition("x")
            value = float(num) / float(den)
        else:
            value = float(text)
    if value <= 0:
        raise ValueError(f"aspect ratio must be positive: {label!r}")
    return value


def output_size_for(aspect: float) -> Tuple[int, int]:
    """Encoder output size for ``aspect``; unknown ratios keep a 1080 short edge."""
    key = round(aspect, 4)
    if key in _OUTPUT_SIZES:
        return _OUTPUT_SIZES[key]
    if aspect >= 1.0:
        return int(round(1080 * aspect / 2)) * 2, 1080
    return 1080, int(round(1080 / aspect / 2)) * 2


class FramePlanCache:
    """Bounded FIFO cache keyed by ``(image_id, round(aspect, 4))``."""

    def __init__(self, max_entries: int = 2000):
        self.max_entries = max(1, int(max_entries))
        self._entries: "OrderedDict[Tuple[str, float], SaliencyPlan]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key(image_id: str, target_aspect: float) -> Tuple[str, float]:
        return (str(image_id), round(float(target_aspect), 4))

    def get(self, image_id: str, target_aspect: float) -> SaliencyPlan | None:
        with self._lock:
            return self._entries.get(self.key(image_id, target_aspect))

    def put(self, image_id: str, target_aspect: float, plan: SaliencyPlan) -> None:
        with self._lock:
            self._entries[self.key(image_id, target_aspect)] = plan
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "max_size": self.max_entries}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Tuple[str, float]) -> bool:
        with self._lock:
            return key in self._entries


def _window_size(src_w: int, src_h: int, target_aspect: float) -> Tuple[int, int]:
    """Largest integer window within ``ASPECT_TOLERANCE`` of ``target_aspect``.

    Sources too small to hold any such window (about 16x9 for 16:9) get the
    plain rounded size.
    """
    if src_w / src_h > target_aspect:
        sizes = ((min(src_w, max(1, int(round(h * target_aspect)))), h) for h in range(src_h, 0, -1))
    else:
        sizes = ((w, min(src_h, max(1, int(round(w / target_aspect))))) for w in range(src_w, 0, -1))
    first = None
    for w, h in sizes:
        if first is None:
            first = (w, h)
        if abs(w / h - target_aspect) <= ASPECT_TOLERANCE:
            return w, h
    return first


def compute_crop_rect(
    src_w: int,
    src_h: int,
    target_aspect: float,
    anchor_x: float = 0.5,
    anchor_y: float = 0.5,
    headroom_bias: float = 0.0,
) -> CropRect:
    """Largest ``target_aspect`` window centred on the anchor, inside the source."""
    src_aspect = src_w / src_h
    if abs(src_aspect - target_aspect) <= ASPECT_TOLERANCE:
        return CropRect(0, 0, src_w, src_h)

    crop_w, crop_h = _window_size(src_w, src_h, target_aspect)

    ax = anchor_x * src_w
    ay = anchor_y * src_h
    if headroom_bias > 0:
        ay = max(0.0, ay - crop_h * headroom_bias)

    x = int(round(ax - crop_w / 2))
    y = int(round(ay - crop_h / 2))
    x = max(0, min(x, src_w - crop_w))
    y = max(0, min(y, src_h - crop_h))
    return CropRect(x, y, crop_w, crop_h)


def crop_rect_errors(crop: CropRect, src_w: int, src_h: int, target_aspect: float) -> List[str]:
    """Return human readable violations of the crop contract."""
    errors: List[str] = []
    if crop.w <= 0 or crop.h <= 0:
        errors.append(f"empty crop {crop.w}x{crop.h}")
        return errors
    if crop.x < 0:
        errors.append(f"crop.x ({crop.x}) < 0")
    if crop.y < 0:
        errors.append(f"crop.y ({crop.y}) < 0")
    if crop.x + crop.w > src_w:
        errors.append(f"crop.x + crop.w ({crop.x + crop.w}) > width ({src_w})")
    if crop.y + crop.h > src_h:
        errors.append(f"crop.y + crop.h ({crop.y + crop.h}) > height ({src_h})")
    diff = abs(crop.w / crop.h - target_aspect)
    if diff > ASPECT_TOLERANCE:
        errors.append(
            f"crop aspect {crop.w / crop.h:.4f} differs from target {target_aspect:.4f} by {diff:.4f}"
        )
    return errors


def validate_crop_rect(crop: CropRect, src_w: int, src_h: int, target_aspect: float) -> None:
    """Raise :class:`CropBoundsError` when the crop leaves the source frame.

    Aspect drift is only logged; it happens on sources too small to hold an
    in-tolerance window.
    """
    errors = crop_rect_errors(crop, src_w, src_h, target_aspect)
    bounds = [e for e in errors if "aspect" not in e]
    if bounds:
        raise CropBoundsError("; ".join(bounds))
    if errors:
        logging.warning("reframe: %s", "; ".join(errors))


def _open_image(image: Image.Image | bytes) -> Image.Image:
    if isinstance(image, Image.Image):
        return image
    return Image.open(io.BytesIO(image))


def plan_reframe(
    image: Image.Image | bytes,
    target_aspect: float = 16 / 9,
    image_id: str | None = None,
    cache: FramePlanCache | None = None,
    *,
    confidence_threshold: float = 0.55,
    headroom_bias: float = 0.075,
    max_score_dim: int = 256,
    peak_mean_ratio_threshold: float = 2.0,
    high_confidence_threshold: float = 0.75,
    source_size: Tuple[int, int] | None = None,
) -> SaliencyPlan:
    """Compute the rotation, anchor and crop for ``image`` at ``target_aspect``.

    Parameters
    ----------
    image:
        Decoded PIL image or the encoded bytes of one.
    target_aspect:
        Output width / height.
    image_id, cache:
        When both are given the plan is looked up in and stored into
        ``cache``.
    source_size:
        Fallback ``(width, height)`` used when ``image`` cannot be decoded.

    Energy failures never propagate: the plan falls back to a centred crop
    with low confidence and the failure is recorded in ``reason``.
    """
    if image_id is not None and cache is not None:
        cached = cache.get(image_id, target_aspect)
        if cached is not None:
            return cached

    try:
        img = _open_image(image)
        rotation = exif_rotation(img)
        width, height = rotated_size(img.size, rotation)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        logging.warning("reframe: cannot decode %s: %s", image_id or "image", exc)
        return _undecodable_plan(target_aspect, source_size, str(exc), confidence_threshold)

    if width <= 0 or height <= 0:
        return _undecodable_plan(target_aspect, None, f"zero-size image ({width}x{height})", confidence_threshold)

    anchor_x, anchor_y = 0.5, 0.5
    try:
        peak = detect_focus_point(img, max_score_dim, peak_mean_ratio_threshold)
        confidence = peak.confidence
        if peak.peak_mean_ratio >= peak_mean_ratio_threshold:
            anchor_x, anchor_y = peak.x, peak.y
            reason = f"gradient energy peak (ratio={peak.peak_mean_ratio:.2f})"
        else:
            reason = f"low energy contrast (ratio={peak.peak_mean_ratio:.2f}, using center)"
    except Exception as exc:  # corrupt pixel data must not abort planning
        logging.warning("reframe: energy map failed for %s: %s", image_id or "image", exc)
        confidence = ERROR_CONFIDENCE
        reason = f"energy computation error: {exc}"

    if confidence < high_confidence_threshold:
        clamped = max(0.2, min(0.8, anchor_y))
        if clamped != anchor_y:
            reason += f" (anchor y clamped {anchor_y:.2f}->{clamped:.2f})"
            anchor_y = clamped

    safe_mode = confidence < SAFE_MODE_CONFIDENCE
    if safe_mode:
        crop = compute_crop_rect(width, height, target_aspect)
        reason = f"low confidence ({confidence:.2f}), forced center crop; {reason}"
        logging.info("reframe: safe mode for %s (confidence %.2f)", image_id or "image", confidence)
    else:
        crop = compute_crop_rect(width, height, target_aspect, anchor_x, anchor_y, headroom_bias)

    validate_crop_rect(crop, width, height, target_aspect)

    plan = SaliencyPlan(
        rotation=rotation,
        crop=crop,
        anchor=(anchor_x, anchor_y),
        confidence=confidence,
        needs_review=confidence < confidence_threshold,
        reason=reason,
        safe_mode=safe_mode,
        source_size=(width, height),
    )
    if image_id is not None and cache is not None:
        cache.put(image_id, target_aspect, plan)
    return plan


def _undecodable_plan(
    target_aspect: float,
    source_size: Tuple[int, int] | None,
    reason: str,
    confidence_threshold: float,
) -> SaliencyPlan:
    if source_size and source_size[0] > 0 and source_size[1] > 0:
        w, h = source_size
        crop = compute_crop_rect(w, h, target_aspect)
        confidence = ERROR_CONFIDENCE
    else:
        w, h = 0, 0
        crop = CropRect(0, 0, 0, 0)
        confidence = 0.0
    return SaliencyPlan(
        rotation=0,
        crop=crop,
        anchor=(0.5, 0.5),
        confidence=confidence,
        needs_review=confidence < confidence_threshold,
        reason=f"undecodable image: {reason}",
        safe_mode=True,
        source_size=(w, h),
    )


def apply_frame_plan(image: Image.Image | bytes, plan: SaliencyPlan) -> Image.Image:
    """Rotate ``image`` upright and cut out the planned crop."""
    img = ImageOps.exif_transpose(_open_image(image))
    if img.size != plan.source_size:
        raise CropBoundsError(
            f"plan computed for {plan.source_size}, image is {img.size} after rotation"
        )
    return img.crop(plan.crop.as_box())
