"""Seeded Ken Burns motion per shot, clamped so no frame edge is ever revealed."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math
from typing import Dict, List, Sequence, Tuple

# Park-Miller minimal standard generator.
_LCG_MODULUS = 2147483647
_LCG_MULTIPLIER = 16807

DRIFT_MIN_ZOOM = 1.02
BACKSTOP_FRACTION = 0.02
MOVE_HOLD_SECONDS = 0.7


class MotionPreset(str, Enum):
    STATIC = "static"
    PUSH_IN = "push_in"
    DRIFT_LEFT = "drift_left"
    DRIFT_RIGHT = "drift_right"
    PULL_BACK = "pull_back"


# Order in which the cumulative distribution is walked.
PRESET_ORDER = (
    MotionPreset.STATIC,
    MotionPreset.PUSH_IN,
    MotionPreset.DRIFT_LEFT,
    MotionPreset.DRIFT_RIGHT,
    MotionPreset.PULL_BACK,
)

_DRIFTS = (MotionPreset.DRIFT_LEFT, MotionPreset.DRIFT_RIGHT)


@dataclass(frozen=True)
class SeededRNG:
    """Linear congruential generator carried as an immutable value."""

    state: int

    @classmethod
    def from_seed(cls, seed: int) -> "SeededRNG":
        state = int(seed) % _LCG_MODULUS
        if state <= 0:
            state += _LCG_MODULUS - 1
        return cls(state)

    def next(self) -> Tuple[float, "SeededRNG"]:
        state = (self.state * _LCG_MULTIPLIER) % _LCG_MODULUS
        return (state - 1) / (_LCG_MODULUS - 1), SeededRNG(state)

    def uniform(self, lo: float, hi: float) -> Tuple[float, "SeededRNG"]:
        value, rng = self.next()
        return lo + value * (hi - lo), rng


@dataclass(frozen=True)
class MotionPack:
    name: str
    weights: Dict[MotionPreset, float]
    min_scale: float
    max_scale: float
    min_drift_pct: float
    max_drift_pct: float
    ceiling: float
    margin_px: float
    pan_on_push: bool
    noise_pct: float = 0.2
    default_seed: int = 12345


PACKS: Dict[str, MotionPack] = {
    "documentary": MotionPack(
        name="documentary",
        weights={
            MotionPreset.STATIC: 0.10,
            MotionPreset.PUSH_IN: 0.40,
            MotionPreset.DRIFT_LEFT: 0.20,
            MotionPreset.DRIFT_RIGHT: 0.20,
            MotionPreset.PULL_BACK: 0.10,
        },
        min_scale=1.01,
        max_scale=1.06,
        min_drift_pct=0.8,
        max_drift_pct=1.5,
        ceiling=1.06,
        margin_px=1.0,
        pan_on_push=True,
    ),
    "default": MotionPack(
        name="default",
        weights={
            MotionPreset.STATIC: 0.45,
            MotionPreset.PUSH_IN: 0.35,
            MotionPreset.DRIFT_LEFT: 0.075,
            MotionPreset.DRIFT_RIGHT: 0.075,
            MotionPreset.PULL_BACK: 0.05,
        },
        min_scale=1.01,
        max_scale=1.035,
        min_drift_pct=0.6,
        max_drift_pct=1.0,
        ceiling=1.035,
        margin_px=2.0,
        pan_on_push=False,
        default_seed=67890,
    ),
    "static": MotionPack(
        name="static",
        weights={MotionPreset.STATIC: 1.0},
        min_scale=1.0,
        max_scale=1.0,
        min_drift_pct=0.0,
        max_drift_pct=0.0,
        ceiling=1.0,
        margin_px=0.0,
        pan_on_push=False,
    ),
}


@dataclass(frozen=True)
class MotionSpec:
    """Camera move for one shot.

    ``pan_x``/``pan_y`` are end offsets as a fraction of the frame width and
    height, already clamped for ``end_zoom``. ``noise`` is the peak amplitude
    of the mid-shot wobble as a fraction of the width.
    """

    preset: MotionPreset
    start_zoom: float
    end_zoom: float
    pan_x: float = 0.0
    pan_y: float = 0.0
    noise: float = 0.0
    noise_phase: float = 0.0
    hold_seconds: float = 0.0
    ceiling: float = 1.06
    margin_px: float = 1.0

    @property
    def pan_x_percent(self) -> float:
        return self.pan_x * 100.0

    @property
    def pan_y_percent(self) -> float:
        return self.pan_y * 100.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "preset": self.preset.value,
            "start_zoom": round(self.start_zoom, 6),
            "end_zoom": round(self.end_zoom, 6),
            "pan_x": round(self.pan_x, 6),
            "pan_y": round(self.pan_y, 6),
            "noise": round(self.noise, 6),
            "hold_seconds": self.hold_seconds,
        }


def smootherstep(t: float) -> float:
    """Quintic S-curve: zero velocity and acceleration at both ends."""
    t = max(0.0, min(1.0, t))
    return t * t * t * (t * (t * 6 - 15) + 10)


def ease_in_out(t: float) -> float:
    """Cosine ease-in-out for ``t`` in [0,1]."""
    return 0.5 - 0.5 * math.cos(math.pi * t)


def _get_ease_fn(name: str):
    return {
        "linear": lambda t: t,
        "inout": ease_in_out,
        "smooth": smootherstep,
    }.get(name, smootherstep)


def seed_value(seed: int | str | None, default: int = 12345) -> int:
    """Turn a user seed into a non-negative integer.

    Strings use the 32-bit ``h * 31 + c`` rolling hash so the same job id
    always maps to the same motion.
    """
    if seed is None or seed == "":
        return default
    if isinstance(seed, bool):
        return int(seed)
    if isinstance(seed, int):
        return abs(seed)
    text = str(seed)
    if text.lstrip("-").isdigit():
        return abs(int(text))
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def _mix32(n: int) -> int:
    # murmur3 finalizer; neighbouring inputs land far apart
    h = (n ^ (n >> 32)) & 0xFFFFFFFF
    h ^= h >> 16
    h = (h * 0x85EBCA6B) & 0xFFFFFFFF
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & 0xFFFFFFFF
    h ^= h >> 16
    return h


def shot_seed(base: int, index: int, total: int) -> int:
    """Generator seed for one shot.

    Small per-shot seeds would make the first draw tiny (``seed*16807/M``),
    so the combined value is scrambled before it reaches :class:`SeededRNG`.
    """
    position = index / (total - 1) if total > 1 else 0.5
    return _mix32(base + int(math.floor(position * 10000)) + index * 7919)


def clamp_drift_for_scale(drift_px: float, frame_width: float, zoom: float, margin_px: float = 2.0) -> float:
    """Clamp a horizontal translation to what ``zoom`` can hide.

    At zoom ``z`` the scaled frame overhangs the output by ``W*(z-1)/2`` on
    each side; anything beyond that (less the margin) shows a black edge.
    """
    max_tx = frame_width * (zoom - 1.0) / 2.0
    safe = max(0.0, max_tx - margin_px)
    clamped = min(abs(drift_px), safe)
    return clamped if drift_px >= 0 else -clamped


def adjusted_weights(
    pack: MotionPack,
    previous: MotionPreset | None,
    previous2: MotionPreset | None,
) -> List[Tuple[MotionPreset, float]]:
    """Pack weights after anti-repeat adjustments, renormalized to sum to 1."""
    weights = {p: pack.weights.get(p, 0.0) for p in PRESET_ORDER}
    if previous in _DRIFTS or previous2 in _DRIFTS:
        for p in _DRIFTS:
            weights[p] *= 0.15
    if previous == MotionPreset.PULL_BACK:
        weights[MotionPreset.PULL_BACK] *= 0.2
    if (
        previous is not None
        and previous2 is not None
        and previous != MotionPreset.STATIC
        and previous2 != MotionPreset.STATIC
    ):
        weights[MotionPreset.STATIC] *= 2.5
    total = sum(weights.values())
    if total <= 0:
        return [(MotionPreset.STATIC, 1.0)]
    return [(p, weights[p] / total) for p in PRESET_ORDER]


def pick_preset(
    rng: SeededRNG,
    pack: MotionPack,
    previous: MotionPreset | None = None,
    previous2: MotionPreset | None = None,
) -> Tuple[MotionPreset, SeededRNG]:
    roll, rng = rng.next()
    cumulative = 0.0
    chosen = MotionPreset.STATIC
    for preset, weight in adjusted_weights(pack, previous, previous2):
        if weight <= 0:
            continue
        cumulative += weight
        chosen = preset
        if roll < cumulative:
            break
    return chosen, rng


def generate_motion(
    index: int,
    total: int,
    pack: MotionPack | str = "default",
    seed: int | str | None = None,
    previous: MotionPreset | None = None,
    previous2: MotionPreset | None = None,
    frame_size: Tuple[int, int] = (1920, 1080),
) -> MotionSpec:
    """Choose and parametrize the move for shot ``index`` of ``total``."""
    if isinstance(pack, str):
        pack = PACKS[pack]
    W, H = frame_size
    rng = SeededRNG.from_seed(shot_seed(seed_value(seed, pack.default_seed), index, total))
    preset, rng = pick_preset(rng, pack, previous, previous2)

    def spec(start: float, end: float, pan_x: float = 0.0, noise: float = 0.0, phase: float = 0.0):
        start = max(1.0, min(pack.ceiling, start))
        end = max(1.0, min(pack.ceiling, end))
        return MotionSpec(
            preset=preset,
            start_zoom=start,
            end_zoom=end,
            pan_x=pan_x,
            pan_y=0.0,
            noise=noise,
            noise_phase=phase,
            hold_seconds=0.0 if preset == MotionPreset.STATIC else MOVE_HOLD_SECONDS,
            ceiling=pack.ceiling,
            margin_px=pack.margin_px,
        )

    if preset == MotionPreset.STATIC:
        return spec(1.0, 1.0)

    if preset in (MotionPreset.PUSH_IN, MotionPreset.PULL_BACK):
        scale, rng = rng.uniform(pack.min_scale, pack.max_scale)
        scale = min(scale, pack.ceiling)
        if preset == MotionPreset.PULL_BACK:
            return spec(scale, 1.0)
        pan_x = 0.0
        if pack.pan_on_push:
            pan_pct, rng = rng.uniform(-1.5, 1.5)
            pan_px = clamp_drift_for_scale(W * pan_pct / 100.0, W, scale, pack.margin_px)
            pan_x = min(abs(pan_px), BACKSTOP_FRACTION * W) / W
            pan_x = pan_x if pan_px >= 0 else -pan_x
        return spec(1.0, scale, pan_x)

    low = min(max(DRIFT_MIN_ZOOM, pack.min_scale), pack.ceiling)
    zoom, rng = rng.uniform(low, max(low, pack.max_scale))
    zoom = min(zoom, pack.ceiling)
    drift_pct, rng = rng.uniform(pack.min_drift_pct, pack.max_drift_pct)
    phase, rng = rng.uniform(0.0, 2.0 * math.pi)
    sign = -1.0 if preset == MotionPreset.DRIFT_LEFT else 1.0
    drift_px = clamp_drift_for_scale(sign * W * drift_pct / 100.0, W, zoom, pack.margin_px)
    return spec(zoom, zoom, drift_px / W, noise=pack.noise_pct / 100.0, phase=phase)


def plan_motions(
    count: int,
    pack: MotionPack | str = "default",
    seed: int | str | None = None,
    frame_size: Tuple[int, int] = (1920, 1080),
) -> List[MotionSpec]:
    """Motion for a whole sequence, feeding back the two previous presets."""
    specs: List[MotionSpec] = []
    for i in range(count):
        prev = specs[-1].preset if specs else None
        prev2 = specs[-2].preset if len(specs) > 1 else None
        specs.append(generate_motion(i, count, pack, seed, prev, prev2, frame_size))
    return specs


def zoom_at(spec: MotionSpec, t: float, ease: str = "smooth") -> float:
    p = _get_ease_fn(ease)(max(0.0, min(1.0, t)))
    zoom = spec.start_zoom + (spec.end_zoom - spec.start_zoom) * p
    return max(1.0, min(spec.ceiling, zoom))


def transform_at(
    spec: MotionSpec,
    t: float,
    frame_size: Tuple[int, int] = (1920, 1080),
    ease: str = "smooth",
) -> Tuple[float, float, float]:
    """Return ``(zoom, tx_px, ty_px)`` for move progress ``t`` in [0, 1].

    The translation is re-clamped against the zoom at the same instant, so an
    eased or noisy curve cannot overshoot mid-shot.
    """
    W, H = frame_size
    t = max(0.0, min(1.0, t))
    p = _get_ease_fn(ease)(t)
    zoom = zoom_at(spec, t, ease)
    tx = spec.pan_x * W * p
    if spec.noise:
        tx += spec.noise * W * math.sin(math.pi * t) * math.sin(spec.noise_phase + 2 * math.pi * t)
    ty = spec.pan_y * H * p
    tx = clamp_drift_for_scale(tx, W, zoom, spec.margin_px)
    ty = clamp_drift_for_scale(ty, H, zoom, spec.margin_px)
    tx = max(-BACKSTOP_FRACTION * W, min(BACKSTOP_FRACTION * W, tx))
    ty = max(-BACKSTOP_FRACTION * H, min(BACKSTOP_FRACTION * H, ty))
    return zoom, tx, ty


def sample_path(
    spec: MotionSpec,
    frame_size: Tuple[int, int] = (1920, 1080),
    steps: int = 50,
) -> List[Tuple[float, float, float]]:
    """Evenly sampled :func:`transform_at` values, endpoints included."""
    steps = max(1, steps)
    return [transform_at(spec, i / steps, frame_size) for i in range(steps + 1)]


def summarize(specs: Sequence[MotionSpec]) -> Dict[str, object]:
    counts: Dict[str, int] = {}
    for s in specs:
        counts[s.preset.value] = counts.get(s.preset.value, 0) + 1
    max_zoom = max([1.0] + [max(s.start_zoom, s.end_zoom) for s in specs])
    moved = sum(1 for s in specs if s.preset != MotionPreset.STATIC)
    return {"counts": counts, "max_zoom": max_zoom, "moved": moved, "total": len(specs)}
