"""Configuration helpers for reel_planner."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Tuple

import yaml

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".bmp", ".webp"}
AUDIO_EXTS = {".mp3", ".wav", ".m4a"}

# Reference crossfade used by the shot-length formula.
CROSSFADE_SECONDS = 0.4
MIN_HOLD = 1.0
MAX_HOLD = 3.0


@dataclass(frozen=True)
class PlannerConfig:
    aspect: str = "16:9"
    motion_pack: str = "documentary"
    seed: str | None = None
    fps: int = 24
    cache_size: int = 2000
    confidence_threshold: float = 0.55
    headroom_bias: float = 0.075
    peak_mean_ratio: float = 2.0
    high_confidence: float = 0.75
    max_score_dim: int = 256
    target_duration: float | None = None
    cut_only: bool = False
    align_beat: bool = False
    bpm: int | None = None

    def with_overrides(self, **kwargs: Any) -> "PlannerConfig":
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in kwargs.items() if k in known and v is not None})


_ENV_OVERRIDES: Dict[str, Tuple[str, type]] = {
    "REEL_MOTION_PACK": ("motion_pack", str),
    "REEL_FPS": ("fps", int),
    "REEL_CACHE_SIZE": ("cache_size", int),
    "REEL_SEED": ("seed", str),
}


def env_overrides(environ: Dict[str, str] | None = None) -> Dict[str, Any]:
    """Return config values set through ``REEL_*`` environment variables."""
    environ = os.environ if environ is None else environ
    out: Dict[str, Any] = {}
    for var, (name, cast) in _ENV_OVERRIDES.items():
        raw = environ.get(var)
        if not raw:
            continue
        try:
            out[name] = cast(raw)
        except ValueError:
            logging.warning("ignoring %s=%r: not a valid %s", var, raw, cast.__name__)
    return out


def load_preset(path: str) -> Dict[str, Any]:
    """Read a YAML preset file; keys use either dashes or underscores."""
    with open(path, "r", encoding="utf8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"preset {path} must contain a mapping")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def load_config(path: str | None = None, environ: Dict[str, str] | None = None) -> PlannerConfig:
    """Build a :class:`PlannerConfig` from an optional preset plus environment."""
    cfg = PlannerConfig()
    if path:
        cfg = cfg.with_overrides(**load_preset(path))
    return cfg.with_overrides(**env_overrides(environ))
