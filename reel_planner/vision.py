"""Per-image semantic attributes from the captioning collaborator.

Responses are untrusted: every field is checked and missing or malformed
values fall back to neutral defaults so planning can always continue.
"""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple

import yaml

DEFAULT_VISUAL_ENERGY = 5
REQUEST_DELAY = 0.05


@dataclass(frozen=True)
class EmotionVector:
    calm: float = 0.5
    tension: float = 0.3
    mystery: float = 0.2
    intimacy: float = 0.3
    awe: float = 0.2

    def to_dict(self) -> Dict[str, float]:
        return {
            "calm": self.calm,
            "tension": self.tension,
            "mystery": self.mystery,
            "intimacy": self.intimacy,
            "awe": self.awe,
        }


NEUTRAL_EMOTION = EmotionVector()


@dataclass(frozen=True)
class ImageAttributes:
    image_id: str
    subject: str = "unknown"
    mood: Tuple[str, ...] = ("unknown",)
    emotion: EmotionVector = field(default_factory=EmotionVector)
    visual_energy: float = DEFAULT_VISUAL_ENERGY
    width: int = 0
    height: int = 0
    analysis_error: str | None = None

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width > 0


def _unit(value: Any, default: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    if v != v:  # NaN
        return default
    return max(0.0, min(1.0, v))


def _emotion(raw: Any) -> EmotionVector:
    if not isinstance(raw, Mapping):
        return NEUTRAL_EMOTION
    d = NEUTRAL_EMOTION
    return EmotionVector(
        calm=_unit(raw.get("calm"), d.calm),
        tension=_unit(raw.get("tension"), d.tension),
        mystery=_unit(raw.get("mystery"), d.mystery),
        intimacy=_unit(raw.get("intimacy"), d.intimacy),
        awe=_unit(raw.get("awe"), d.awe),
    )


def _mood(raw: Any) -> Tuple[str, ...]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        return ("unknown",)
    tags = tuple(str(m).strip().lower() for m in raw if str(m).strip())
    return tags or ("unknown",)


def _energy(raw: Any) -> float:
    try:
        v = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_VISUAL_ENERGY
    if v != v:
        return DEFAULT_VISUAL_ENERGY
    return max(1.0, min(10.0, v))


def _dim(raw: Any, fallback: int) -> int:
    try:
        v = int(raw)
    except (TypeError, ValueError):
        return int(fallback)
    return v if v > 0 else int(fallback)


def normalize_attributes(
    raw: Any,
    image_id: str,
    size: Tuple[int, int] = (0, 0),
    error: str | None = None,
) -> ImageAttributes:
    """Validate one collaborator response into :class:`ImageAttributes`."""
    if not isinstance(raw, Mapping):
        if raw is not None:
            logging.warning("vision: response for %s is not an object, using defaults", image_id)
        return ImageAttributes(
            image_id=str(image_id),
            width=int(size[0]),
            height=int(size[1]),
            analysis_error=error or ("malformed response" if raw is not None else None),
        )
    subject = raw.get("subject")
    subject = str(subject).strip().lower() if isinstance(subject, str) and subject.strip() else "unknown"
    emotion_raw = raw.get("emotion_vector", raw.get("emotion"))
    energy_raw = raw.get("visual_energy", raw.get("visualEnergy"))
    return ImageAttributes(
        image_id=str(image_id),
        subject=subject,
        mood=_mood(raw.get("mood")),
        emotion=_emotion(emotion_raw),
        visual_energy=_energy(energy_raw),
        width=_dim(raw.get("width"), size[0]),
        height=_dim(raw.get("height"), size[1]),
        analysis_error=error,
    )


def load_attributes(path: str) -> Dict[str, Dict[str, Any]]:
    """Read a JSON or YAML sidecar mapping image id to raw attributes.

    A list of objects carrying an ``id`` (or ``image_id``) key is accepted too.
    """
    with open(path, "r", encoding="utf8") as fh:
        if os.path.splitext(path)[1].lower() == ".json":
            data = json.load(fh)
        else:
            data = yaml.safe_load(fh)
    if data is None:
        return {}
    if isinstance(data, list):
        out: Dict[str, Dict[str, Any]] = {}
        for item in data:
            if isinstance(item, Mapping):
                key = item.get("id", item.get("image_id"))
                if key is not None:
                    out[str(key)] = dict(item)
        return out
    if not isinstance(data, Mapping):
        raise ValueError(f"attributes file {path} must contain a mapping or a list")
    return {str(k): v for k, v in data.items()}


def analyze_all(
    images: Iterable[Tuple[str, Tuple[int, int]]],
    analyze: Callable[[str], Any] | None = None,
    known: Mapping[str, Any] | None = None,
    delay: float = REQUEST_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> List[ImageAttributes]:
    """Collect attributes for ``(image_id, size)`` pairs, one call at a time.

    ``known`` answers come first; ``analyze`` is called for the rest with a
    fixed pause between calls. A failing call yields neutral defaults.
    """
    known = known or {}
    out: List[ImageAttributes] = []
    calls = 0
    for image_id, size in images:
        if image_id in known:
            out.append(normalize_attributes(known[image_id], image_id, size))
            continue
        if analyze is None:
            out.append(normalize_attributes(None, image_id, size))
            continue
        if calls and delay > 0:
            sleep(delay)
        calls += 1
        try:
            raw = analyze(image_id)
        except Exception as exc:  # collaborator failures degrade to defaults
            logging.warning("vision: analysis failed for %s: %s", image_id, exc)
            out.append(normalize_attributes(None, image_id, size, error=str(exc)))
            continue
        out.append(normalize_attributes(raw, image_id, size))
    return out
