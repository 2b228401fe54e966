"""Shot durations and the cumulative timeline handed to the encoder."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from .config import CROSSFADE_SECONDS, MAX_HOLD, MIN_HOLD
from .errors import HoldTooLongError, TimelineError
from .story import Beat, Purpose
from .transitions import Transition, TransitionKind

BEAT_DURATION_FACTORS = {
    Beat.ARRIVAL: 1.08,
    Beat.OBSERVATION: 1.0,
    Beat.DISTANCE: 1.04,
    Beat.PEAK: 0.92,
    Beat.RELEASE: 1.12,
}
PURPOSE_DURATION_FACTORS = {
    Purpose.CLIMAX: 1.15,
    Purpose.RESOLVE: 0.85,
    Purpose.RESOLUTION: 0.85,
}
HINGE_FACTOR = 0.90
MONOTONY_WINDOW = 0.15
MONOTONY_BUMP = 0.25
MIN_SHOT_SECONDS = 0.5
SNAP_TOLERANCE = 0.08
SNAP_MIN_KEEP = 0.2
_EPS = 1e-6


def quantize(seconds: float, fps: int) -> float:
    """Round to a whole number of frames."""
    return round(seconds * fps) / fps


def target_and_hold(count: int, target_duration: float | None = None) -> Tuple[float, float]:
    """Return ``(target, hold)`` for ``count`` shots.

    Without an explicit target, short sets are capped so no shot needs to be
    held longer than :data:`MAX_HOLD`. A hold beyond that raises, since it
    points at a bad target rather than something padding should hide.
    """
    if count <= 0:
        raise TimelineError("cannot time an empty sequence")
    if target_duration is None:
        target = max(12.0, min(30.0, count * 1.7))
        target = min(target, count * MAX_HOLD + CROSSFADE_SECONDS)
    else:
        target = float(target_duration)
    hold = max(MIN_HOLD, (target - CROSSFADE_SECONDS) / count)
    if hold > MAX_HOLD + _EPS:
        raise HoldTooLongError(
            f"hold={hold:.2f}s for N={count} target={target:.2f}s exceeds {MAX_HOLD:.1f}s"
        )
    return target, hold


def compute_shot_durations(
    count: int,
    fps: int = 24,
    *,
    beats: Sequence[Beat | None] | None = None,
    purposes: Sequence[Purpose | None] | None = None,
    hinge_index: int | None = None,
    target_duration: float | None = None,
) -> List[float]:
    """Base duration of each shot, before any transition holds."""
    _, hold = target_and_hold(count, target_duration)
    durations: List[float] = []
    for i in range(count):
        d = hold
        beat = beats[i] if beats is not None else None
        if beat is not None:
            d *= BEAT_DURATION_FACTORS[beat]
        purpose = purposes[i] if purposes is not None else None
        if purpose is not None:
            d *= PURPOSE_DURATION_FACTORS.get(purpose, 1.0)
        if hinge_index is not None and i == hinge_index:
            d *= HINGE_FACTOR
        durations.append(d)

    # break up runs of three near-identical lengths
    for i in range(2, count):
        a, b, c = durations[i - 2], durations[i - 1], durations[i]
        if abs(a - b) < MONOTONY_WINDOW and abs(b - c) < MONOTONY_WINDOW:
            durations[i] = c + (MONOTONY_BUMP if i % 2 == 0 else -MONOTONY_BUMP)

    return [quantize(max(MIN_SHOT_SECONDS, d), fps) for d in durations]


def snap_to_beats(
    durations: Sequence[float],
    overlaps: Sequence[float],
    beat_times: Sequence[float],
    fps: int = 24,
    tolerance: float = SNAP_TOLERANCE,
    min_keep: float = SNAP_MIN_KEEP,
) -> List[float]:
    """Nudge shot starts onto nearby beats.

    Moving the start of shot ``i`` lengthens the previous shot and shortens
    shot ``i`` by the same amount, so later starts do not move. A snap is
    skipped when either shot would keep less than ``min_keep`` seconds.
    """
    out = list(durations)
    if not beat_times or len(out) < 2:
        return out
    start = 0.0
    for i in range(1, len(out)):
        start = start + out[i - 1] - overlaps[i - 1]
        nearest = min(beat_times, key=lambda b: abs(b - start))
        delta = quantize(nearest - start, fps)
        if delta == 0 or abs(delta) > tolerance:
            continue
        if out[i] - delta < min_keep or out[i - 1] + delta < min_keep:
            continue
        if out[i - 1] + delta <= overlaps[i - 1] or out[i] - delta <= (overlaps[i] if i < len(overlaps) else 0.0):
            continue
        out[i - 1] += delta
        out[i] -= delta
        start += delta
    return out


@dataclass
class Segment:
    image_id: str
    index: int
    base_duration: float
    duration: float
    start: float
    transition: Transition | None = None

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass
class Timeline:
    segments: List[Segment]
    transitions: List[Transition] = field(default_factory=list)
    offsets: List[float] = field(default_factory=list)
    total_duration: float = 0.0
    fps: int = 24

    @property
    def durations(self) -> List[float]:
        return [s.duration for s in self.segments]

    def to_encoder_plan(self) -> List[Dict[str, object]]:
        """Ordered ``(segment, duration, transition-to-next)`` records."""
        return [
            {
                "segment": s.image_id,
                "start": round(s.start, 6),
                "duration": round(s.duration, 6),
                "transition": s.transition.to_dict() if s.transition else None,
            }
            for s in self.segments
        ]

    def errors(self) -> List[str]:
        errs: List[str] = []
        if not self.segments:
            return ["timeline has no segments"]
        if len(self.transitions) != len(self.segments) - 1:
            errs.append(
                f"{len(self.transitions)} transitions for {len(self.segments)} segments"
            )
        for s in self.segments:
            if s.duration <= 0:
                errs.append(f"segment {s.index} has non-positive duration {s.duration:.3f}")
        for i, t in enumerate(self.transitions):
            if t.duration < 0 or t.hold_seconds < 0:
                errs.append(f"transition {i} has a negative duration")
            if t.is_dissolve and i + 1 < len(self.segments):
                shortest = min(self.segments[i].duration, self.segments[i + 1].duration)
                if t.duration >= shortest:
                    errs.append(
                        f"transition {i} overlap {t.duration:.3f}s not shorter than {shortest:.3f}s"
                    )
        for a, b in zip(self.offsets, self.offsets[1:]):
            if b + _EPS < a:
                errs.append(f"offsets decrease ({a:.3f} -> {b:.3f})")
                break
        last = self.segments[-1]
        if abs(last.start + last.duration - self.total_duration) > 1e-6:
            errs.append(
                f"last start {last.start:.3f} + duration {last.duration:.3f} != total {self.total_duration:.3f}"
            )
        expected = sum(s.duration for s in self.segments) - sum(t.duration for t in self.transitions)
        if abs(expected - self.total_duration) > 1e-6:
            errs.append(f"total {self.total_duration:.3f} != durations minus overlaps {expected:.3f}")
        return errs

    def verify(self) -> None:
        errs = self.errors()
        if errs:
            raise TimelineError("; ".join(errs))

    def to_dict(self) -> Dict[str, object]:
        return {
            "fps": self.fps,
            "total_duration": round(self.total_duration, 6),
            "offsets": [round(o, 6) for o in self.offsets],
            "segments": self.to_encoder_plan(),
        }


def assemble_timeline(
    ids: Sequence[str],
    base_durations: Sequence[float],
    transitions: Sequence[Transition],
    fps: int = 24,
    beat_times: Sequence[float] | None = None,
) -> Timeline:
    """Lay shots out end to end.

    Each hold transition lengthens the shot before it. Shot ``i+1`` starts
    where shot ``i`` ends minus the dissolve overlap between them, and that
    start is also the offset of the transition.
    """
    if len(ids) != len(base_durations):
        raise TimelineError(f"{len(ids)} ids but {len(base_durations)} durations")
    if not ids:
        raise TimelineError("cannot assemble an empty timeline")
    if len(transitions) != len(ids) - 1:
        raise TimelineError(f"{len(transitions)} transitions for {len(ids)} shots")

    base = [float(d) for d in base_durations]
    overlaps = [t.duration if t.is_dissolve else 0.0 for t in transitions]
    if beat_times:
        base = snap_to_beats(base, overlaps, beat_times, fps)

    durations = list(base)
    for t in transitions:
        if t.kind == TransitionKind.HOLD_CUT and t.hold_seconds > 0:
            durations[t.from_index] += t.hold_seconds

    segments: List[Segment] = []
    offsets: List[float] = []
    start = 0.0
    for i, image_id in enumerate(ids):
        trans = transitions[i] if i < len(transitions) else None
        segments.append(Segment(str(image_id), i, base[i], durations[i], start, trans))
        if trans is not None:
            start = start + durations[i] - overlaps[i]
            offsets.append(start)

    total = segments[-1].start + segments[-1].duration
    timeline = Timeline(segments, list(transitions), offsets, total, fps)
    timeline.verify()
    if len(ids) == 1:
        logging.debug("timeline: single shot of %.3fs", total)
    return timeline

