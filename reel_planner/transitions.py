"""Editorial transition choice between adjacent shots."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence

from .motion import MotionSpec

ZOOM_EPSILON = 0.004
PAN_EPSILON_PCT = 0.6
DISSOLVE_BUDGET_FRACTION = 0.25
HINGE_HOLD_FRAMES = 8
CLUSTER_DISSOLVE_FRAMES = 6


class TransitionKind(str, Enum):
    CUT = "cut"
    DISSOLVE = "dissolve"
    HOLD_CUT = "hold_cut"
    DIP_TO_BLACK = "dip_to_black"


class TransitionPreset(str, Enum):
    HARD_CUT = "hard_cut"
    MATCH_DISSOLVE = "match_dissolve"
    PUSH_THROUGH = "push_through"
    BREATH_HOLD = "breath_hold"
    DIP_TO_BLACK_MICRO = "dip_to_black_micro"


@dataclass(frozen=True)
class Transition:
    from_index: int
    to_index: int
    kind: TransitionKind = TransitionKind.CUT
    preset: TransitionPreset = TransitionPreset.HARD_CUT
    duration: float = 0.0
    hold_seconds: float = 0.0
    reason: str = "hard_cut"

    @property
    def is_dissolve(self) -> bool:
        """Dissolve-class transitions overlap the two shots."""
        return self.kind in (TransitionKind.DISSOLVE, TransitionKind.DIP_TO_BLACK)

    @property
    def xfade(self) -> str | None:
        return {
            TransitionKind.DISSOLVE: "fade",
            TransitionKind.DIP_TO_BLACK: "fadeblack",
        }.get(self.kind)

    def to_dict(self) -> Dict[str, object]:
        return {
            "from": self.from_index,
            "to": self.to_index,
            "kind": self.kind.value,
            "preset": self.preset.value,
            "duration": round(self.duration, 6),
            "hold_seconds": round(self.hold_seconds, 6),
            "reason": self.reason,
        }


def frames_to_seconds(frames: int, fps: int) -> float:
    return max(0.0, frames / max(1, fps))


def zoom_direction(spec: MotionSpec) -> str:
    dz = spec.end_zoom - spec.start_zoom
    if abs(dz) < ZOOM_EPSILON:
        return "static"
    return "in" if dz > 0 else "out"


def pan_direction(spec: MotionSpec) -> Dict[str, str]:
    def direction(v: float) -> str:
        if abs(v) < PAN_EPSILON_PCT:
            return "static"
        return "pos" if v > 0 else "neg"

    return {"x": direction(spec.pan_x_percent), "y": direction(spec.pan_y_percent)}


def is_near_static(spec: MotionSpec) -> bool:
    return (
        abs(spec.end_zoom - spec.start_zoom) < ZOOM_EPSILON
        and abs(spec.pan_x_percent) < PAN_EPSILON_PCT
        and abs(spec.pan_y_percent) < PAN_EPSILON_PCT
    )


def emotional_intensity(position: float) -> str:
    if 0.70 <= position < 0.90:
        return "high"
    if 0.15 <= position < 0.70:
        return "medium"
    return "low"


def phase_of(position: float) -> str:
    if position < 0.15:
        return "intro"
    if position < 0.70:
        return "development"
    if position < 0.90:
        return "climax"
    return "resolve"


def hard_cut(i: int, reason: str) -> Transition:
    return Transition(i, i + 1, TransitionKind.CUT, TransitionPreset.HARD_CUT, 0.0, 0.0, reason)


def _dissolve(i: int, preset: TransitionPreset, frames: int, fps: int, reason: str) -> Transition:
    return Transition(i, i + 1, TransitionKind.DISSOLVE, preset, frames_to_seconds(frames, fps), 0.0, reason)


def _hold(i: int, frames: int, fps: int, reason: str) -> Transition:
    return Transition(
        i, i + 1, TransitionKind.HOLD_CUT, TransitionPreset.BREATH_HOLD,
        0.0, frames_to_seconds(frames, fps), reason,
    )


def select_transition(
    position: float,
    from_motion: MotionSpec,
    to_motion: MotionSpec,
    intensity: str | None = None,
    is_vertical: bool = False,
    fps: int = 24,
    from_index: int = 0,
) -> Transition:
    """Pick the transition from shot ``from_index`` to the next one.

    Motion continuity is checked first: conflicting pans or opposite zooms
    always cut. Otherwise the sequence phase decides.
    """
    i = from_index
    if intensity is None:
        intensity = emotional_intensity(position)
    zf, zt = zoom_direction(from_motion), zoom_direction(to_motion)
    pf, pt = pan_direction(from_motion), pan_direction(to_motion)

    pan_conflict = any(
        pf[axis] != "static" and pt[axis] != "static" and pf[axis] != pt[axis]
        for axis in ("x", "y")
    )
    if pan_conflict:
        return hard_cut(i, "pan_conflict_hard_cut")
    if zf != "static" and zt != "static" and zf != zt:
        return hard_cut(i, "zoom_direction_flip_hard_cut")

    zoom_align = zf != "static" and zf == zt
    both_static = is_near_static(from_motion) and is_near_static(to_motion)
    phase = phase_of(position)

    if phase == "intro":
        if zoom_align and intensity != "high":
            return _dissolve(i, TransitionPreset.MATCH_DISSOLVE, 6, fps, "intro_match_dissolve")
        return hard_cut(i, "intro_hard_cut")

    if phase == "development":
        if zoom_align and zt == "in" and intensity != "low":
            return _dissolve(i, TransitionPreset.PUSH_THROUGH, 6, fps, "development_push_through")
        if zoom_align and intensity == "low" and not is_vertical:
            return _dissolve(i, TransitionPreset.MATCH_DISSOLVE, 5, fps, "development_match_dissolve")
        return hard_cut(i, "development_hard_cut")

    if phase == "climax":
        if both_static:
            return _hold(i, 10, fps, "pre_climax_static_hold")
        if intensity == "high":
            return _hold(i, 8, fps, "pre_climax_pause")
        return hard_cut(i, "climax_hard_cut")

    if position >= 0.94:
        return Transition(
            i, i + 1, TransitionKind.DIP_TO_BLACK, TransitionPreset.DIP_TO_BLACK_MICRO,
            frames_to_seconds(8, fps), 0.0, "resolve_dip_to_black_micro",
        )
    if both_static:
        return _hold(i, 12, fps, "resolve_breath_hold")
    return hard_cut(i, "resolve_hard_cut")


_PHASE_CUTS = {"intro_hard_cut", "development_hard_cut", "climax_hard_cut", "resolve_hard_cut"}


def max_dissolves(shot_count: int) -> int:
    return max(0, int((max(0, shot_count - 1)) * DISSOLVE_BUDGET_FRACTION))


def plan_transitions(
    motions: Sequence[MotionSpec],
    fps: int = 24,
    *,
    portrait: Sequence[bool] | None = None,
    hinge_index: int | None = None,
    cluster_ids: Sequence[int | None] | None = None,
    dissolve_cluster_id: int | None = None,
    cut_only: bool = False,
) -> List[Transition]:
    """One :class:`Transition` per adjacent pair of ``motions``.

    Dissolve-class transitions are capped at a quarter of the slots and never
    run back to back; anything over budget becomes a hard cut whose reason
    records the rule it replaced. The cut into ``hinge_index`` is always a
    breath hold. ``cut_only`` leaves only that hold and hard cuts.
    """
    n = len(motions)
    slots = max(0, n - 1)
    budget = max_dissolves(n)
    out: List[Transition] = []
    used = 0
    last_was_dissolve = False

    for i in range(slots):
        if hinge_index is not None and i + 1 == hinge_index:
            out.append(_hold(i, HINGE_HOLD_FRAMES, fps, "hinge_pre_breath"))
            last_was_dissolve = False
            continue
        if cut_only:
            out.append(hard_cut(i, "editorial_lock_hard_cut"))
            last_was_dissolve = False
            continue

        position = i / (slots - 1) if slots > 1 else 0.5
        vertical = bool(portrait[i + 1]) if portrait is not None else False
        t = select_transition(position, motions[i], motions[i + 1], None, vertical, fps, i)

        if (
            t.reason in _PHASE_CUTS
            and dissolve_cluster_id is not None
            and cluster_ids is not None
            and cluster_ids[i] == dissolve_cluster_id
            and cluster_ids[i + 1] == dissolve_cluster_id
        ):
            t = _dissolve(i, TransitionPreset.MATCH_DISSOLVE, CLUSTER_DISSOLVE_FRAMES, fps, "cluster_match_dissolve")

        if t.is_dissolve and (last_was_dissolve or used >= budget):
            logging.debug("transition %d: %s over budget, cutting", i, t.reason)
            t = hard_cut(i, f"{t.reason}_budget_cut")

        if t.is_dissolve:
            used += 1
            last_was_dissolve = True
        else:
            last_was_dissolve = False
        out.append(t)
    return out


def summarize(transitions: Sequence[Transition]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for t in transitions:
        counts[t.kind.value] = counts.get(t.kind.value, 0) + 1
    return counts

