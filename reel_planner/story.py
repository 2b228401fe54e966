"""Narrative lock: beats, clusters, heroes, down-selection and the hinge shot."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Mapping, Sequence, Tuple

from .vision import ImageAttributes, NEUTRAL_EMOTION


class Purpose(str, Enum):
    ESTABLISH = "establish"
    BUILD = "build"
    CLIMAX = "climax"
    RESOLVE = "resolve"
    CONTRAST = "contrast"
    ISOLATE = "isolate"
    OBSERVE = "observe"
    OPENING = "opening"
    TURN = "turn"
    RESOLUTION = "resolution"

    @classmethod
    def parse(cls, value: object, default: "Purpose | None" = None) -> "Purpose":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.BUILD


class Beat(str, Enum):
    ARRIVAL = "arrival"
    OBSERVATION = "observation"
    DISTANCE = "distance"
    PEAK = "peak"
    RELEASE = "release"


class Role(str, Enum):
    HERO = "hero"
    SUPPORT = "support"


STORY_ARC = (Beat.ARRIVAL, Beat.OBSERVATION, Beat.DISTANCE, Beat.PEAK, Beat.RELEASE)

BEAT_WEIGHTS = {
    Beat.ARRIVAL: 0.2,
    Beat.OBSERVATION: 0.1,
    Beat.DISTANCE: 0.6,
    Beat.PEAK: 1.2,
    Beat.RELEASE: 0.4,
}

_PURPOSE_BEATS = {
    Purpose.ESTABLISH: Beat.ARRIVAL,
    Purpose.OPENING: Beat.ARRIVAL,
    Purpose.OBSERVE: Beat.OBSERVATION,
    Purpose.CONTRAST: Beat.DISTANCE,
    Purpose.ISOLATE: Beat.DISTANCE,
    Purpose.TURN: Beat.DISTANCE,
    Purpose.CLIMAX: Beat.PEAK,
    Purpose.RESOLVE: Beat.RELEASE,
    Purpose.RESOLUTION: Beat.RELEASE,
}

MAX_CLUSTER_SIZE = 3
MAX_KEPT_PER_CLUSTER = 3
SECOND_HERO_MIN_SHOTS = 8


@dataclass(frozen=True)
class Shot:
    image_id: str
    purpose: Purpose = Purpose.BUILD
    beat: Beat | None = None
    role: Role = Role.SUPPORT
    cluster_id: int | None = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.image_id,
            "purpose": self.purpose.value,
            "beat": self.beat.value if self.beat else None,
            "role": self.role.value,
            "cluster": self.cluster_id,
        }


@dataclass
class StoryLock:
    ordered_ids: List[str]
    dropped_ids: List[str] = field(default_factory=list)
    hero_ids: List[str] = field(default_factory=list)
    hinge_id: str | None = None
    dissolve_cluster_id: int | None = None
    desired_count: int = 0
    shots: List[Shot] = field(default_factory=list)
    clusters: List[Tuple[int, List[str]]] = field(default_factory=list)
    beat_of: Dict[str, Beat] = field(default_factory=dict)
    cluster_of: Dict[str, int] = field(default_factory=dict)
    reasons: Dict[str, Dict[str, object]] = field(default_factory=dict)
    degraded: bool = False

    @property
    def supporting_ids(self) -> List[str]:
        heroes = set(self.hero_ids)
        return [i for i in self.ordered_ids if i not in heroes]

    def in_dissolve_cluster(self, image_id: str) -> bool:
        return (
            self.dissolve_cluster_id is not None
            and self.cluster_of.get(image_id) == self.dissolve_cluster_id
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "ordered_ids": list(self.ordered_ids),
            "dropped_ids": list(self.dropped_ids),
            "hero_ids": list(self.hero_ids),
            "supporting_ids": self.supporting_ids,
            "hinge_id": self.hinge_id,
            "dissolve_cluster_id": self.dissolve_cluster_id,
            "dissolve_cluster_ids": [i for i in self.ordered_ids if self.in_dissolve_cluster(i)],
            "desired_count": self.desired_count,
            "clusters": [{"id": cid, "ids": list(ids)} for cid, ids in self.clusters],
            "reasons": self.reasons,
            "degraded": self.degraded,
        }


def beat_for(purpose: Purpose, index: int, total: int) -> Beat:
    """Explicit purposes win; everything else is placed by position."""
    if purpose in _PURPOSE_BEATS:
        return _PURPOSE_BEATS[purpose]
    p = index / (total - 1) if total > 1 else 0.5
    if p < 0.18:
        return Beat.ARRIVAL
    if p < 0.45:
        return Beat.OBSERVATION
    if p < 0.72:
        return Beat.DISTANCE
    if p < 0.90:
        return Beat.PEAK
    return Beat.RELEASE


def desired_count_for(total: int) -> int:
    if total <= 9:
        return total
    if total >= 13:
        return 9
    return 8


def mood_overlap(a: Sequence[str], b: Sequence[str]) -> int:
    sa = set(a)
    return sum(1 for m in b if m in sa)


def _similar(a: ImageAttributes, b: ImageAttributes) -> bool:
    return (bool(a.subject) and a.subject == b.subject) or mood_overlap(a.mood, b.mood) > 0


def cluster_shots(
    ordered_ids: Sequence[str],
    beat_of: Mapping[str, Beat],
    attrs: Mapping[str, ImageAttributes],
) -> Tuple[List[Tuple[int, List[str]]], Dict[str, int]]:
    """Split the ordering into contiguous runs of similar shots."""
    clusters: List[Tuple[int, List[str]]] = []
    cluster_of: Dict[str, int] = {}
    current: List[str] = []

    def flush() -> None:
        if current:
            cid = len(clusters)
            clusters.append((cid, list(current)))
            for i in current:
                cluster_of[i] = cid
            current.clear()

    for image_id in ordered_ids:
        if current:
            prev = current[-1]
            if (
                len(current) >= MAX_CLUSTER_SIZE
                or beat_of[prev] != beat_of[image_id]
                or (len(current) >= 2 and not _similar(attrs[prev], attrs[image_id]))
            ):
                flush()
        current.append(image_id)
    flush()
    return clusters, cluster_of


def pick_heroes(shots: Sequence[Shot], attrs: Mapping[str, ImageAttributes]) -> List[str]:
    heroes: List[str] = []
    for s in shots:
        if s.purpose == Purpose.CLIMAX:
            heroes.append(s.image_id)
            break
    if len(shots) >= SECOND_HERO_MIN_SHOTS:
        others = [s.image_id for s in shots if s.image_id not in heroes]
        if others:
            # max() keeps the earliest id on ties
            heroes.append(max(others, key=lambda i: attrs[i].visual_energy))
    return heroes


def down_select(
    ordered_ids: Sequence[str],
    desired: int,
    beat_of: Mapping[str, Beat],
    cluster_of: Mapping[str, int],
    heroes: Sequence[str],
    attrs: Mapping[str, ImageAttributes],
) -> List[str]:
    """Choose which ids survive when the sequence is longer than ``desired``.

    One representative per beat and every hero are kept unconditionally; the
    remaining slots are filled greedily, never letting a cluster exceed
    :data:`MAX_KEPT_PER_CLUSTER` kept shots.
    """
    if desired >= len(ordered_ids):
        return list(ordered_ids)

    keep: List[str] = []
    for beat in STORY_ARC:
        members = [i for i in ordered_ids if beat_of[i] == beat]
        if members:
            best = max(members, key=lambda i: attrs[i].visual_energy)
            if best not in keep:
                keep.append(best)
    for h in heroes:
        if h not in keep:
            keep.append(h)

    kept_by_cluster: Dict[int, int] = {}
    for i in keep:
        kept_by_cluster[cluster_of[i]] = kept_by_cluster.get(cluster_of[i], 0) + 1

    hero_set = set(heroes)

    def score(i: str) -> float:
        already = kept_by_cluster.get(cluster_of[i], 0)
        return (
            attrs[i].visual_energy / 10.0
            + BEAT_WEIGHTS[beat_of[i]]
            + (1.0 if i in hero_set else 0.0)
            + (0.3 if already == 0 else 0.0)
        )

    while len(keep) < desired:
        remaining = [
            i for i in ordered_ids
            if i not in keep and kept_by_cluster.get(cluster_of[i], 0) < MAX_KEPT_PER_CLUSTER
        ]
        if not remaining:
            break
        best = max(remaining, key=score)
        keep.append(best)
        kept_by_cluster[cluster_of[best]] = kept_by_cluster.get(cluster_of[best], 0) + 1

    kept = set(keep)
    return [i for i in ordered_ids if i in kept]


def hinge_score(a: ImageAttributes) -> float:
    e = a.emotion
    return a.visual_energy + 6 * e.tension + 4 * e.mystery + 2 * e.awe


def pick_hinge(
    final_order: Sequence[str],
    beat_of: Mapping[str, Beat],
    attrs: Mapping[str, ImageAttributes],
) -> str | None:
    if len(final_order) < 3:
        return None
    best: str | None = None
    best_score = float("-inf")
    for image_id in final_order[1:-1]:
        if beat_of[image_id] not in (Beat.DISTANCE, Beat.PEAK):
            continue
        s = hinge_score(attrs[image_id])
        if s > best_score:
            best, best_score = image_id, s
    return best


def pick_dissolve_cluster(
    clusters: Sequence[Tuple[int, List[str]]],
    final_order: Sequence[str],
    attrs: Mapping[str, ImageAttributes],
) -> int | None:
    """Best interior cluster for a soft transition, or ``None``."""
    pos = {i: n for n, i in enumerate(final_order)}
    best: int | None = None
    best_score = float("-inf")
    for cid, ids in clusters:
        kept = [i for i in ids if i in pos]
        if len(kept) < 2:
            continue
        positions = sorted(pos[i] for i in kept)
        if positions[0] <= 0 or positions[-1] >= len(final_order) - 2:
            continue
        overlap = sum(mood_overlap(attrs[a].mood, attrs[b].mood) for a, b in zip(kept, kept[1:]))
        score = (2 if len(kept) == 2 else 0) + overlap
        if score > best_score:
            best, best_score = cid, score
    return best


def _attribute_map(
    attributes: Sequence[ImageAttributes] | Mapping[str, ImageAttributes],
    ordered_ids: Sequence[str],
) -> Dict[str, ImageAttributes]:
    if isinstance(attributes, Mapping):
        attrs = {str(k): v for k, v in attributes.items()}
    else:
        attrs = {a.image_id: a for a in attributes}
    for i in ordered_ids:
        if i not in attrs:
            attrs[i] = ImageAttributes(image_id=i, emotion=NEUTRAL_EMOTION)
    return attrs


def create_story_lock(
    attributes: Sequence[ImageAttributes] | Mapping[str, ImageAttributes],
    ordered_ids: Sequence[str],
    shots: Sequence[Shot] | None = None,
) -> StoryLock:
    """Lock the narrative for a validated ordering.

    Never raises: on an unexpected failure every shot is kept, with no hero
    and no hinge, and ``degraded`` is set.
    """
    ordered = [str(i) for i in ordered_ids]
    try:
        return _create_story_lock(attributes, ordered, shots)
    except Exception:  # planning must always produce an order
        logging.exception("story lock failed; keeping every shot")
        return StoryLock(
            ordered_ids=list(ordered),
            desired_count=len(ordered),
            shots=[Shot(image_id=i) for i in ordered],
            degraded=True,
        )


def _create_story_lock(
    attributes: Sequence[ImageAttributes] | Mapping[str, ImageAttributes],
    ordered: List[str],
    shots: Sequence[Shot] | None,
) -> StoryLock:
    total = len(ordered)
    attrs = _attribute_map(attributes, ordered)
    by_id = {s.image_id: s for s in (shots or [])}
    base_shots = [by_id.get(i, Shot(image_id=i)) for i in ordered]

    beat_of = {s.image_id: beat_for(s.purpose, n, total) for n, s in enumerate(base_shots)}
    clusters, cluster_of = cluster_shots(ordered, beat_of, attrs)
    heroes = pick_heroes(base_shots, attrs)
    desired = desired_count_for(total)
    final_order = down_select(ordered, desired, beat_of, cluster_of, heroes, attrs)
    kept = set(final_order)
    hinge = pick_hinge(final_order, beat_of, attrs)
    dissolve_cluster = pick_dissolve_cluster(clusters, final_order, attrs)

    hero_set = set(heroes)
    final_shots = [
        replace(
            s,
            beat=beat_of[s.image_id],
            role=Role.HERO if s.image_id in hero_set else Role.SUPPORT,
            cluster_id=cluster_of[s.image_id],
        )
        for s in base_shots
        if s.image_id in kept
    ]

    reasons: Dict[str, Dict[str, object]] = {}
    for s in base_shots:
        a = attrs[s.image_id]
        hero = s.image_id in hero_set
        reasons[s.image_id] = {
            "purpose": s.purpose.value,
            "hero": hero,
            "beat": beat_of[s.image_id].value,
            "cluster": cluster_of[s.image_id],
            "keep": s.image_id in kept,
            "subject": a.subject,
            "mood": list(a.mood),
            "reason": f"hero_{s.purpose.value}" if hero else s.purpose.value,
        }

    dropped = [i for i in ordered if i not in kept]
    if dropped:
        logging.info("story lock: keeping %d of %d shots", len(final_order), total)

    return StoryLock(
        ordered_ids=final_order,
        dropped_ids=dropped,
        hero_ids=heroes,
        hinge_id=hinge,
        dissolve_cluster_id=dissolve_cluster,
        desired_count=desired,
        shots=final_shots,
        clusters=clusters,
        beat_of=beat_of,
        cluster_of=cluster_of,
        reasons=reasons,
    )
