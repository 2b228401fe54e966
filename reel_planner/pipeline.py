"""End-to-end planning of one reel."""
from __future__ import annotations

import glob
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from PIL import Image

from .audio import beats_from_bpm, extract_beats
from .config import AUDIO_EXTS, IMAGE_EXTS, PlannerConfig
from .filtergraph import build_filter_complex
from .motion import MotionSpec, plan_motions, summarize as summarize_motion
from .reframe import FramePlanCache, SaliencyPlan, output_size_for, parse_aspect, plan_reframe
from .sequence import OrderingResult, plan_sequence
from .story import StoryLock, create_story_lock
from .timeline import Timeline, assemble_timeline, compute_shot_durations
from .transitions import Transition, plan_transitions, summarize as summarize_transitions
from .vision import ImageAttributes, analyze_all


class PlannerContext:
    """Configuration and the frame-plan cache for a planning session.

    Usable as a context manager; leaving it drops the cached plans.
    """

    def __init__(self, config: PlannerConfig | None = None):
        self.config = config or PlannerConfig()
        self.cache = FramePlanCache(self.config.cache_size)

    def __enter__(self) -> "PlannerContext":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.cache.clear()

    def reframe(self, image: Image.Image | bytes, image_id: str, aspect: float) -> SaliencyPlan:
        cfg = self.config
        return plan_reframe(
            image,
            aspect,
            image_id=image_id,
            cache=self.cache,
            confidence_threshold=cfg.confidence_threshold,
            headroom_bias=cfg.headroom_bias,
            max_score_dim=cfg.max_score_dim,
            peak_mean_ratio_threshold=cfg.peak_mean_ratio,
            high_confidence_threshold=cfg.high_confidence,
        )


@dataclass
class ReelPlan:
    image_paths: Dict[str, str]
    frame_plans: Dict[str, SaliencyPlan]
    attributes: Dict[str, ImageAttributes]
    ordering: OrderingResult
    lock: StoryLock
    motions: List[MotionSpec]
    transitions: List[Transition]
    timeline: Timeline
    filter_complex: str
    final_label: str
    output_size: tuple
    beat_times: List[float] = field(default_factory=list)

    @property
    def needs_review(self) -> List[str]:
        return [i for i in self.lock.ordered_ids if self.frame_plans[i].needs_review]

    def to_dict(self) -> Dict[str, Any]:
        ids = self.lock.ordered_ids
        return {
            "output_size": list(self.output_size),
            "ordering": {
                "ids": list(self.ordering.ordered_ids),
                "used_fallback": self.ordering.used_fallback,
                "violations": list(self.ordering.violations),
            },
            "lock": self.lock.to_dict(),
            "shots": [
                {
                    **shot.to_dict(),
                    "path": self.image_paths.get(shot.image_id),
                    "reframe": self.frame_plans[shot.image_id].to_dict(),
                    "motion": motion.to_dict(),
                }
                for shot, motion in zip(self.lock.shots, self.motions)
            ],
            "needs_review": self.needs_review,
            "motion_summary": summarize_motion(self.motions),
            "transition_summary": summarize_transitions(self.transitions),
            "timeline": self.timeline.to_dict(),
            "filter_complex": self.filter_complex,
            "final_label": self.final_label,
            "beat_times": list(self.beat_times),
            "kept": len(ids),
        }


def list_images(folder: str) -> List[str]:
    paths = [
        p for p in glob.glob(os.path.join(folder, "*"))
        if os.path.splitext(p)[1].lower() in IMAGE_EXTS
    ]
    paths.sort(key=lambda s: os.path.basename(s).lower())
    return paths


def image_id_for(path: str) -> str:
    return os.path.basename(path)


def plan_reel(
    images: str | Sequence[str],
    config: PlannerConfig | None = None,
    *,
    order_response: Any = None,
    attributes: Mapping[str, Any] | None = None,
    audio_path: str | None = None,
    context: PlannerContext | None = None,
) -> ReelPlan:
    """Plan a reel from a folder (or list) of images.

    ``order_response`` is the raw reply of an ordering collaborator and
    ``attributes`` maps image ids to raw vision results; both are validated
    and fall back to deterministic defaults. A ``context`` carries its own
    config, so passing a different ``config`` alongside it is an error.
    """
    if context is not None and config is not None and config != context.config:
        raise ValueError("pass the config through the context, not both")
    paths = list_images(images) if isinstance(images, str) else list(images)
    if not paths:
        raise FileNotFoundError("no images to plan")
    ctx = context or PlannerContext(config)
    cfg = ctx.config
    aspect = parse_aspect(cfg.aspect)
    output_size = output_size_for(aspect)

    image_paths: Dict[str, str] = {}
    frame_plans: Dict[str, SaliencyPlan] = {}
    sizes = []
    for path in paths:
        image_id = image_id_for(path)
        if image_id in image_paths:
            image_id = path
        image_paths[image_id] = path
        try:
            with Image.open(path) as img:
                frame_plans[image_id] = ctx.reframe(img, image_id, aspect)
        except OSError as exc:
            logging.warning("cannot open %s: %s", path, exc)
            with open(path, "rb") as fh:
                frame_plans[image_id] = ctx.reframe(fh.read(), image_id, aspect)
        sizes.append((image_id, frame_plans[image_id].source_size))

    attrs = {a.image_id: a for a in analyze_all(sizes, known=attributes or {})}
    ids = list(image_paths)
    ordering, shots = plan_sequence(ids, order_response, attrs)
    lock = create_story_lock(attrs, ordering.ordered_ids, shots)
    kept = lock.ordered_ids

    motions = plan_motions(len(kept), cfg.motion_pack, cfg.seed, output_size)
    hinge_index = kept.index(lock.hinge_id) if lock.hinge_id in kept else None
    portrait = [attrs[i].is_portrait for i in kept]
    transitions = plan_transitions(
        motions,
        cfg.fps,
        portrait=portrait,
        hinge_index=hinge_index,
        cluster_ids=[lock.cluster_of.get(i) for i in kept],
        dissolve_cluster_id=lock.dissolve_cluster_id,
        cut_only=cfg.cut_only,
    )
    durations = compute_shot_durations(
        len(kept),
        cfg.fps,
        beats=[s.beat for s in lock.shots],
        purposes=[s.purpose for s in lock.shots],
        hinge_index=hinge_index,
        target_duration=cfg.target_duration,
    )

    beat_times: List[float] = []
    if cfg.align_beat:
        if audio_path:
            beat_times = extract_beats(audio_path)
        elif cfg.bpm:
            beat_times = beats_from_bpm(cfg.bpm, sum(durations))
    timeline = assemble_timeline(kept, durations, transitions, cfg.fps, beat_times or None)
    filter_complex, final_label = build_filter_complex(
        timeline, motions, output_size, [frame_plans[i] for i in kept]
    )
    logging.info(
        "planned %d/%d shots, %.2fs, %s",
        len(kept), len(ids), timeline.total_duration, summarize_transitions(transitions),
    )
    if context is None:
        ctx.close()
    return ReelPlan(
        image_paths=image_paths,
        frame_plans=frame_plans,
        attributes=attrs,
        ordering=ordering,
        lock=lock,
        motions=motions,
        transitions=transitions,
        timeline=timeline,
        filter_complex=filter_complex,
        final_label=final_label,
        output_size=output_size,
        beat_times=beat_times,
    )


def find_audio(folder: str) -> str | None:
    for p in sorted(glob.glob(os.path.join(folder, "*"))):
        if os.path.splitext(p)[1].lower() in AUDIO_EXTS:
            return p
    return None
