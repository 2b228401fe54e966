"""ffmpeg ``-filter_complex`` text for a planned timeline.

Only the graph is produced here; running the encoder is the caller's job.
Each input is one still image, already in shot order.
"""
from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from .errors import TimelineError
from .motion import MotionSpec
from .reframe import SaliencyPlan
from .timeline import Timeline
from .transitions import TransitionKind

# Zoompan renders at twice the output size and is downscaled with lanczos
# to hide integer stepping of the crop window.
SUPERSAMPLE = 2


def _fmt(v: float) -> str:
    return f"{v:.6f}".rstrip("0").rstrip(".") or "0"


def _progress_expr(hold_frames: int, frames: int) -> str:
    move = max(1, frames - hold_frames - 1)
    return f"min(1,max(0,(on-{hold_frames})/{move}))"


def build_zoompan_expr(
    spec: MotionSpec,
    frames: int,
    fps: int,
    size: Tuple[int, int],
) -> str:
    """``zoompan`` filter that holds the first frame, then eases the move.

    The progress curve is the quintic smootherstep. The window position is
    clamped inside the input so an overshoot can never expose an edge.
    """
    frames = max(1, int(frames))
    hold_frames = min(frames, max(1, int(math.floor(spec.hold_seconds * fps))))
    t = _progress_expr(hold_frames, frames)
    ease = f"({t})*({t})*({t})*(({t})*(({t})*6-15)+10)"

    z0, z1 = _fmt(spec.start_zoom), _fmt(spec.end_zoom)
    zoom = f"if(lt(on,{hold_frames}),{z0},{z0}+({z1}-{z0})*{ease})"

    # pan_x is a fraction of the output width; the window is iw/zoom wide
    dx = f"{_fmt(spec.pan_x)}*iw*{ease}"
    if spec.noise:
        dx += f"+{_fmt(spec.noise)}*iw*sin(PI*{t})*sin({_fmt(spec.noise_phase)}+2*PI*{t})"
    dy = f"{_fmt(spec.pan_y)}*ih*{ease}"
    x = f"max(0,min(iw-iw/zoom,iw/2-iw/zoom/2+({dx})/zoom))"
    y = f"max(0,min(ih-ih/zoom,ih/2-ih/zoom/2+({dy})/zoom))"

    W, H = size
    return f"zoompan=z='{zoom}':x='{x}':y='{y}':d={frames}:s={W}x{H}:fps={fps}"


def _input_chain(
    i: int,
    spec: MotionSpec,
    frames: int,
    fps: int,
    output_size: Tuple[int, int],
    plan: SaliencyPlan | None,
) -> str:
    W, H = output_size
    RW, RH = W * SUPERSAMPLE, H * SUPERSAMPLE
    parts: List[str] = []
    if plan is not None and plan.crop.w > 0 and plan.crop.h > 0:
        c = plan.crop
        parts.append(f"crop={c.w}:{c.h}:{c.x}:{c.y}")
    parts.append(f"scale={RW}:{RH}:force_original_aspect_ratio=increase")
    parts.append(f"crop={RW}:{RH}")
    parts.append(build_zoompan_expr(spec, frames, fps, (RW, RH)))
    parts.append(f"scale={W}:{H}:flags=lanczos")
    parts.append(f"fps={fps}")
    parts.append("settb=AVTB")
    parts.append("setpts=PTS-STARTPTS")
    return f"[{i}:v]" + ",".join(parts) + f"[tb{i}]"


def build_filter_complex(
    timeline: Timeline,
    motions: Sequence[MotionSpec],
    output_size: Tuple[int, int] = (1920, 1080),
    plans: Sequence[SaliencyPlan | None] | None = None,
) -> Tuple[str, str]:
    """Return ``(filter_complex, final_label)`` for ``timeline``.

    Inputs render their base duration; breath holds are added by cloning the
    last frame with ``tpad`` before the cut.
    """
    segs = timeline.segments
    if len(motions) != len(segs):
        raise TimelineError(f"{len(motions)} motions for {len(segs)} segments")
    fps = timeline.fps
    parts: List[str] = []
    for i, seg in enumerate(segs):
        frames = max(1, int(round(seg.base_duration * fps)))
        plan = plans[i] if plans is not None else None
        parts.append(_input_chain(i, motions[i], frames, fps, output_size, plan))

    if len(segs) == 1:
        parts.append(
            f"[tb0]trim=duration={timeline.total_duration:.3f},setpts=PTS-STARTPTS[v]"
        )
        return ";".join(parts), "v"

    current = "tb0"
    last = len(timeline.transitions) - 1
    for i, trans in enumerate(timeline.transitions):
        nxt = f"tb{trans.to_index}"
        out = "v" if i == last else f"v{i}"
        raw = f"raw{i}"
        if trans.kind == TransitionKind.CUT:
            parts.append(f"[{current}][{nxt}]concat=n=2:v=1:a=0[{raw}]")
        elif trans.kind == TransitionKind.HOLD_CUT:
            hold = f"hold{i}"
            parts.append(
                f"[{current}]tpad=stop_mode=clone:stop_duration={trans.hold_seconds:.3f}[{hold}]"
            )
            parts.append(f"[{hold}][{nxt}]concat=n=2:v=1:a=0[{raw}]")
        else:
            parts.append(f"[{current}]settb=AVTB,setpts=PTS-STARTPTS[cfix{i}]")
            parts.append(f"[{nxt}]settb=AVTB,setpts=PTS-STARTPTS[nfix{i}]")
            parts.append(
                f"[cfix{i}][nfix{i}]xfade=transition={trans.xfade}"
                f":duration={trans.duration:.3f}:offset={timeline.offsets[i]:.3f}[{raw}]"
            )
        parts.append(f"[{raw}]settb=AVTB,setpts=PTS-STARTPTS[{out}]")
        current = out
    return ";".join(parts), "v"
