"""Duration safety net for rendered files."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable

try:
    from moviepy.editor import ImageClip, VideoFileClip, concatenate_videoclips
except ModuleNotFoundError:  # moviepy >=2.0
    from moviepy import ImageClip, VideoFileClip, concatenate_videoclips

from .errors import DurationShortfallError

DEFAULT_TOLERANCE = 0.1
DEFAULT_MAX_PAD = 3.0


@dataclass(frozen=True)
class PadResult:
    padded: bool
    before: float
    after: float
    delta: float = 0.0


def _with_duration(clip, duration):
    """moviepy 1.x/2.x compatible duration setter."""
    return getattr(clip, "with_duration", clip.set_duration)(duration)


def probe_duration(path: str) -> float:
    """Duration of a video file in seconds."""
    clip = VideoFileClip(path, audio=False)
    try:
        return float(clip.duration or 0.0)
    finally:
        clip.close()


def pad_last_frame(path: str, delta: float) -> None:
    """Extend ``path`` by ``delta`` seconds of its final frame, in place."""
    clip = VideoFileClip(path, audio=False)
    try:
        fps = clip.fps or 24
        last = clip.get_frame(max(0.0, clip.duration - 1.0 / fps))
        tail = _with_duration(ImageClip(last), delta)
        out = concatenate_videoclips([clip, tail])
        base, ext = os.path.splitext(path)
        tmp = f"{base}.padtmp{ext or '.mp4'}"
        out.write_videofile(tmp, fps=fps, codec="libx264", audio=False, logger=None)
    finally:
        clip.close()
    os.replace(tmp, path)


def ensure_min_duration(
    path: str,
    expected: float,
    tolerance: float = DEFAULT_TOLERANCE,
    max_pad: float = DEFAULT_MAX_PAD,
    probe: Callable[[str], float] = probe_duration,
    pad: Callable[[str, float], None] = pad_last_frame,
) -> PadResult:
    """Make sure the rendered file is at least ``expected`` seconds long.

    A shortfall within ``tolerance`` is left alone; up to ``max_pad`` seconds
    are filled by freezing the last frame. Anything larger means the plan and
    the render disagree and raises :class:`DurationShortfallError`.
    """
    actual = probe(path)
    if actual >= expected - tolerance:
        return PadResult(False, actual, actual)
    delta = expected - actual
    if delta > max_pad:
        raise DurationShortfallError(
            f"{path}: rendered {actual:.3f}s, expected {expected:.3f}s "
            f"(short by {delta:.3f}s, limit {max_pad:.3f}s)"
        )
    logging.warning("finalize: %s short by %.3fs, cloning last frame", path, delta)
    pad(path, delta)
    after = probe(path)
    return PadResult(True, actual, after, delta)
