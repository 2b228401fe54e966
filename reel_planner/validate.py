"""Argument validation helpers for the reel_planner CLI."""
from __future__ import annotations

import os
from argparse import Namespace
from typing import List

from .motion import PACKS
from .reframe import parse_aspect

FPS_CHOICES = (24, 25, 30, 60)


def validate_args(args: Namespace) -> List[str]:
    """Validate parsed CLI arguments.

    Returns a list of human readable error messages. The caller should abort
    if the list is non-empty.
    """
    errors: List[str] = []
    if not os.path.isdir(args.folder):
        errors.append(f"folder {args.folder!r} does not exist")
    try:
        parse_aspect(args.aspect)
    except (ValueError, ZeroDivisionError):
        errors.append(f"--aspect {args.aspect!r} is not a ratio like 16:9")
    if args.pack not in PACKS:
        errors.append(f"--pack {args.pack!r} not one of {', '.join(sorted(PACKS))}")
    if args.fps not in FPS_CHOICES:
        errors.append(f"--fps {args.fps} not one of {FPS_CHOICES}")
    if getattr(args, "bpm", None) is not None and args.bpm <= 0:
        errors.append("--bpm must be positive")
    if args.target_duration is not None and args.target_duration <= 0:
        errors.append("--target-duration must be positive")
    for name in ("confidence_threshold", "headroom_bias"):
        val = getattr(args, name, None)
        if val is not None and not (0.0 <= val <= 1.0):
            errors.append(f"--{name.replace('_', '-')} out of range [0, 1]")
    for name in ("order", "attributes", "audio"):
        path = getattr(args, name, None)
        if path and not os.path.isfile(path):
            errors.append(f"--{name} file {path!r} not found")
    return errors
