"""Turn a saved reel plan into an audit CSV.

Reads the YAML (or JSON) written by ``python -m reel_planner --out`` and
emits one row per transition plus one row per shot whose crop needs a human
look. Columns:

``kind``
    ``transition`` or ``review``.

``index``
    Transition index, or shot position for review rows.

``from`` / ``to``
    Image ids on either side of the transition (``from`` only for reviews).

``type`` / ``preset`` / ``duration`` / ``hold`` / ``offset``
    Transition details; empty for review rows.

``reason``
    Rule that fired for the transition, or the reframe reason.
"""

from __future__ import annotations

import argparse
import csv
import json
from pathlib import Path
from typing import Any, Dict, List

import yaml

COLUMNS = ["kind", "index", "from", "to", "type", "preset", "duration", "hold", "offset", "reason"]


def load_plan(path: Path) -> Dict[str, Any]:
    with path.open(encoding="utf8") as fh:
        if path.suffix.lower() == ".json":
            return json.load(fh)
        return yaml.safe_load(fh) or {}


def audit_rows(plan: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten ``plan`` into CSV rows."""
    segments = plan.get("timeline", {}).get("segments", [])
    offsets = plan.get("timeline", {}).get("offsets", [])
    ids = [s.get("segment") for s in segments]
    rows: List[Dict[str, Any]] = []
    for i, seg in enumerate(segments):
        t = seg.get("transition")
        if not t:
            continue
        rows.append(
            {
                "kind": "transition",
                "index": i,
                "from": ids[t.get("from", i)],
                "to": ids[t.get("to", i + 1)],
                "type": t.get("kind", ""),
                "preset": t.get("preset", ""),
                "duration": t.get("duration", 0.0),
                "hold": t.get("hold_seconds", 0.0),
                "offset": offsets[i] if i < len(offsets) else "",
                "reason": t.get("reason", ""),
            }
        )
    for pos, shot in enumerate(plan.get("shots", [])):
        reframe = shot.get("reframe", {})
        if reframe.get("needs_review"):
            rows.append(
                {
                    "kind": "review",
                    "index": pos,
                    "from": shot.get("id"),
                    "to": "",
                    "type": "",
                    "preset": "",
                    "duration": "",
                    "hold": "",
                    "offset": "",
                    "reason": reframe.get("reason", ""),
                }
            )
    return rows


def write_audit(plan_path: Path, csv_path: Path) -> List[Dict[str, Any]]:
    """Read *plan_path* and write the audit to *csv_path*.

    Returns the rows for convenience/testing.
    """
    rows = audit_rows(load_plan(plan_path))
    with csv_path.open("w", newline="", encoding="utf8") as fh:
        writer = csv.DictWriter(fh, fieldnames=COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
    return rows


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("plan_path", nargs="?", default="reel_plan.yaml", help="Saved plan")
    parser.add_argument("-o", "--out", default="reel_audit.csv", help="Output CSV path")
    args = parser.parse_args(argv)

    write_audit(Path(args.plan_path), Path(args.out))


if __name__ == "__main__":  # pragma: no cover
    main()
