"""Validation of untrusted shot orderings and narrative role hints."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .story import Purpose, Shot
from .vision import ImageAttributes

_ORDER_KEYS = ("orderedIds", "ordered_ids", "selectedOrderedIds", "selected_ordered_ids")
_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


@dataclass
class OrderingResult:
    ordered_ids: List[str]
    used_fallback: bool = False
    violations: List[str] = field(default_factory=list)


def ordering_violations(candidate: Any, known_ids: Sequence[str]) -> List[str]:
    """Return every reason ``candidate`` is not a permutation of ``known_ids``."""
    known = [str(i) for i in known_ids]
    if not isinstance(candidate, (list, tuple)):
        return [f"ordering must be a list, got {type(candidate).__name__}"]
    errors: List[str] = []
    ids = [str(i) for i in candidate]
    if len(ids) != len(known):
        errors.append(f"ordering has {len(ids)} ids, expected {len(known)}")
    allowed = set(known)
    seen = set()
    for i in ids:
        if i not in allowed:
            errors.append(f"unknown id {i!r}")
        elif i in seen:
            errors.append(f"duplicate id {i!r}")
        seen.add(i)
    missing = [i for i in known if i not in seen]
    if missing:
        errors.append("missing ids: " + ", ".join(missing))
    return errors


def validate_ordering(candidate: Any, known_ids: Sequence[str]) -> OrderingResult:
    """Accept ``candidate`` only when it is a full permutation of ``known_ids``.

    Anything else is replaced by the input order; partial repairs of an
    untrusted ordering are never attempted.
    """
    known = [str(i) for i in known_ids]
    errors = ordering_violations(candidate, known)
    if errors:
        logging.warning("ordering rejected (%s); using input order", "; ".join(errors))
        return OrderingResult(ordered_ids=list(known), used_fallback=True, violations=errors)
    return OrderingResult(ordered_ids=[str(i) for i in candidate])


def parse_sequence_response(raw: Any) -> Tuple[List[str] | None, Dict[str, str]]:
    """Extract ``(ordered_ids, role_hints)`` from a collaborator reply.

    ``raw`` may be a mapping or JSON text, optionally wrapped in markdown
    fences. Unparseable replies return ``(None, {})``.
    """
    data = raw
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf8", "replace") if isinstance(raw, bytes) else raw
        text = _FENCE_RE.sub("", text).strip()
        try:
            data = json.loads(text)
        except ValueError as exc:
            logging.warning("sequence response is not valid JSON: %s", exc)
            return None, {}
    if not isinstance(data, Mapping):
        return None, {}

    ordered = None
    for key in _ORDER_KEYS:
        if key in data:
            ordered = data[key]
            break
    if isinstance(ordered, (list, tuple)):
        ordered = [str(i) for i in ordered]
    else:
        ordered = None

    hints: Dict[str, str] = {}
    beats = data.get("beats", data.get("shots"))
    if isinstance(beats, list):
        for item in beats:
            if isinstance(item, Mapping) and item.get("id") is not None:
                role = item.get("role", item.get("purpose"))
                if role:
                    hints[str(item["id"])] = str(role)
    return ordered, hints


def build_shots(ordered_ids: Sequence[str], role_hints: Mapping[str, str] | None = None) -> List[Shot]:
    """Attach the hinted purpose to every id.

    Unhinted ids stay :attr:`Purpose.BUILD`, which leaves their beat to
    their position in the sequence.
    """
    role_hints = role_hints or {}
    shots = []
    for image_id in ordered_ids:
        hint = role_hints.get(str(image_id))
        purpose = Purpose.parse(hint, Purpose.BUILD) if hint else Purpose.BUILD
        shots.append(Shot(image_id=str(image_id), purpose=purpose))
    return shots


def _subject_purpose(subject: str, index: int, total: int) -> Purpose | None:
    if "text" in subject or "sign" in subject:
        return Purpose.ESTABLISH
    if ("person" in subject or "portrait" in subject) and index < total * 0.3:
        return Purpose.ESTABLISH
    if ("architecture" in subject or "building" in subject) and index < total * 0.2:
        return Purpose.ESTABLISH
    return None


def deterministic_shots(
    ordered_ids: Sequence[str],
    attributes: Mapping[str, ImageAttributes] | None = None,
) -> List[Shot]:
    """Purposes from position alone, with subject keywords able to promote
    a development shot to an establishing one."""
    attributes = attributes or {}
    total = len(ordered_ids)
    shots = []
    for i, image_id in enumerate(ordered_ids):
        position = i / total if total else 0.0
        if position < 0.15:
            purpose = Purpose.ESTABLISH
        elif position < 0.7:
            purpose = Purpose.BUILD
            a = attributes.get(str(image_id))
            if a is not None:
                purpose = _subject_purpose(a.subject, i, total) or purpose
        elif position < 0.9:
            purpose = Purpose.CLIMAX
        else:
            purpose = Purpose.RESOLVE
        shots.append(Shot(image_id=str(image_id), purpose=purpose))
    return shots


def plan_sequence(
    known_ids: Sequence[str],
    response: Any = None,
    attributes: Mapping[str, ImageAttributes] | None = None,
) -> Tuple[OrderingResult, List[Shot]]:
    """Validate a collaborator response and derive the shot list."""
    ordered, hints = parse_sequence_response(response) if response is not None else (None, {})
    if ordered is None:
        result = OrderingResult(
            ordered_ids=[str(i) for i in known_ids],
            used_fallback=response is not None,
            violations=["no ordering in response"] if response is not None else [],
        )
    else:
        result = validate_ordering(ordered, known_ids)
    if hints:
        shots = build_shots(result.ordered_ids, hints)
    else:
        shots = deterministic_shots(result.ordered_ids, attributes)
    return result, shots
