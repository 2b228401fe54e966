import csv
from pathlib import Path

import yaml

from tools.audit_plan import COLUMNS, audit_rows, main, write_audit


def _plan():
    return {
        "timeline": {
            "offsets": [1.75, 4.25],
            "segments": [
                {
                    "segment": "a.jpg",
                    "transition": {
                        "from": 0, "to": 1, "kind": "dissolve", "preset": "match_dissolve",
                        "duration": 0.25, "hold_seconds": 0.0, "reason": "intro_match_dissolve",
                    },
                },
                {
                    "segment": "b.jpg",
                    "transition": {
                        "from": 1, "to": 2, "kind": "hold_cut", "preset": "breath_hold",
                        "duration": 0.0, "hold_seconds": 0.333, "reason": "hinge_pre_breath",
                    },
                },
                {"segment": "c.jpg", "transition": None},
            ],
        },
        "shots": [
            {"id": "a.jpg", "reframe": {"needs_review": False, "reason": "gradient energy peak"}},
            {"id": "b.jpg", "reframe": {"needs_review": True, "reason": "low confidence (0.30)"}},
            {"id": "c.jpg", "reframe": {"needs_review": False}},
        ],
    }


def test_audit_rows():
    rows = audit_rows(_plan())
    assert [r["kind"] for r in rows] == ["transition", "transition", "review"]
    assert rows[0]["from"] == "a.jpg" and rows[0]["to"] == "b.jpg"
    assert rows[0]["offset"] == 1.75
    assert rows[1]["hold"] == 0.333
    assert rows[2]["from"] == "b.jpg"
    assert rows[2]["reason"].startswith("low confidence")


def test_write_audit(tmp_path: Path):
    plan_path = tmp_path / "plan.yaml"
    plan_path.write_text(yaml.safe_dump(_plan()))
    csv_path = tmp_path / "audit.csv"
    rows = write_audit(plan_path, csv_path)

    with csv_path.open() as fh:
        reader = csv.DictReader(fh)
        assert reader.fieldnames == COLUMNS
        data = list(reader)
    assert len(data) == len(rows) == 3
    assert data[1]["reason"] == "hinge_pre_breath"


def test_main_cli(tmp_path: Path):
    plan_path = tmp_path / "plan.yaml"
    plan_path.write_text(yaml.safe_dump(_plan()))
    out = tmp_path / "out.csv"
    main([str(plan_path), "-o", str(out)])
    assert out.read_text().splitlines()[0] == ",".join(COLUMNS)


def test_empty_plan_has_no_rows():
    assert audit_rows({}) == []
