import json

import numpy as np
import pytest
import yaml
from PIL import Image

pytest.importorskip("cv2")
from reel_planner.__main__ import main, parse_args


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("REEL_MOTION_PACK", "REEL_FPS", "REEL_CACHE_SIZE", "REEL_SEED"):
        monkeypatch.delenv(var, raising=False)


def _folder(tmp_path, count=4):
    folder = tmp_path / "photos"
    folder.mkdir()
    for i in range(count):
        arr = np.zeros((90, 120, 3), dtype=np.uint8)
        arr[10 + i * 10:30 + i * 10, 20 + i * 15:40 + i * 15] = 255
        Image.fromarray(arr).save(folder / f"p{i}.jpg")
    return folder


def test_validate_rejects_unknown_pack(tmp_path, capsys):
    folder = _folder(tmp_path)
    with pytest.raises(SystemExit) as exc:
        main([str(folder), "--pack", "cinematic", "--validate"])
    assert exc.value.code == 1
    assert "--pack 'cinematic'" in capsys.readouterr().err


def test_validate_reports_every_problem(tmp_path, capsys):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "missing"), "--fps", "23", "--aspect", "wide", "--validate"])
    err = capsys.readouterr().err
    assert "does not exist" in err
    assert "--fps 23" in err
    assert "--aspect 'wide'" in err


def test_validate_only_writes_nothing(tmp_path, capsys):
    folder = _folder(tmp_path)
    main([str(folder), "--validate"])
    assert capsys.readouterr().out == ""


def test_full_run_writes_yaml(tmp_path):
    folder = _folder(tmp_path)
    out = tmp_path / "plan.yaml"
    main([str(folder), "--out", str(out), "--seed", "job-1", "--aspect", "9:16"])
    data = yaml.safe_load(out.read_text())
    assert data["kept"] == 4
    assert data["output_size"] == [1080, 1920]
    assert len(data["timeline"]["segments"]) == 4
    assert data["final_label"] == "v"
    assert [s["id"] for s in data["shots"]] == ["p0.jpg", "p1.jpg", "p2.jpg", "p3.jpg"]


def test_json_output_and_order_file(tmp_path):
    folder = _folder(tmp_path)
    order = tmp_path / "order.json"
    order.write_text(json.dumps({"orderedIds": ["p3.jpg", "p1.jpg", "p2.jpg", "p0.jpg"]}))
    out = tmp_path / "plan.json"
    main([str(folder), "--order", str(order), "--out", str(out), "--cut-only"])
    data = json.loads(out.read_text())
    assert data["lock"]["ordered_ids"] == ["p3.jpg", "p1.jpg", "p2.jpg", "p0.jpg"]
    assert "dissolve" not in data["transition_summary"]


def test_preset_sets_pack(tmp_path):
    folder = _folder(tmp_path)
    preset = tmp_path / "still.yaml"
    preset.write_text("motion-pack: static\nfps: 25\n")
    args = parse_args([str(folder), "--preset", str(preset)])
    assert args.pack == "static"
    assert args.fps == 25

    out = tmp_path / "plan.yaml"
    main([str(folder), "--preset", str(preset), "--out", str(out)])
    data = yaml.safe_load(out.read_text())
    assert {s["motion"]["preset"] for s in data["shots"]} == {"static"}
    assert data["timeline"]["fps"] == 25


def test_environment_and_flags_precedence(tmp_path, monkeypatch):
    folder = _folder(tmp_path)
    preset = tmp_path / "p.yaml"
    preset.write_text("motion_pack: default\n")
    monkeypatch.setenv("REEL_MOTION_PACK", "static")
    monkeypatch.setenv("REEL_CACHE_SIZE", "5")
    args = parse_args([str(folder), "--preset", str(preset)])
    assert args.pack == "static"
    assert args.cache_size == 5
    args = parse_args([str(folder), "--preset", str(preset), "--pack", "documentary"])
    assert args.pack == "documentary"


def test_missing_attributes_file_fails_validation(tmp_path, capsys):
    folder = _folder(tmp_path)
    with pytest.raises(SystemExit):
        main([str(folder), "--attributes", str(tmp_path / "nope.json")])
    assert "--attributes file" in capsys.readouterr().err


def test_impossible_target_is_a_planning_error(tmp_path, capsys):
    folder = _folder(tmp_path)
    with pytest.raises(SystemExit) as exc:
        main([str(folder), "--target-duration", "60"])
    assert exc.value.code == 2
    assert "planning error (HoldTooLongError)" in capsys.readouterr().err


def test_bpm_aligns_without_audio(tmp_path):
    folder = _folder(tmp_path)
    out = tmp_path / "plan.yaml"
    main([str(folder), "--align-beat", "--bpm", "120", "--out", str(out)])
    data = yaml.safe_load(out.read_text())
    assert data["beat_times"][:3] == [0.0, 0.5, 1.0]


def test_bpm_must_be_positive(tmp_path, capsys):
    folder = _folder(tmp_path)
    with pytest.raises(SystemExit):
        main([str(folder), "--bpm", "0", "--validate"])
    assert "--bpm must be positive" in capsys.readouterr().err
