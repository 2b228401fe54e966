import json

import pytest

from reel_planner import vision
from reel_planner.vision import EmotionVector, ImageAttributes


def test_defaults_when_no_response():
    a = vision.normalize_attributes(None, "x.jpg", (800, 600))
    assert a.subject == "unknown"
    assert a.mood == ("unknown",)
    assert a.emotion == EmotionVector(0.5, 0.3, 0.2, 0.3, 0.2)
    assert a.visual_energy == 5
    assert (a.width, a.height) == (800, 600)
    assert a.analysis_error is None
    assert not a.is_portrait


def test_well_formed_response():
    raw = {
        "subject": "Person",
        "mood": ["Calm", " warm "],
        "emotion_vector": {"calm": 0.9, "tension": 0.1, "mystery": 0.0, "intimacy": 0.7, "awe": 0.4},
        "visualEnergy": 8,
        "width": 600,
        "height": 900,
    }
    a = vision.normalize_attributes(raw, "p.jpg")
    assert a.subject == "person"
    assert a.mood == ("calm", "warm")
    assert a.emotion.calm == 0.9
    assert a.emotion.intimacy == 0.7
    assert a.visual_energy == 8
    assert a.is_portrait


def test_malformed_fields_fall_back_independently():
    raw = {
        "subject": 42,
        "mood": {"not": "a list"},
        "emotion": {"calm": "very", "tension": 3.5, "awe": float("nan")},
        "visual_energy": 40,
    }
    a = vision.normalize_attributes(raw, "m.jpg")
    assert a.subject == "unknown"
    assert a.mood == ("unknown",)
    assert a.emotion.calm == 0.5
    assert a.emotion.tension == 1.0
    assert a.emotion.awe == 0.2
    assert a.visual_energy == 10.0


def test_non_object_response_is_flagged(caplog):
    a = vision.normalize_attributes("a sunny beach", "s.jpg")
    assert a.analysis_error == "malformed response"
    assert a.subject == "unknown"
    assert "not an object" in caplog.text


def test_single_mood_string_is_accepted():
    assert vision.normalize_attributes({"mood": "Lonely"}, "x").mood == ("lonely",)


def test_analyze_all_paces_calls_and_survives_failures():
    pauses = []
    calls = []

    def analyze(image_id):
        calls.append(image_id)
        if image_id == "b":
            raise TimeoutError("no answer")
        return {"subject": image_id}

    images = [("a", (10, 10)), ("b", (10, 10)), ("c", (10, 10)), ("k", (10, 10))]
    out = vision.analyze_all(images, analyze, known={"k": {"subject": "known"}}, delay=0.05, sleep=pauses.append)

    assert calls == ["a", "b", "c"]
    assert pauses == [0.05, 0.05]
    assert [a.image_id for a in out] == ["a", "b", "c", "k"]
    assert out[0].subject == "a"
    assert out[1].analysis_error == "no answer"
    assert out[1].visual_energy == 5
    assert out[3].subject == "known"


def test_analyze_all_without_collaborator():
    out = vision.analyze_all([("a", (4, 3))], sleep=lambda s: pytest.fail("slept"))
    assert out == [ImageAttributes("a", width=4, height=3)]


def test_load_attributes_json_list(tmp_path):
    path = tmp_path / "attrs.json"
    path.write_text(json.dumps([{"id": "a.jpg", "subject": "sky"}, {"image_id": "b.jpg"}, "junk"]))
    data = vision.load_attributes(str(path))
    assert set(data) == {"a.jpg", "b.jpg"}
    assert data["a.jpg"]["subject"] == "sky"


def test_load_attributes_yaml_mapping(tmp_path):
    path = tmp_path / "attrs.yaml"
    path.write_text("a.jpg:\n  subject: street\n  mood: [busy]\n")
    assert vision.load_attributes(str(path)) == {"a.jpg": {"subject": "street", "mood": ["busy"]}}


def test_load_attributes_rejects_scalars(tmp_path):
    path = tmp_path / "attrs.yaml"
    path.write_text("just text\n")
    with pytest.raises(ValueError):
        vision.load_attributes(str(path))
