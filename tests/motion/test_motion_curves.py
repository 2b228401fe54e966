from collections import Counter

import pytest

from reel_planner import motion
from reel_planner.motion import MotionPreset, SeededRNG


def _java_hash(text):
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def test_rng_is_a_pure_value():
    rng = SeededRNG.from_seed(42)
    a, rng_a = rng.next()
    b, rng_b = rng.next()
    assert a == b
    assert rng_a == rng_b
    assert rng.state == 42
    values = []
    for _ in range(500):
        v, rng = rng.next()
        values.append(v)
    assert all(0.0 <= v < 1.0 for v in values)
    assert len(set(values)) == len(values)


def test_rng_zero_seed_is_usable():
    rng = SeededRNG.from_seed(0)
    assert rng.state > 0
    v, nxt = rng.next()
    assert nxt.state != rng.state


def test_seed_value_variants():
    assert motion.seed_value(None) == 12345
    assert motion.seed_value(None, default=67890) == 67890
    assert motion.seed_value("42") == 42
    assert motion.seed_value(-7) == 7
    assert motion.seed_value("job-1") == _java_hash("job-1")
    assert motion.seed_value("job-1") != motion.seed_value("job-2")


def test_smootherstep_shape():
    assert motion.smootherstep(0.0) == 0.0
    assert motion.smootherstep(1.0) == 1.0
    assert motion.smootherstep(0.5) == pytest.approx(0.5)
    assert motion.smootherstep(-1.0) == 0.0
    assert motion.smootherstep(2.0) == 1.0


@pytest.mark.parametrize("pack", ["documentary", "default"])
def test_same_seed_same_motion(pack):
    a = motion.plan_motions(8, pack, "job-1")
    b = motion.plan_motions(8, pack, "job-1")
    assert a == b


def test_different_seeds_differ():
    a = motion.plan_motions(12, "documentary", 1)
    b = motion.plan_motions(12, "documentary", 2)
    assert a != b


@pytest.mark.parametrize("pack_name", sorted(motion.PACKS))
@pytest.mark.parametrize("size", [(1920, 1080), (1080, 1920)])
def test_paths_never_reveal_edges(pack_name, size):
    pack = motion.PACKS[pack_name]
    W, H = size
    for seed in range(25):
        for spec in motion.plan_motions(10, pack, seed, size):
            for zoom, tx, ty in motion.sample_path(spec, size, steps=40):
                assert 1.0 <= zoom <= pack.ceiling + 1e-9
                assert abs(tx) <= W * (zoom - 1.0) / 2.0 + 1e-9
                assert abs(ty) <= H * (zoom - 1.0) / 2.0 + 1e-9
                assert abs(tx) <= 0.02 * W + 1e-9


def test_clamp_drift_for_scale():
    assert motion.clamp_drift_for_scale(50, 1920, 1.02, 2) == pytest.approx(17.2)
    assert motion.clamp_drift_for_scale(-50, 1920, 1.02, 2) == pytest.approx(-17.2)
    assert motion.clamp_drift_for_scale(5, 1920, 1.02, 2) == 5
    assert motion.clamp_drift_for_scale(5, 1920, 1.0, 2) == 0


def test_static_pack_never_moves():
    specs = motion.plan_motions(6, "static", 3)
    assert all(s.preset == MotionPreset.STATIC for s in specs)
    assert all(s.start_zoom == s.end_zoom == 1.0 for s in specs)
    assert all(s.hold_seconds == 0 for s in specs)


def test_drift_holds_a_fixed_zoom():
    drifts = [
        s
        for seed in range(40)
        for s in motion.plan_motions(8, "documentary", seed)
        if s.preset in (MotionPreset.DRIFT_LEFT, MotionPreset.DRIFT_RIGHT)
    ]
    assert drifts
    for s in drifts:
        assert s.start_zoom == s.end_zoom
        assert s.start_zoom >= motion.DRIFT_MIN_ZOOM
        assert s.noise > 0
        assert s.hold_seconds == pytest.approx(0.7)
        if s.preset == MotionPreset.DRIFT_LEFT:
            assert s.pan_x <= 0
        else:
            assert s.pan_x >= 0


def test_default_pack_push_in_has_no_pan():
    pushes = [
        s
        for seed in range(40)
        for s in motion.plan_motions(8, "default", seed)
        if s.preset == MotionPreset.PUSH_IN
    ]
    assert pushes
    for s in pushes:
        assert s.pan_x == 0.0
        assert s.start_zoom == 1.0
        assert 1.01 <= s.end_zoom <= 1.035


def test_pull_back_ends_unzoomed():
    pulls = [
        s
        for seed in range(60)
        for s in motion.plan_motions(8, "documentary", seed)
        if s.preset == MotionPreset.PULL_BACK
    ]
    assert pulls
    assert all(s.end_zoom == 1.0 and s.start_zoom > 1.0 for s in pulls)


def test_adjusted_weights_dampen_repeats():
    pack = motion.PACKS["documentary"]
    base = dict(motion.adjusted_weights(pack, None, None))
    after_drift = dict(motion.adjusted_weights(pack, MotionPreset.DRIFT_LEFT, MotionPreset.PUSH_IN))
    assert sum(after_drift.values()) == pytest.approx(1.0)
    assert after_drift[MotionPreset.DRIFT_RIGHT] < base[MotionPreset.DRIFT_RIGHT]
    assert after_drift[MotionPreset.STATIC] > base[MotionPreset.STATIC]

    after_pull = dict(motion.adjusted_weights(pack, MotionPreset.PULL_BACK, None))
    assert after_pull[MotionPreset.PULL_BACK] < base[MotionPreset.PULL_BACK]


def test_noise_vanishes_at_endpoints():
    spec = motion.MotionSpec(
        preset=MotionPreset.DRIFT_RIGHT,
        start_zoom=1.05,
        end_zoom=1.05,
        pan_x=0.0,
        noise=0.002,
        noise_phase=0.0,
        ceiling=1.06,
    )
    assert motion.transform_at(spec, 0.0)[1] == pytest.approx(0.0)
    assert motion.transform_at(spec, 1.0)[1] == pytest.approx(0.0, abs=1e-9)
    assert motion.transform_at(spec, 0.25)[1] != 0.0


def test_summarize_counts_presets():
    specs = motion.plan_motions(5, "static", 1)
    summary = motion.summarize(specs)
    assert summary == {"counts": {"static": 5}, "max_zoom": 1.0, "moved": 0, "total": 5}


def test_first_draw_follows_pack_weights():
    pack = motion.PACKS["documentary"]
    n = 2000
    counts = Counter(motion.generate_motion(0, 1, pack, seed).preset for seed in range(n))
    for preset, weight in pack.weights.items():
        assert counts[preset] / n == pytest.approx(weight, abs=0.04)


def test_neighbouring_shot_seeds_are_scrambled():
    seeds = [motion.shot_seed(12345, i, 200) for i in range(200)]
    assert len(set(seeds)) == 200
    firsts = [SeededRNG.from_seed(s).next()[0] for s in seeds]
    assert sum(firsts) / len(firsts) == pytest.approx(0.5, abs=0.1)
    assert sum(1 for v in firsts if v > 0.6) > 40


@pytest.mark.parametrize("seeds", [list(range(50)), [f"job-{i}" for i in range(50)]])
def test_sequences_use_every_move(seeds):
    counts = Counter(
        s.preset for seed in seeds for s in motion.plan_motions(8, "documentary", seed)
    )
    total = sum(counts.values())
    drift = counts[MotionPreset.DRIFT_LEFT] + counts[MotionPreset.DRIFT_RIGHT]
    assert drift / total >= 0.15
    assert counts[MotionPreset.PULL_BACK] / total <= 0.2
    assert set(counts) == set(MotionPreset)
