import math
import random

import pytest

from pushsense.reps import RepConfig, RepEngine, RepPhase, ThresholdCalibrator

CYCLE = [170, 170, 150, 120, 90, 90, 90, 130, 160, 170, 170]


def _engine(**kw) -> RepEngine:
    kw.setdefault("a_up", 155)
    kw.setdefault("a_down", 90)
    return RepEngine(RepConfig(**kw))


def _run(engine, angles, times):
    for angle, t in zip(angles, times):
        engine.tick(angle, t)
    return engine


def test_single_cycle_counts_one_rep():
    engine = _run(_engine(), CYCLE, range(0, 1100, 100))
    assert engine.reps == 1
    assert engine.phase is RepPhase.UP


def test_phase_sequence_through_a_cycle():
    engine = _engine()
    phases = [engine.tick(a, t) for a, t in zip(CYCLE, range(0, 1100, 100))]
    assert phases[2] is RepPhase.UP  # 150 is inside the hysteresis band
    assert phases[3] is RepPhase.GOING_DOWN
    assert phases[5] is RepPhase.GOING_DOWN
    assert phases[6] is RepPhase.DOWN
    assert phases[7] is RepPhase.GOING_UP
    assert phases[10] is RepPhase.UP


def test_second_rep_inside_cooldown_is_suppressed():
    engine = _run(_engine(), CYCLE, range(0, 1100, 100))
    assert engine.last_rep_time == 1000
    second = [120, 90, 90, 90, 130, 160, 170, 170]
    times = [1010, 1015, 1020, 1025, 1030, 1035, 1040, 1050]
    _run(engine, second, times)
    assert engine.reps == 1
    assert engine.phase is RepPhase.UP


def test_two_spaced_reps_both_count():
    engine = _run(_engine(), CYCLE, range(0, 1100, 100))
    _run(engine, CYCLE, range(2000, 3100, 100))
    assert engine.reps == 2


def test_too_fast_rep_is_rejected_by_min_duration():
    engine = _engine(cooldown_ms=0)
    _run(engine, CYCLE, range(0, 110, 10))
    assert engine.reps == 0
    assert engine.phase is RepPhase.UP


def test_min_duration_check_can_be_disabled():
    engine = _engine(cooldown_ms=0, min_rep_duration_ms=None)
    _run(engine, CYCLE, range(0, 110, 10))
    assert engine.reps == 1


def test_reversal_before_bottom_aborts():
    engine = _run(_engine(), [170, 140, 120, 160], range(0, 400, 100))
    assert engine.phase is RepPhase.UP
    assert engine.reps == 0


def test_single_frame_spike_does_not_reach_bottom():
    engine = _run(_engine(), [170, 120, 85, 120, 85, 120], range(0, 600, 100))
    assert engine.phase is RepPhase.GOING_DOWN
    assert engine.hold_frames == 0


def test_dip_back_to_bottom_while_going_up():
    engine = _run(_engine(), [170, 120, 90, 90, 90, 130, 85], range(0, 700, 100))
    assert engine.phase is RepPhase.DOWN
    assert engine.reps == 0


def test_partial_lockout_resets_hold():
    engine = _run(_engine(), [170, 120, 90, 90, 90, 130, 160, 170, 140, 170, 170], range(0, 1100, 100))
    assert engine.phase is RepPhase.GOING_UP
    assert engine.hold_frames == 2
    engine.tick(170, 1100)
    assert engine.reps == 1


@pytest.mark.parametrize("bad", [math.nan, math.inf, -5.0, 181.0])
def test_malformed_angle_is_a_noop(bad):
    engine = _run(_engine(), [170, 120, 90], range(0, 300, 100))
    before = (engine.phase, engine.hold_frames, engine.reps)
    engine.tick(bad, 300)
    assert (engine.phase, engine.hold_frames, engine.reps) == before


def test_depth_gate_blocks_bottom_until_it_passes():
    engine = _engine()
    _run(engine, [170, 120, 90, 90], range(0, 400, 100))
    engine.tick(90, 400, depth_gate=lambda: False)
    assert engine.phase is RepPhase.GOING_DOWN
    assert engine.gate_blocked
    assert engine.hold_frames == engine.config.debounce_frames
    engine.tick(90, 500, depth_gate=lambda: False)
    assert engine.phase is RepPhase.GOING_DOWN
    engine.tick(90, 600, depth_gate=lambda: True)
    assert engine.phase is RepPhase.DOWN
    assert engine.rep_start_time == 600


def test_reps_never_decrease_on_random_input():
    rng = random.Random(7)
    engine = _engine()
    t = 0.0
    prev = 0
    for _ in range(5000):
        t += rng.uniform(1, 120)
        engine.tick(rng.uniform(40, 180), t)
        assert engine.reps >= prev >= 0
        prev = engine.reps


@pytest.mark.parametrize(
    "kw",
    [
        {"a_up": 90, "a_down": 90},
        {"a_up": 80, "a_down": 90},
        {"a_up": 200, "a_down": 90},
        {"debounce_frames": 0},
        {"cooldown_ms": -1},
        {"min_rep_duration_ms": -1},
        {"up_margin": -1},
    ],
)
def test_invalid_config_fails_fast(kw):
    with pytest.raises(ValueError):
        _engine(**kw)


def test_set_thresholds_validates():
    engine = _engine()
    engine.set_thresholds(160)
    assert (engine.a_up, engine.a_down) == (160, 90)
    with pytest.raises(ValueError):
        engine.set_thresholds(80)


def test_progress():
    engine = _engine()
    assert engine.progress(90) == 0.0
    assert engine.progress(155) == 1.0
    assert engine.progress(122.5) == pytest.approx(0.5)
    assert engine.progress(10) == 0.0


def test_calibrator_derives_a_up_from_peak():
    cal = ThresholdCalibrator(frames=4, a_down=90)
    assert not cal.done
    assert cal.add(168) is None
    assert cal.add(math.nan) is None
    assert cal.add(170) is None
    assert cal.add(169) is None
    a_up = cal.add(170)
    assert cal.done
    assert a_up == pytest.approx(160.0, abs=0.5)
    assert cal.add(175) is None


def test_calibrator_clips_to_bounds():
    low = ThresholdCalibrator(frames=2, a_down=90)
    low.add(100)
    assert low.add(100) == pytest.approx(110.0)
    high = ThresholdCalibrator(frames=1, a_down=90)
    assert high.add(180) == pytest.approx(170.0)
    capped = ThresholdCalibrator(frames=1, a_down=90, margin=0)
    assert capped.add(180) == pytest.approx(175.0)


def test_calibrator_disabled_with_zero_frames():
    assert ThresholdCalibrator(frames=0).done
    with pytest.raises(ValueError):
        ThresholdCalibrator(frames=-1)


def test_calibrator_never_exceeds_180():
    cal = ThresholdCalibrator(frames=1, a_down=165)
    assert cal.add(178) == pytest.approx(180.0)
    engine = _engine(a_up=175, a_down=165)
    engine.set_thresholds(cal.a_up)
    assert engine.a_up == 180.0


# A full second cycle whose lockout completes `end` ms after the rep counted at t=1000.
def _fast_second_cycle(end):
    angles = [120, 90, 90, 90, 130, 160, 170, 170]
    times = [1000 + end - 150 + dt for dt in (0, 50, 100, 110, 120, 130, 140, 150)]
    return angles, times


def test_cooldown_alone_merges_reps_closer_than_cooldown():
    engine = _run(_engine(min_rep_duration_ms=None), CYCLE, range(0, 1100, 100))
    assert engine.last_rep_time == 1000
    _run(engine, *_fast_second_cycle(250))
    assert engine.reps == 1
    assert engine.phase is RepPhase.UP
    assert engine.last_rep_time == 1000


def test_rep_just_past_cooldown_counts():
    engine = _run(_engine(min_rep_duration_ms=None), CYCLE, range(0, 1100, 100))
    _run(engine, *_fast_second_cycle(351))
    assert engine.reps == 2
    assert engine.last_rep_time == 1351
