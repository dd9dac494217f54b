"""
Media engine tests

The miniaudio engine is exercised with a patched decoder and a fake clock,
so no audio device or encoded fixture is needed.
"""

import array
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from core import miniaudio_engine
from core.audio_engine import GainRamp, MediaEvent, PlayerState
from core.engine_factory import AudioEngineFactory
from core.miniaudio_engine import MiniaudioEngine, UnsupportedFormatError


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def decoded(frames, value=0.5):
    return SimpleNamespace(samples=array.array('f', [value] * frames))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def silent_engine(clock):
    """Silent engine at 100 Hz mono holding a 2 second track"""
    engine = MiniaudioEngine(output=False, sample_rate=100, channels=1, clock=clock)
    with patch.object(miniaudio_engine.miniaudio, "decode", return_value=decoded(200)):
        engine.load(b"fake")
    return engine


class TestGainRamp:
    """Gain ramp interpolation"""

    def test_ramp_interpolates_linearly(self, clock):
        ramp = GainRamp(1.0, clock)
        ramp.ramp_to(0.5, 0.5)

        clock.now = 0.25
        assert ramp.value_at() == pytest.approx(0.75)
        assert ramp.is_ramping() is True

        clock.now = 0.5
        assert ramp.value_at() == 0.5
        assert ramp.is_ramping() is False

    def test_new_ramp_starts_from_instantaneous_value(self, clock):
        ramp = GainRamp(1.0, clock)
        ramp.ramp_to(0.0, 1.0)
        clock.now = 0.5

        ramp.ramp_to(1.0, 1.0)

        assert ramp.value_at() == pytest.approx(0.5)
        clock.now = 1.0
        assert ramp.value_at() == pytest.approx(0.75)

    def test_zero_duration_jumps(self, clock):
        ramp = GainRamp(1.0, clock)
        ramp.ramp_to(2.0, 0)

        assert ramp.value_at() == 2.0
        assert ramp.target == 2.0


class TestSilentMiniaudioEngine:
    """Clock-driven playhead used for analysis"""

    def test_load_reports_duration(self, clock):
        engine = MiniaudioEngine(output=False, sample_rate=100, channels=1, clock=clock)
        durations = []
        engine.on(MediaEvent.LOADED_METADATA, durations.append)

        with patch.object(miniaudio_engine.miniaudio, "decode", return_value=decoded(250)):
            engine.load(b"fake")

        assert durations == [2.5]
        assert engine.state == PlayerState.STOPPED
        assert engine.is_loaded is True

    def test_playhead_follows_clock(self, silent_engine, clock):
        assert silent_engine.play() is True

        clock.now = 1.0
        assert silent_engine.get_position() == pytest.approx(1.0)

        silent_engine.pause()
        clock.now = 5.0
        assert silent_engine.get_position() == pytest.approx(1.0)

    def test_playback_rate_scales_playhead(self, silent_engine, clock):
        silent_engine.set_playback_rate(2.0)
        silent_engine.play()

        clock.now = 0.5

        assert silent_engine.get_position() == pytest.approx(1.0)

    def test_sample_level_reads_signal_under_playhead(self, silent_engine, clock):
        silent_engine.play()
        clock.now = 1.0

        assert silent_engine.sample_level(0.1) == pytest.approx(0.5)

    def test_sample_level_ignores_output_gain(self, silent_engine, clock):
        silent_engine.set_volume(0.1)
        silent_engine.set_gain(0.2)
        silent_engine.play()
        clock.now = 1.0

        assert silent_engine.sample_level(0.1) == pytest.approx(0.5)

    def test_sample_level_without_track(self, clock):
        engine = MiniaudioEngine(output=False, clock=clock)
        assert engine.sample_level(0.1) == 0.0

    def test_seek_emits_seeked_and_clamps(self, silent_engine):
        seeked = []
        silent_engine.on(MediaEvent.SEEKED, seeked.append)

        silent_engine.seek(1.5)
        silent_engine.seek(99.0)
        silent_engine.seek(-3.0)

        assert seeked == [1.5, 2.0, 0.0]

    def test_ended_is_emitted_once(self, silent_engine, clock):
        ended = []
        updates = []
        silent_engine.on(MediaEvent.ENDED, lambda: ended.append(True))
        silent_engine.on(MediaEvent.TIME_UPDATE, lambda pos, dur: updates.append((pos, dur)))

        silent_engine.play()
        clock.now = 1.0
        silent_engine.tick()
        clock.now = 3.0
        silent_engine.tick()
        silent_engine.tick()

        assert ended == [True]
        assert updates[0] == (pytest.approx(1.0), 2.0)
        assert silent_engine.state == PlayerState.STOPPED

    def test_off_removes_listener(self, silent_engine):
        seeked = []
        silent_engine.on(MediaEvent.SEEKED, seeked.append)
        silent_engine.off(MediaEvent.SEEKED, seeked.append)

        silent_engine.seek(1.0)

        assert seeked == []

    def test_unload_returns_to_idle(self, silent_engine):
        silent_engine.unload()

        assert silent_engine.state == PlayerState.IDLE
        assert silent_engine.get_duration() == 0.0
        assert silent_engine.play() is False

    def test_decode_failure(self, clock):
        engine = MiniaudioEngine(output=False, clock=clock)
        error = miniaudio_engine.miniaudio.DecodeError("not audio")

        with patch.object(miniaudio_engine.miniaudio, "decode", side_effect=error):
            with pytest.raises(UnsupportedFormatError):
                engine.load(b"garbage")

        assert engine.state == PlayerState.ERROR


class TestRendering:
    """Chunk rendering for the output device"""

    @pytest.fixture
    def output_engine(self, clock):
        engine = MiniaudioEngine(output=True, sample_rate=100, channels=2, clock=clock)
        with patch.object(miniaudio_engine.miniaudio, "decode", return_value=decoded(200)):
            engine.load(b"fake")
        return engine

    def test_volume_and_gain_are_applied(self, output_engine):
        output_engine.set_volume(0.5)
        output_engine.set_gain(0.5)

        chunk = output_engine._render_chunk(10)

        assert len(chunk) == 20
        assert all(sample == pytest.approx(0.125) for sample in chunk)
        assert output_engine.get_position() == pytest.approx(0.1)

    def test_muted_output_is_silent(self, output_engine):
        output_engine.set_muted(True)

        chunk = output_engine._render_chunk(10)

        assert all(sample == 0.0 for sample in chunk)

    def test_rate_skips_source_frames(self, output_engine):
        output_engine.set_playback_rate(2.0)

        chunk = output_engine._render_chunk(10)

        assert len(chunk) == 20
        assert output_engine.get_position() == pytest.approx(0.2)

    def test_render_past_end_returns_none(self, output_engine):
        output_engine.seek(2.0)

        assert output_engine._render_chunk(10) is None

    def test_playback_rate_is_clamped(self, output_engine):
        output_engine.set_playback_rate(10.0)
        assert output_engine.playback_rate == 4.0

        output_engine.set_playback_rate(0.0)
        assert output_engine.playback_rate == 0.25


class TestEngineFactory:
    """Backend selection"""

    def test_probe_engine_is_silent_miniaudio(self):
        probe = AudioEngineFactory.create_probe()
        try:
            assert isinstance(probe, MiniaudioEngine)
            assert probe.supports_level_sampling() is True
        finally:
            probe.release()

    def test_probe_requires_miniaudio(self):
        with patch.object(MiniaudioEngine, "probe", return_value=False):
            with pytest.raises(RuntimeError):
                AudioEngineFactory.create_probe()

    def test_unknown_backend_falls_back(self):
        engine = AudioEngineFactory.create("does-not-exist")
        try:
            assert engine.get_engine_name() in AudioEngineFactory.PRIORITY_ORDER
        finally:
            engine.release()

    def test_availability(self):
        assert AudioEngineFactory.is_available("miniaudio") is True
        assert AudioEngineFactory.is_available("does-not-exist") is False
        assert "miniaudio" in AudioEngineFactory.get_available_backends()
