from __future__ import annotations

import itertools
from pathlib import Path

import numpy as np
import pytest

from audio_mixing.config import MixConfig
from audio_mixing.dsp import resample
from audio_mixing.engine import RenderResult, decode_sources, mix, prepare_clip, render
from audio_mixing.errors import DecodeFailure, InvalidOffsetError, UnsupportedChannelLayoutError
from audio_mixing.types import ClipSpec, DecodedAudio

from conftest import FakeDecoder, mono_clip, stereo_clip


def _spec(start_ms: float, volume: float = 1.0, pan: float = 0.0, path: str = "a.wav") -> ClipSpec:
    return ClipSpec(start_offset_ms=start_ms, volume=volume, pan=pan, source_path=path)


def test_empty_mix_is_empty_track():
    track = mix([])
    assert track.length == 0
    assert track.sample_rate == 44100


def test_single_clip_length():
    # 250 ms offset + 1 s clip at 48 kHz -> 1.25 s at 44.1 kHz
    track = mix([(_spec(250.0), mono_clip(440.0, 48000, 1.0))])
    assert abs(track.length - round(1250.0 * 44100 / 1000.0)) <= 1


def test_silence_outside_coverage():
    a = DecodedAudio(samples=np.ones(441, dtype=np.float32), sample_rate=44100, channel_count=1)
    # A covers 100-110 ms, B covers 200-210 ms
    track = mix([(_spec(100.0), a), (_spec(200.0, path="b.wav"), a)])
    assert track.length == 8820 + 441
    assert np.all(track.frames[:, :4410] == 0.0)
    assert np.all(track.frames[:, 4410 + 441 : 8820] == 0.0)
    np.testing.assert_array_equal(track.frames[:, 4410 : 4410 + 441], 1.0)
    np.testing.assert_array_equal(track.frames[:, 8820:], 1.0)


def test_mix_is_order_independent():
    clips = [
        (_spec(0.0, 0.8, -0.3, "a.wav"), mono_clip(220.0, 22050, 0.6)),
        (_spec(120.5, 0.5, 0.7, "b.wav"), stereo_clip(330.0, 440.0, 48000, 0.4)),
        (_spec(300.0, 1.0, 0.0, "c.wav"), stereo_clip(550.0, 660.0, 44100, 0.5)),
    ]
    reference = mix(clips)
    for perm in itertools.permutations(clips):
        track = mix(list(perm), MixConfig(workers=2, block_frames=997))
        assert track.length == reference.length
        np.testing.assert_allclose(track.frames, reference.frames, rtol=1e-5, atol=1e-6)


def test_end_to_end_two_clips():
    sr_out = 44100
    a = mono_clip(440.0, 22050, 1.0)
    b = stereo_clip(660.0, 880.0, 44100, 1.0)
    track = mix([(_spec(0.0, 1.0, 0.0, "a.wav"), a), (_spec(500.0, 0.5, -1.0, "b.wav"), b)])

    assert abs(track.length - int(1.5 * sr_out)) <= 1
    a_up = resample(a.frames()[0], 22050)
    b_frames = b.frames()
    half = sr_out // 2

    # 0-500 ms: only A, duplicated on both channels at full gain
    np.testing.assert_allclose(track.left[:half], a_up[:half], atol=1e-6)
    np.testing.assert_allclose(track.right[:half], a_up[:half], atol=1e-6)

    # 500-1000 ms: A plus B's left at half gain; B's right is panned out
    np.testing.assert_allclose(
        track.left[half:sr_out], a_up[half:sr_out] + 0.5 * b_frames[0, : sr_out - half], atol=1e-6
    )
    np.testing.assert_allclose(track.right[half:sr_out], a_up[half:sr_out], atol=1e-6)

    # 1000-1500 ms: only B's tail
    tail = track.length - sr_out
    np.testing.assert_allclose(track.left[sr_out:], 0.5 * b_frames[0, sr_out - half : sr_out - half + tail], atol=1e-6)
    assert np.all(track.right[sr_out:] == 0.0)


def test_prepare_clip_applies_pipeline():
    clip = prepare_clip(_spec(10.0, 0.5, 0.5), mono_clip(440.0, 22050, 0.1))
    assert clip.start_frame == 441
    assert clip.frames.shape[0] == 2
    assert abs(clip.length - 4410) <= 1
    # pan 0.5: left at 0.5 * 0.5, right at 0.5
    np.testing.assert_allclose(clip.frames[0] * 2.0, clip.frames[1], atol=1e-7)


def test_invalid_offset_aborts_mix():
    clips = [(_spec(0.0), mono_clip(440.0, 44100, 0.1)), (_spec(-5.0, path="b.wav"), mono_clip(440.0, 44100, 0.1))]
    with pytest.raises(InvalidOffsetError):
        mix(clips)


def test_unsupported_layout_aborts_mix():
    surround = DecodedAudio(samples=np.zeros(6 * 100, dtype=np.float32), sample_rate=44100, channel_count=6)
    with pytest.raises(UnsupportedChannelLayoutError):
        mix([(_spec(0.0), surround)])


@pytest.mark.parametrize("count", [0, -1])
def test_non_positive_channel_count_is_a_layout_error(count):
    empty = DecodedAudio(samples=np.zeros(0, dtype=np.float32), sample_rate=44100, channel_count=count)
    with pytest.raises(UnsupportedChannelLayoutError) as info:
        mix([(_spec(0.0), empty)])
    assert info.value.channel_count == count


def test_layout_rejected_before_resampling(monkeypatch):
    import audio_mixing.engine as engine

    def fail_resample(*args, **kwargs):
        raise AssertionError("resample should not run")

    monkeypatch.setattr(engine.dsp, "resample", fail_resample)
    surround = DecodedAudio(samples=np.zeros(6 * 100, dtype=np.float32), sample_rate=22050, channel_count=6)
    with pytest.raises(UnsupportedChannelLayoutError):
        mix([(_spec(0.0), surround)])


def test_shared_source_is_normalized_once(monkeypatch):
    import audio_mixing.engine as engine

    calls = []
    original = engine.normalize_source

    def counting(decoded, target_rate=44100):
        calls.append(decoded)
        return original(decoded, target_rate)

    monkeypatch.setattr(engine, "normalize_source", counting)
    shared = mono_clip(440.0, 22050, 0.2)
    track = mix([(_spec(0.0), shared), (_spec(100.0), shared), (_spec(400.0), shared)])
    assert len(calls) == 1
    assert abs(track.length - (17640 + 8820)) <= 1


def test_decode_sources_dedupes_paths():
    decoder = FakeDecoder({"a.wav": mono_clip(440.0, 44100, 0.1), "b.wav": mono_clip(220.0, 44100, 0.1)})
    specs = [_spec(0.0, path="a.wav"), _spec(10.0, path="b.wav"), _spec(20.0, path="a.wav")]
    decoded = decode_sources(specs, decoder, workers=2)
    assert list(decoded) == ["a.wav", "b.wav"]
    assert sorted(decoder.calls) == ["a.wav", "b.wav"]


def test_render_with_fake_collaborators(fake_encoder):
    decoder = FakeDecoder({"a.wav": mono_clip(440.0, 22050, 1.0, amp=0.9), "b.wav": stereo_clip(440.0, 440.0, 44100, 1.0, amp=0.9)})
    specs = [_spec(0.0, path="a.wav"), _spec(0.0, path="b.wav"), _spec(1000.0, 0.5, path="a.wav")]
    stages = []

    result = render(
        specs,
        "out.ogg",
        decoder=decoder,
        encoder=fake_encoder,
        config=MixConfig(quality=0.4),
        on_progress=lambda stage, frac: stages.append((stage, frac)),
    )

    assert isinstance(result, RenderResult)
    assert result.output_path == Path("out.ogg")
    assert result.clip_count == 3
    assert result.source_count == 2
    assert abs(result.frames - 88200) <= 1
    assert result.duration_s == pytest.approx(2.0, abs=1e-4)
    # two in-phase tones at 0.9 overlap in the first second
    assert result.peak > 1.0
    assert result.overflow_handled is True

    path, written, quality = fake_encoder.written[0]
    assert quality == 0.4
    assert written.peak() <= 1.0
    assert stages[-1] == ("Done", 1.0)
    fracs = [f for _, f in stages]
    assert fracs == sorted(fracs)


def test_render_decode_failure_stops_before_encode(fake_encoder):
    decoder = FakeDecoder({})
    with pytest.raises(DecodeFailure) as info:
        render([_spec(0.0, path="missing.wav")], "out.ogg", decoder=decoder, encoder=fake_encoder)
    assert info.value.path == "missing.wav"
    assert fake_encoder.written == []


def test_render_empty_clip_list(fake_encoder):
    result = render([], "out.wav", decoder=FakeDecoder({}), encoder=fake_encoder)
    assert result.frames == 0
    assert fake_encoder.written[0][1].length == 0


def test_render_normalize_policy(fake_encoder):
    loud = DecodedAudio(samples=np.full(100, 0.8, dtype=np.float32), sample_rate=44100, channel_count=1)
    decoder = FakeDecoder({"a.wav": loud})
    specs = [_spec(0.0, path="a.wav"), _spec(0.0, path="a.wav")]
    render(specs, "out.wav", decoder=decoder, encoder=fake_encoder, config=MixConfig(overflow="normalize", peak_ceiling=0.5))
    written = fake_encoder.written[0][1]
    np.testing.assert_allclose(written.frames, 0.5, rtol=1e-6)
