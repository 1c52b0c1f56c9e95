import numpy as np

from musicbingo import audio_analysis, audio_engine
from musicbingo.audio_analysis import AnalysisResult, analyze_file, estimate_bpm


def _click_track(bpm, seconds=12.0, sample_rate=22050):
    frames = np.zeros(int(seconds * sample_rate), dtype=np.float32)
    period = 60.0 / bpm
    click = np.sin(2 * np.pi * 1000.0 * np.arange(int(0.02 * sample_rate)) / sample_rate).astype(np.float32)
    t = 0.0
    while t < seconds:
        start = int(t * sample_rate)
        end = min(len(frames), start + len(click))
        frames[start:end] = click[: end - start]
        t += period
    return np.stack([frames, frames], axis=1), sample_rate


def test_estimate_bpm_on_click_track():
    frames, sample_rate = _click_track(120)
    assert abs(estimate_bpm(frames, sample_rate) - 120) <= 3


def test_estimate_bpm_mono_input():
    frames, sample_rate = _click_track(90)
    assert abs(estimate_bpm(frames[:, 0], sample_rate) - 90) <= 3


def test_estimate_bpm_undeterminable_returns_zero():
    assert estimate_bpm(np.zeros((44100 * 5, 2), dtype=np.float32), 44100) == 0
    assert estimate_bpm(np.zeros((100, 2), dtype=np.float32), 44100) == 0
    assert estimate_bpm(np.zeros((0, 2), dtype=np.float32), 44100) == 0


def test_analyze_file_reports_duration(monkeypatch):
    frames, sample_rate = _click_track(120, seconds=10.0)
    monkeypatch.setattr(audio_engine, "decode_media_frames", lambda path: (frames, sample_rate))
    result = analyze_file("/music/click.wav")
    assert abs(result.bpm - 120) <= 3
    assert abs(result.duration - 10.0) < 0.01


def test_analyze_file_failure_yields_zero(monkeypatch):
    def broken(path):
        raise ValueError("cannot decode")

    monkeypatch.setattr(audio_analysis.audio_engine, "decode_media_frames", broken)
    assert analyze_file("/music/broken.mp3") == AnalysisResult(bpm=0, duration=0.0)


def test_estimate_bpm_folds_into_range(monkeypatch):
    frames, sample_rate = _click_track(120, seconds=3.0)
    monkeypatch.setattr(audio_analysis.librosa.beat, "beat_track", lambda **kwargs: (np.array([240.0]), np.array([])))
    assert estimate_bpm(frames, sample_rate) == 120
    monkeypatch.setattr(audio_analysis.librosa.beat, "beat_track", lambda **kwargs: (np.array([40.0]), np.array([])))
    assert estimate_bpm(frames, sample_rate) == 80
    monkeypatch.setattr(audio_analysis.librosa.beat, "beat_track", lambda **kwargs: (0.0, np.array([])))
    assert estimate_bpm(frames, sample_rate) == 0
