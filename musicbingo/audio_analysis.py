from __future__ import annotations

import logging
from dataclasses import dataclass

import librosa
import numpy as np

from musicbingo import audio_engine

logger = logging.getLogger(__name__)

MIN_BPM = 60
MAX_BPM = 200
_HOP = 256
_MIN_SECONDS = 1.0


@dataclass(frozen=True)
class AnalysisResult:
    bpm: int
    duration: float


def estimate_bpm(frames: np.ndarray, sample_rate: int) -> int:
    """Estimate the tempo of ``frames`` in beats per minute.

    Runs librosa's beat tracker on a mono mixdown and folds the result into
    MIN_BPM..MAX_BPM by octaves. Returns 0 when the signal is too short,
    silent, or has no detectable beat.
    """
    if frames is None or sample_rate <= 0 or len(frames) == 0:
        return 0
    samples = np.asarray(frames, dtype=np.float32)
    mono = samples.mean(axis=1) if samples.ndim == 2 else samples
    if len(mono) < _MIN_SECONDS * sample_rate or not np.any(mono):
        return 0

    tempo, _beats = librosa.beat.beat_track(y=np.ascontiguousarray(mono), sr=int(sample_rate), hop_length=_HOP)
    # Newer librosa returns a one-element array.
    bpm = float(np.atleast_1d(tempo)[0])
    if not np.isfinite(bpm) or bpm <= 0:
        return 0
    while bpm > MAX_BPM:
        bpm /= 2.0
    while bpm < MIN_BPM:
        bpm *= 2.0
    return int(round(min(MAX_BPM, max(MIN_BPM, bpm))))


def analyze_file(path: str) -> AnalysisResult:
    logger.info("Starting analysis for %s", path)
    try:
        frames, sample_rate = audio_engine.decode_media_frames(path)
    except Exception as exc:
        logger.error("Analysis failed for %s: %s", path, exc)
        return AnalysisResult(bpm=0, duration=0.0)
    duration = len(frames) / float(sample_rate)
    bpm = estimate_bpm(frames, sample_rate)
    logger.info("Finished %s: %d BPM, %.2fs", path, bpm, duration)
    return AnalysisResult(bpm=bpm, duration=duration)
