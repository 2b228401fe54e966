"""Beat times used to snap shot starts to music."""
from __future__ import annotations

import logging
from typing import List

import librosa


def extract_beats(audio_path: str, max_seconds: float | None = None) -> List[float]:
    """Return sorted beat times for an audio file, always starting at 0.0.

    Only the first ``max_seconds`` of audio are analysed when given.
    """
    y, sr = librosa.load(audio_path, sr=None, duration=max_seconds)
    if len(y) == 0:
        logging.warning("audio: %s is empty, no beats", audio_path)
        return [0.0]
    tempo, beat_frames = librosa.beat.beat_track(y=y, sr=sr)
    beat_times = sorted(set(librosa.frames_to_time(beat_frames, sr=sr).tolist()))
    logging.debug("audio: %d beats in %s", len(beat_times), audio_path)
    if not beat_times:
        beat_times = [0.0]
    if len(beat_times) < 2:
        beat_times.append(len(y) / sr)
    if beat_times[0] > 0.0:
        beat_times.insert(0, 0.0)
    return beat_times


def beats_from_bpm(bpm: float, duration: float, offset: float = 0.0) -> List[float]:
    """Evenly spaced beats for a known tempo."""
    if bpm <= 0:
        raise ValueError("bpm must be positive")
    step = 60.0 / bpm
    out = []
    t = max(0.0, offset)
    while t <= duration + 1e-9:
        out.append(round(t, 6))
        t += step
    return out
