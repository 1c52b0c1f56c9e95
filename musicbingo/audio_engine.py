from __future__ import annotations

import logging
import os
import threading
from typing import List, Optional, Tuple

import numpy as np
import pygame
import sounddevice as sd
from PyQt5.QtCore import QObject, QTimer, pyqtSignal

from musicbingo.bingo_logic import Song

logger = logging.getLogger(__name__)

_DECODER_READY = False
_CHANNEL_COUNT = 2
_REQUESTED_DEVICE = ""
_DECODER_LOCK = threading.RLock()
_DEFAULT_MIXER_FORMAT = (44100, -16, 2)


class _NullOutputStream:
    def start(self) -> None:
        return

    def stop(self) -> None:
        return

    def close(self) -> None:
        return


def _ensure_decoder() -> None:
    global _DECODER_READY
    with _DECODER_LOCK:
        if _DECODER_READY and pygame.mixer.get_init():
            return
        if not pygame.get_init():
            pygame.init()
        if not pygame.mixer.get_init():
            original_driver = os.environ.get("SDL_AUDIODRIVER")
            init_errors: List[str] = []
            for driver in [original_driver, "pulseaudio", "alsa", "wasapi", "directsound", "dummy"]:
                try:
                    if driver:
                        os.environ["SDL_AUDIODRIVER"] = driver
                    elif "SDL_AUDIODRIVER" in os.environ:
                        del os.environ["SDL_AUDIODRIVER"]
                    pygame.mixer.init(frequency=44100, size=-16, channels=_CHANNEL_COUNT)
                    break
                except pygame.error as exc:
                    init_errors.append(f"{driver or 'default'}: {exc}")
            if not pygame.mixer.get_init():
                raise pygame.error("Unable to initialize pygame mixer: " + " | ".join(init_errors))
            logger.debug("pygame mixer initialized: %s", pygame.mixer.get_init())
        _DECODER_READY = True


def _mixer_format() -> Tuple[int, int, int]:
    return pygame.mixer.get_init() or _DEFAULT_MIXER_FORMAT


def list_output_devices() -> List[str]:
    names: List[str] = []
    try:
        devices = sd.query_devices()
    except Exception as exc:
        logger.warning("Could not query audio devices: %s", exc)
        devices = []
    seen = set()
    for dev in devices:
        if int(dev.get("max_output_channels", 0)) <= 0:
            continue
        name = str(dev.get("name", "")).strip()
        if name and name.casefold() not in seen:
            seen.add(name.casefold())
            names.append(name)
    return names


def set_output_device(device_name: str) -> bool:
    global _REQUESTED_DEVICE
    target = (device_name or "").strip()
    if not target:
        _REQUESTED_DEVICE = ""
        return True
    try:
        _find_output_device_index(target)
    except ValueError as exc:
        logger.warning("%s", exc)
        return False
    _REQUESTED_DEVICE = target
    return True


def _find_output_device_index(device_name: str) -> Optional[int]:
    target = (device_name or "").strip().casefold()
    if not target:
        return None
    for i, dev in enumerate(sd.query_devices()):
        if int(dev.get("max_output_channels", 0)) <= 0:
            continue
        if str(dev.get("name", "")).strip().casefold() == target:
            return i
    raise ValueError(f"Output device not found: {device_name}")


def _bytes_to_frames(raw: bytes, sample_size: int, channels: int) -> Optional[np.ndarray]:
    if channels <= 0:
        return None
    if sample_size in (-16, 16):
        src = np.frombuffer(raw, dtype=np.int16).astype(np.float32) / 32768.0
    elif sample_size == 8:
        src = (np.frombuffer(raw, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
    elif sample_size == -8:
        src = np.frombuffer(raw, dtype=np.int8).astype(np.float32) / 128.0
    elif sample_size in (-32, 32):
        src = np.frombuffer(raw, dtype=np.int32).astype(np.float32) / 2147483648.0
    else:
        return None
    frame_count = int(len(src) // channels)
    if frame_count <= 0:
        return None
    return src[: frame_count * channels].reshape((frame_count, channels))


def decode_media_frames(file_path: str) -> Tuple[np.ndarray, int]:
    """Decode a whole file into float32 frames; returns ``(frames, sample_rate)``."""
    _ensure_decoder()
    sound = pygame.mixer.Sound(file_path)
    sample_rate, sample_size, channels = _mixer_format()
    frames = _bytes_to_frames(sound.get_raw(), int(sample_size), int(channels))
    if frames is None:
        raise ValueError(f"Unsupported mixer sample format for {file_path}")
    return frames, int(sample_rate)


def play_effect(path: str, volume: int = 100) -> bool:
    if not path or not os.path.exists(path):
        logger.warning("Effect file not found: %s", path)
        return False
    try:
        _ensure_decoder()
        sound = pygame.mixer.Sound(path)
        sound.set_volume(max(0, min(100, int(volume))) / 100.0)
        sound.play()
    except pygame.error as exc:
        logger.error("Could not play effect %s: %s", path, exc)
        return False
    return True


class BingoPlayer(QObject):
    """Plays one song at a time between its cue points.

    Frames are pushed to a sounddevice stream from its callback thread; a Qt
    timer reports position and end of track on the Qt side.
    """

    StoppedState = 0
    PlayingState = 1
    PausedState = 2

    positionChanged = pyqtSignal(int)
    stateChanged = pyqtSignal(int)
    finished = pyqtSignal()

    def __init__(self, auto_fade: bool = True, overlap_seconds: float = 3.0, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        _ensure_decoder()
        sample_rate, _sample_size, channels = _mixer_format()
        self._sample_rate = int(sample_rate)
        self._channels = int(channels)

        self._song: Optional[Song] = None
        self._frames: Optional[np.ndarray] = None
        self._pos = 0
        self._state = self.StoppedState
        self._volume = 100
        self._gain = 1.0
        self._fade_step = 0.0
        self._ended = False
        self.auto_fade = auto_fade
        self.overlap_seconds = max(0.0, float(overlap_seconds))

        self._lock = threading.RLock()
        self._stream = self._create_stream()
        self._stream.start()

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(100)
        self._poll_timer.timeout.connect(self._poll)
        self._poll_timer.start()

    def set_song(self, song: Song) -> None:
        self.stop()
        frames, sample_rate = decode_media_frames(song.file_path)
        start = int(max(0.0, song.start_time or 0.0) * sample_rate)
        end = len(frames)
        if song.end_time is not None and song.end_time > (song.start_time or 0.0):
            end = min(end, int(song.end_time * sample_rate))
        with self._lock:
            self._song = song
            self._frames = frames[start:end]
            self._sample_rate = sample_rate
            self._pos = 0
            self._gain = 1.0
            self._fade_step = 0.0
            self._ended = False
        logger.info("Loaded %s - %s (%.1fs)", song.artist, song.title, self.duration_ms() / 1000.0)
        self.positionChanged.emit(0)

    def song(self) -> Optional[Song]:
        with self._lock:
            return self._song

    def play(self) -> None:
        with self._lock:
            if self._frames is None or self._state == self.PlayingState:
                return
            self._set_state_locked(self.PlayingState)

    def pause(self) -> None:
        with self._lock:
            if self._state == self.PlayingState:
                self._set_state_locked(self.PausedState)

    def stop(self) -> None:
        with self._lock:
            self._pos = 0
            self._gain = 1.0
            self._fade_step = 0.0
            self._ended = False
            self._set_state_locked(self.StoppedState)
        self.positionChanged.emit(0)

    def state(self) -> int:
        with self._lock:
            return self._state

    def set_volume(self, volume: int) -> None:
        with self._lock:
            self._volume = max(0, min(100, int(volume)))

    def volume(self) -> int:
        with self._lock:
            return self._volume

    def fade_out(self, seconds: float) -> None:
        with self._lock:
            if self._state != self.PlayingState:
                return
            samples = max(1, int(float(seconds) * self._sample_rate))
            self._fade_step = self._gain / samples
        logger.debug("Fading out over %.1fs", seconds)

    def is_fading(self) -> bool:
        with self._lock:
            return self._fade_step > 0.0

    def position_ms(self) -> int:
        with self._lock:
            return int(self._pos * 1000 / self._sample_rate)

    def duration_ms(self) -> int:
        with self._lock:
            if self._frames is None:
                return 0
            return int(len(self._frames) * 1000 / self._sample_rate)

    def _create_stream(self):
        device_index = None
        if _REQUESTED_DEVICE:
            try:
                device_index = _find_output_device_index(_REQUESTED_DEVICE)
            except ValueError:
                device_index = None
        try:
            return sd.OutputStream(
                samplerate=self._sample_rate,
                channels=self._channels,
                dtype="float32",
                callback=self._audio_callback,
                device=device_index,
                blocksize=1024,
                latency="low",
            )
        except (sd.PortAudioError, ValueError) as exc:
            logger.error("Audio output unavailable, playing silently: %s", exc)
            return _NullOutputStream()

    def _audio_callback(self, outdata, frames, _time_info, status) -> None:
        if status:
            logger.debug("Audio stream status: %s", status)
        outdata.fill(0.0)
        with self._lock:
            if self._state != self.PlayingState or self._frames is None or self._ended:
                return
            block = self._frames[self._pos : self._pos + frames]
            n = len(block)
            if n == 0:
                self._ended = True
                return
            gains = np.full(n, self._gain * (self._volume / 100.0), dtype=np.float32)
            if self._fade_step > 0.0:
                ramp = self._gain - self._fade_step * np.arange(1, n + 1, dtype=np.float32)
                ramp = np.clip(ramp, 0.0, 1.0)
                gains = ramp * (self._volume / 100.0)
                self._gain = float(ramp[-1])
            outdata[:n, :] = block[:, : outdata.shape[1]] * gains[:, None]
            self._pos += n
            if self._pos >= len(self._frames) or (self._fade_step > 0.0 and self._gain <= 0.0):
                self._ended = True

    def _poll(self) -> None:
        emit_pos: Optional[int] = None
        emit_finished = False
        start_fade = False
        with self._lock:
            if self._state == self.PlayingState:
                emit_pos = self.position_ms()
                if self._ended:
                    self._ended = False
                    self._set_state_locked(self.StoppedState)
                    emit_finished = True
                elif self.auto_fade and self.overlap_seconds > 0 and self._fade_step == 0.0:
                    remaining_ms = self.duration_ms() - emit_pos
                    start_fade = remaining_ms <= self.overlap_seconds * 1000
        if start_fade:
            self.fade_out(self.overlap_seconds)
        if emit_pos is not None:
            self.positionChanged.emit(emit_pos)
        if emit_finished:
            logger.info("Playback finished")
            self.finished.emit()

    def _set_state_locked(self, new_state: int) -> None:
        if new_state != self._state:
            self._state = new_state
            self.stateChanged.emit(new_state)

    def close(self) -> None:
        self._poll_timer.stop()
        self._stream.stop()
        self._stream.close()
