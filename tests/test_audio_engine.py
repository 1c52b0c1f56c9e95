import numpy as np
import pytest

from musicbingo import audio_engine
from musicbingo.audio_engine import BingoPlayer, _bytes_to_frames
from musicbingo.bingo_logic import Song

RATE = 1000


@pytest.fixture
def player(qapp, monkeypatch):
    monkeypatch.setattr(audio_engine, "_ensure_decoder", lambda: None)
    monkeypatch.setattr(audio_engine, "_mixer_format", lambda: (RATE, -16, 2))
    monkeypatch.setattr(BingoPlayer, "_create_stream", lambda self: audio_engine._NullOutputStream())
    frames = np.ones((10 * RATE, 2), dtype=np.float32)
    monkeypatch.setattr(audio_engine, "decode_media_frames", lambda path: (frames, RATE))
    instance = BingoPlayer(auto_fade=False)
    yield instance
    instance.close()


def _pull(player, count):
    out = np.zeros((count, 2), dtype=np.float32)
    player._audio_callback(out, count, None, None)
    return out


def test_bytes_to_frames_int16_stereo():
    raw = np.array([0, 16384, -32768, 32767], dtype=np.int16).tobytes()
    frames = _bytes_to_frames(raw, -16, 2)
    assert frames.shape == (2, 2)
    assert frames[0, 1] == pytest.approx(0.5)
    assert frames[1, 0] == pytest.approx(-1.0)
    assert _bytes_to_frames(raw, 24, 2) is None


def test_set_song_honors_cue_points(player):
    player.set_song(Song(id="a", file_path="/music/a.mp3", start_time=2.0, end_time=5.0))
    assert player.duration_ms() == 3000
    assert player.position_ms() == 0


def test_callback_outputs_silence_until_played(player):
    player.set_song(Song(id="a", file_path="/music/a.mp3"))
    assert not _pull(player, 100).any()

    player.set_volume(50)
    player.play()
    block = _pull(player, 100)
    assert block[0, 0] == pytest.approx(0.5)
    assert player.position_ms() == 100


def test_state_changes_emit_signal(player):
    states = []
    player.stateChanged.connect(states.append)
    player.set_song(Song(id="a", file_path="/music/a.mp3"))
    player.play()
    player.pause()
    player.stop()
    assert states == [BingoPlayer.PlayingState, BingoPlayer.PausedState, BingoPlayer.StoppedState]


def test_end_of_song_emits_finished(player):
    finished = []
    player.finished.connect(lambda: finished.append(True))
    player.set_song(Song(id="a", file_path="/music/a.mp3", end_time=0.5))
    player.play()
    _pull(player, 400)
    _pull(player, 400)
    player._poll()
    assert finished == [True]
    assert player.state() == BingoPlayer.StoppedState


def test_fade_out_ramps_to_silence(player):
    player.set_song(Song(id="a", file_path="/music/a.mp3"))
    player.play()
    player.fade_out(0.1)
    block = _pull(player, 200)
    assert block[0, 0] < 1.0
    assert block[50, 0] < block[0, 0]
    assert block[150, 0] == 0.0
    assert player._ended is True


def test_auto_fade_starts_near_end(player):
    player.auto_fade = True
    player.overlap_seconds = 3.0
    player.set_song(Song(id="a", file_path="/music/a.mp3"))
    player.play()
    _pull(player, 6000)
    player._poll()
    assert player.is_fading() is False
    _pull(player, 1500)
    player._poll()
    assert player.is_fading() is True


def test_play_effect_missing_file(tmp_path):
    assert audio_engine.play_effect(str(tmp_path / "nope.wav")) is False


def test_set_output_device_unknown(monkeypatch):
    monkeypatch.setattr(audio_engine.sd, "query_devices", lambda: [{"name": "Speakers", "max_output_channels": 2}])
    assert audio_engine.list_output_devices() == ["Speakers"]
    assert audio_engine.set_output_device("speakers") is True
    assert audio_engine.set_output_device("Headphones") is False
    assert audio_engine.set_output_device("") is True
