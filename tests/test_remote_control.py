import random

import pytest

from musicbingo.bingo_logic import Song
from musicbingo.game_session import GameSession
from musicbingo.remote_control import RemoteController
from musicbingo.settings_store import AppSettings


@pytest.fixture
def session():
    session = GameSession(rng=random.Random(3))
    session.set_songs([Song(id=f"/m/{i}.mp3", artist=f"A{i}", title=f"T{i}", file_path=f"/m/{i}.mp3") for i in range(9)])
    session.grid_size = 3
    return session


def test_unknown_command(qapp, session):
    controller = RemoteController(session)
    payload = controller("dance", {})
    assert payload["ok"] is False
    assert payload["status"] == 404


def test_play_next_requires_tickets(qapp, session):
    controller = RemoteController(session)
    assert controller("playnext", {})["status"] == 409


def test_play_next_emits_song_and_exhausts(qapp, session):
    controller = RemoteController(session)
    requested = []
    stops = []
    controller.songRequested.connect(requested.append)
    controller.stopRequested.connect(lambda: stops.append(True))
    session.generate_tickets(1)

    for _ in range(9):
        payload = controller("playnext", {})
        assert payload["ok"] is True
    assert len({song.id for song in requested}) == 9

    payload = controller("playnext", {})
    assert payload["error"]["code"] == "catalog_exhausted"
    assert stops == [True]

    winners = controller("winners", {})["result"]["winners"]
    assert winners == {"1": ["1 Line", "2 Lines", "Four Corners", "Full House"]}


def test_previous_pause_reset(qapp, session):
    controller = RemoteController(session)
    paused = []
    controller.pauseToggled.connect(paused.append)
    session.generate_tickets(2)

    assert controller("previous", {})["error"]["code"] == "no_history"
    controller("playnext", {})
    controller("playnext", {})
    assert controller("previous", {})["result"]["history_index"] == 0

    controller("pause", {})
    assert paused == [False]

    assert controller("reset", {})["result"]["played"] == 0


def test_check_ticket(qapp, session):
    controller = RemoteController(session)
    session.generate_tickets(1)
    assert controller("check", {"ticket_id": "5"})["status"] == 404
    result = controller("check", {"ticket_id": "1"})["result"]
    assert result["id"] == "1"
    assert len(result["grid"]) == 3


def test_volume_and_effects(qapp, session):
    played = []
    settings = AppSettings()
    settings.effects["win"] = "/fx/win.wav"
    controller = RemoteController(session, settings, effect_player=lambda path, volume: played.append((path, volume)) or True)
    volumes = []
    controller.volumeRequested.connect(volumes.append)

    assert controller("volume_set", {"level": 150})["result"] == {"volume": 100}
    assert volumes == [100]

    assert controller("effect", {"name": "WIN"})["ok"] is True
    assert played == [("/fx/win.wav", 100)]
    assert controller("effect", {"name": "lose"})["error"]["code"] == "effect_not_set"
    assert controller("effect", {"name": "kazoo"})["status"] == 404


def test_first_play_next_starts_cued_song(qapp, session):
    controller = RemoteController(session)
    requested = []
    controller.songRequested.connect(requested.append)
    session.generate_tickets(1)
    cued = session.cue_first_song()

    payload = controller("playnext", {})

    assert requested == [cued]
    assert payload["result"]["played"] == 1
    assert payload["result"]["is_playing"] is True
    assert payload["result"]["current_song"]["id"] == cued.id
