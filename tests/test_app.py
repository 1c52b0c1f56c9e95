import logging

import pytest

from musicbingo import app
from musicbingo.bingo_logic import Song
from musicbingo.boards_store import load_boards, load_ticket_config
from musicbingo.presets import list_presets


@pytest.fixture
def music(monkeypatch, tmp_path):
    monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
    folder = tmp_path / "music"
    folder.mkdir()
    songs = [
        Song(id=str(folder / f"{i}.mp3"), artist=f"Artist {i}", title=f"Song {i}", file_path=str(folder / f"{i}.mp3"), duration=125.0)
        for i in range(12)
    ]
    monkeypatch.setattr(app, "scan_folder", lambda path: list(songs))
    yield folder, songs
    app.configure_logging()


def test_scan_lists_songs(music, capsys):
    folder, _songs = music
    assert app.main(["scan", str(folder)]) == 0
    out = capsys.readouterr().out
    assert "Artist 3 - Song 3  [2:05]" in out
    assert "12 songs found" in out


def test_generate_writes_boards_and_ticket_config(music, capsys):
    folder, songs = music
    assert app.main(["generate", str(folder), "--count", "6", "--grid-size", "3", "--seed", "1", "--preset", "Quiz Night"]) == 0
    assert "Generated 6 of 6 tickets (3x3, 12 songs, safe max 220)" in capsys.readouterr().out

    boards = load_boards(str(folder))
    assert [board.id for board in boards.boards] == [str(i) for i in range(1, 7)]
    assert len(boards.catalog) == len(songs)
    assert load_ticket_config(str(folder))[1] == 3
    assert [preset.name for preset in list_presets(str(folder))] == ["Quiz Night"]


def test_generate_too_many_tickets_fails(music):
    folder, _songs = music
    assert app.main(["generate", str(folder), "--count", "5000", "--grid-size", "3"]) == 1
    assert load_boards(str(folder)) is None


def test_check_reports_wins(music, capsys):
    folder, songs = music
    app.main(["generate", str(folder), "--count", "2", "--grid-size", "3", "--seed", "4"])
    boards = load_boards(str(folder))
    first_row = [cell.song_id for cell in boards.boards[0].cells if cell.row == 0]
    capsys.readouterr()

    assert app.main(["check", str(folder), "1", "--played", *first_row]) == 0
    out = capsys.readouterr().out
    assert "Wins: 1 Line" in out
    assert out.count("[x]") >= 3

    assert app.main(["check", str(folder), "77"]) == 1


def test_check_without_boards_fails(music):
    folder, _songs = music
    assert app.main(["check", str(folder), "1"]) == 1


def test_presets_list_and_delete(music, capsys):
    folder, _songs = music
    app.main(["generate", str(folder), "--count", "2", "--grid-size", "3", "--preset", "Old"])
    capsys.readouterr()

    assert app.main(["presets", str(folder)]) == 0
    assert "Old  (boards, tickets)" in capsys.readouterr().out
    assert app.main(["presets", str(folder), "--delete", "Old"]) == 0
    assert app.main(["presets", str(folder), "--delete", "Old"]) == 1


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as excinfo:
        app.build_parser().parse_args(["--version"])
    assert excinfo.value.code == 0
    assert "musicbingo" in capsys.readouterr().out


def test_configure_logging_replaces_own_handlers(tmp_path):
    root = logging.getLogger()
    app.configure_logging()
    before = len(root.handlers)
    app.configure_logging(debug=True, log_file=str(tmp_path / "bingo.log"))
    app.configure_logging(debug=True, log_file=str(tmp_path / "bingo.log"))
    assert len(root.handlers) == before + 1
    assert root.level == logging.DEBUG
    logging.getLogger("musicbingo.test").info("hello")
    app.configure_logging()
    assert "hello" in (tmp_path / "bingo.log").read_text(encoding="utf-8")
