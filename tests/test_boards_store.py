from musicbingo.bingo_logic import BingoTicket, Song
from musicbingo.boards_store import (
    BoardCell,
    BoardData,
    CuePoints,
    PDFConfig,
    apply_cues,
    clear_boards,
    find_library_song,
    load_boards,
    load_cues,
    load_ticket_config,
    reconstruct_tickets,
    save_boards,
    save_cues,
    save_ticket_config,
    update_song_cue,
)


def _song(path, artist="Artist", title="Title", **kwargs):
    return Song(id=path, artist=artist, title=title, file_path=path, **kwargs)


def _ticket(ticket_id, songs):
    return BingoTicket(id=ticket_id, grid=((songs[0], songs[1]), (songs[2], songs[3])))


def test_save_and_load_boards_with_catalog(tmp_path):
    songs = [_song(f"C:\\Music\\song{i}.mp3", artist=f"Band {i}", title=f"Hit {i}") for i in range(5)]
    save_boards(str(tmp_path), [_ticket("1", songs[:4]), _ticket("2", songs[1:5])], songs)

    text = (tmp_path / "boards.ini").read_text(encoding="utf-8")
    assert text.startswith("; Generated Bingo Boards and Catalog")
    assert "[catalog]" in text
    assert "C:\\Music\\song0.mp3=Band 0|Hit 0" in text
    assert "1,1=C:\\Music\\song3.mp3" in text

    result = load_boards(str(tmp_path))
    assert result is not None
    assert [song.id for song in result.catalog] == [song.id for song in songs]
    assert result.catalog[2].artist == "Band 2"
    assert result.catalog[2].title == "Hit 2"
    assert [board.id for board in result.boards] == ["1", "2"]
    assert BoardCell(row=0, col=1, song_id="C:\\Music\\song2.mp3") in result.boards[1].cells
    assert len(result.boards[0].cells) == 4


def test_load_boards_missing_file_returns_none(tmp_path):
    assert load_boards(str(tmp_path)) is None


def test_load_boards_tolerates_comments_and_bad_cells(tmp_path):
    (tmp_path / "boards.ini").write_text(
        "\n".join(
            [
                "; comment",
                "[7]",
                "0,0=/music/a.mp3",
                "oops=/music/b.mp3",
                "0,1=/music/c.mp3",
                "",
            ]
        ),
        encoding="utf-8",
    )
    result = load_boards(str(tmp_path))
    assert result.catalog == []
    assert [(c.row, c.col) for c in result.boards[0].cells] == [(0, 0), (0, 1)]


def test_clear_boards_leaves_empty_file(tmp_path):
    songs = [_song(f"/m/{i}.mp3") for i in range(4)]
    save_boards(str(tmp_path), [_ticket("1", songs)], songs)
    clear_boards(str(tmp_path))
    result = load_boards(str(tmp_path))
    assert result.boards == []
    assert result.catalog == []


def test_find_library_song_matches_by_id_path_and_filename():
    library = [
        _song("C:\\Music\\Abba - SOS.mp3"),
        Song(id="lib-2", file_path="/home/me/music/queen.mp3"),
    ]
    assert find_library_song("C:\\Music\\Abba - SOS.mp3", library) is library[0]
    assert find_library_song("c:/music/abba - sos.mp3", library) is library[0]
    assert find_library_song("/moved/folder/QUEEN.mp3", library) is library[1]
    assert find_library_song("/nowhere/else.mp3", library) is None


def test_reconstruct_tickets_detects_grid_and_reports_missing():
    library = [_song(f"/music/{i}.mp3", start_time=1.0 * i, end_time=10.0, duration=180.0) for i in range(9)]
    cells = [BoardCell(r, c, f"/music/{r * 3 + c}.mp3") for r in range(3) for c in range(3)]
    cells[4] = BoardCell(1, 1, "/gone/missing.mp3")
    boards = [BoardData(id="3", cells=cells)]
    catalog = [Song(id=song.id, artist="A", title="T", file_path=song.id) for song in library]

    result = reconstruct_tickets(boards, library, catalog)

    assert result.grid_size == 3
    ticket = result.tickets["3"]
    assert ticket.grid[0][0] is library[0]
    assert ticket.grid[1][1].title == "Unknown"
    assert result.missing == [("3", "/gone/missing.mp3")]
    assert result.game_catalog[2].start_time == 2.0
    assert result.game_catalog[2].duration == 180.0


def test_reconstruct_tickets_without_catalog_uses_library():
    library = [_song(f"/music/{i}.mp3") for i in range(4)]
    boards = [BoardData(id="1", cells=[BoardCell(0, 0, "/music/0.mp3")])]
    result = reconstruct_tickets(boards, library)
    assert result.game_catalog == library
    assert result.grid_size == 1


def test_ticket_config_round_trip(tmp_path):
    save_ticket_config(str(tmp_path), PDFConfig(header_text="Pub Quiz", footer_text="Good luck", logo_path="/img/logo.png"), 4)
    config, grid_size = load_ticket_config(str(tmp_path))
    assert config.header_text == "Pub Quiz"
    assert config.footer_text == "Good luck"
    assert config.logo_path == "/img/logo.png"
    assert grid_size == 4


def test_ticket_config_bad_grid_size_falls_back(tmp_path):
    (tmp_path / "tickets.ini").write_text("[settings]\nheader=Hi\ngridSize=big\n", encoding="utf-8")
    config, grid_size = load_ticket_config(str(tmp_path))
    assert config.header_text == "Hi"
    assert config.logo_path is None
    assert grid_size == 5
    assert load_ticket_config(str(tmp_path / "nope")) is None


def test_cues_round_trip_and_update(tmp_path):
    save_cues(str(tmp_path), {"a.mp3": CuePoints(start_time=12.5, end_time=45.0), "b.mp3": CuePoints(start_time=3.0)})
    cues = load_cues(str(tmp_path))
    assert cues["a.mp3"] == CuePoints(12.5, 45.0)
    assert cues["b.mp3"] == CuePoints(3.0, None)

    song = _song(str(tmp_path / "b.mp3"))
    updated = update_song_cue(song, 5.0, 30.0)
    assert updated.start_time == 5.0
    assert updated.end_time == 30.0
    cues = load_cues(str(tmp_path))
    assert cues["b.mp3"] == CuePoints(5.0, 30.0)
    assert cues["a.mp3"] == CuePoints(12.5, 45.0)


def test_apply_cues_sets_song_cue_points(tmp_path):
    save_cues(str(tmp_path), {"a.mp3": CuePoints(start_time=1.5, end_time=9.0)})
    songs = [_song(str(tmp_path / "a.mp3")), _song(str(tmp_path / "c.mp3"))]
    result = apply_cues(songs, str(tmp_path))
    assert result[0].start_time == 1.5
    assert result[0].end_time == 9.0
    assert result[1].start_time is None
