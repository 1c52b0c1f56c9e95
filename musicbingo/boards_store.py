from __future__ import annotations

import configparser
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from musicbingo.bingo_logic import BingoTicket, Song

logger = logging.getLogger(__name__)

BOARDS_FILE = "boards.ini"
TICKETS_FILE = "tickets.ini"
CUES_FILE = "cue.ini"
CATALOG_SECTION = "catalog"
SETTINGS_SECTION = "settings"
DEFAULT_GRID_SIZE = 5

_CUE_LOCKS: Dict[str, threading.Lock] = {}
_CUE_LOCKS_GUARD = threading.Lock()


@dataclass
class PDFConfig:
    header_text: str = "Musical Bingo"
    footer_text: str = "Have Fun!"
    logo_path: Optional[str] = None


@dataclass(frozen=True)
class BoardCell:
    row: int
    col: int
    song_id: str


@dataclass
class BoardData:
    id: str
    cells: List[BoardCell] = field(default_factory=list)


@dataclass
class BoardsLoadResult:
    boards: List[BoardData]
    catalog: List[Song]


@dataclass
class ReconstructResult:
    tickets: Dict[str, BingoTicket[Song]]
    grid_size: int
    game_catalog: List[Song]
    missing: List[Tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class CuePoints:
    start_time: Optional[float] = None
    end_time: Optional[float] = None


def _new_parser() -> configparser.RawConfigParser:
    parser = configparser.RawConfigParser(
        interpolation=None,
        strict=False,
        delimiters=("=",),
        comment_prefixes=(";",),
    )
    parser.optionxform = str
    return parser


def _read_text_with_fallback(file_path: str) -> Tuple[str, str]:
    with open(file_path, "rb") as fh:
        raw = fh.read()
    for encoding in ("utf-8-sig", "utf-16", "cp1252", "latin1"):
        try:
            return raw.decode(encoding), encoding
        except UnicodeDecodeError:
            continue
    return raw.decode("latin1", errors="replace"), "latin1-replace"


def _read_parser(file_path: str) -> configparser.RawConfigParser:
    text, _encoding = _read_text_with_fallback(file_path)
    parser = _new_parser()
    parser.read_string(text, source=file_path)
    return parser


def _write_parser(file_path: str, parser: configparser.RawConfigParser, header: str) -> None:
    with open(file_path, "w", encoding="utf-8") as fh:
        fh.write(f"; {header}\n\n")
        parser.write(fh, space_around_delimiters=False)


def normalize_song_path(value: str) -> str:
    return str(value or "").strip().replace("\\", "/").lower()


def _file_name(value: str) -> str:
    return normalize_song_path(value).rsplit("/", 1)[-1]


def save_boards(folder: str, tickets: Iterable[BingoTicket], catalog: Optional[Sequence[Song]] = None) -> str:
    parser = _new_parser()
    if catalog is not None:
        parser.add_section(CATALOG_SECTION)
        for song in catalog:
            parser.set(CATALOG_SECTION, song.id, f"{song.artist}|{song.title}")
    for ticket in tickets:
        parser.add_section(ticket.id)
        for row_index, row in enumerate(ticket.grid):
            for col_index, song in enumerate(row):
                if song is not None:
                    parser.set(ticket.id, f"{row_index},{col_index}", song.id)

    boards_path = os.path.join(folder, BOARDS_FILE)
    _write_parser(boards_path, parser, "Generated Bingo Boards and Catalog")
    logger.info("Saved boards to %s", boards_path)
    return boards_path


def clear_boards(folder: str) -> str:
    return save_boards(folder, [], None)


def load_boards(folder: str) -> Optional[BoardsLoadResult]:
    boards_path = os.path.join(folder, BOARDS_FILE)
    if not os.path.exists(boards_path):
        return None
    parser = _read_parser(boards_path)

    catalog: List[Song] = []
    boards: List[BoardData] = []
    for section_name in parser.sections():
        section = parser[section_name]
        if section_name == CATALOG_SECTION:
            for song_id, meta in section.items():
                artist, _sep, title = meta.partition("|")
                catalog.append(Song(id=song_id, artist=artist.strip(), title=title.strip(), file_path=song_id))
            continue

        board = BoardData(id=section_name)
        for position, song_id in section.items():
            cell = _parse_cell(position, song_id)
            if cell is None:
                logger.warning("Skipping malformed cell %r on board %s", position, section_name)
                continue
            board.cells.append(cell)
        boards.append(board)

    return BoardsLoadResult(boards=boards, catalog=catalog)


def _parse_cell(position: str, song_id: str) -> Optional[BoardCell]:
    row_text, sep, col_text = position.partition(",")
    if not sep:
        return None
    try:
        row = int(row_text.strip())
        col = int(col_text.strip())
    except ValueError:
        return None
    if row < 0 or col < 0:
        return None
    return BoardCell(row=row, col=col, song_id=song_id.strip())


def find_library_song(song_id: str, library: Sequence[Song]) -> Optional[Song]:
    for song in library:
        if song.id == song_id:
            return song
    wanted = normalize_song_path(song_id)
    for song in library:
        if normalize_song_path(song.file_path) == wanted:
            return song
    wanted_name = _file_name(song_id)
    if not wanted_name:
        return None
    for song in library:
        if _file_name(song.file_path) == wanted_name:
            return song
    return None


def sync_with_library(song: Song, library: Sequence[Song]) -> Song:
    """Copy cue points and duration from the matching library entry."""
    wanted = normalize_song_path(song.file_path)
    for candidate in library:
        if candidate.id == song.id or normalize_song_path(candidate.file_path) == wanted:
            return replace(
                song,
                start_time=candidate.start_time,
                end_time=candidate.end_time,
                duration=candidate.duration,
            )
    return song


def reconstruct_tickets(
    boards: Sequence[BoardData],
    library: Sequence[Song],
    catalog: Optional[Sequence[Song]] = None,
) -> ReconstructResult:
    if catalog:
        game_catalog = [sync_with_library(song, library) for song in catalog]
    else:
        logger.info("No saved catalog; falling back to the current library (%d songs).", len(library))
        game_catalog = list(library)

    tickets: Dict[str, BingoTicket[Song]] = {}
    missing: List[Tuple[str, str]] = []
    grid_size = DEFAULT_GRID_SIZE
    for board in boards:
        size = max([max(cell.row, cell.col) for cell in board.cells] + [0]) + 1
        grid_size = size
        placeholder = Song(id="", artist="Unknown", title="Unknown")
        rows: List[List[Song]] = [[placeholder for _ in range(size)] for _ in range(size)]
        for cell in board.cells:
            song = find_library_song(cell.song_id, library)
            if song is None:
                logger.warning("Could not find song match for %r on board %s", cell.song_id, board.id)
                missing.append((board.id, cell.song_id))
                continue
            rows[cell.row][cell.col] = song
        tickets[board.id] = BingoTicket(id=board.id, grid=tuple(tuple(row) for row in rows))

    logger.info("Reconstructed %d tickets with grid size %d", len(tickets), grid_size)
    return ReconstructResult(tickets=tickets, grid_size=grid_size, game_catalog=game_catalog, missing=missing)


def save_ticket_config(folder: str, config: PDFConfig, grid_size: int) -> str:
    parser = _new_parser()
    parser[SETTINGS_SECTION] = {
        "header": config.header_text or "",
        "footer": config.footer_text or "",
        "logo": config.logo_path or "",
        "gridSize": str(grid_size or DEFAULT_GRID_SIZE),
    }
    ticket_path = os.path.join(folder, TICKETS_FILE)
    _write_parser(ticket_path, parser, "Ticket Configuration")
    return ticket_path


def load_ticket_config(folder: str) -> Optional[Tuple[PDFConfig, int]]:
    ticket_path = os.path.join(folder, TICKETS_FILE)
    if not os.path.exists(ticket_path):
        return None
    parser = _read_parser(ticket_path)
    section = parser[SETTINGS_SECTION] if parser.has_section(SETTINGS_SECTION) else {}
    defaults = PDFConfig()
    config = PDFConfig(
        header_text=str(section.get("header", defaults.header_text)),
        footer_text=str(section.get("footer", defaults.footer_text)),
        logo_path=str(section.get("logo", "")).strip() or None,
    )
    try:
        grid_size = int(str(section.get("gridSize", DEFAULT_GRID_SIZE)).strip())
    except ValueError:
        grid_size = DEFAULT_GRID_SIZE
    return config, max(1, grid_size)


def _cue_lock(path: str) -> threading.Lock:
    key = os.path.normcase(os.path.abspath(path))
    with _CUE_LOCKS_GUARD:
        lock = _CUE_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _CUE_LOCKS[key] = lock
        return lock


def _parse_seconds(value: Optional[str]) -> Optional[float]:
    if value is None or not str(value).strip():
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(0.0, seconds)


def _read_cues(cue_path: str) -> Dict[str, CuePoints]:
    if not os.path.exists(cue_path):
        return {}
    parser = _read_parser(cue_path)
    cues: Dict[str, CuePoints] = {}
    for file_name in parser.sections():
        section = parser[file_name]
        cues[file_name] = CuePoints(
            start_time=_parse_seconds(section.get("start")),
            end_time=_parse_seconds(section.get("end")),
        )
    return cues


def _write_cues(cue_path: str, cues: Dict[str, CuePoints]) -> None:
    parser = _new_parser()
    for file_name, cue in cues.items():
        parser.add_section(file_name)
        if cue.start_time is not None:
            parser.set(file_name, "start", repr(float(cue.start_time)))
        if cue.end_time is not None:
            parser.set(file_name, "end", repr(float(cue.end_time)))
    _write_parser(cue_path, parser, "Music Bingo Cue Points")


def load_cues(folder: str) -> Dict[str, CuePoints]:
    if not folder:
        return {}
    cue_path = os.path.join(folder, CUES_FILE)
    with _cue_lock(cue_path):
        return _read_cues(cue_path)


def save_cues(folder: str, cues: Dict[str, CuePoints]) -> str:
    cue_path = os.path.join(folder, CUES_FILE)
    with _cue_lock(cue_path):
        _write_cues(cue_path, cues)
    return cue_path


def update_song_cue(song: Song, start_time: Optional[float], end_time: Optional[float]) -> Song:
    folder = os.path.dirname(song.file_path)
    file_name = os.path.basename(song.file_path)
    cue_path = os.path.join(folder, CUES_FILE)
    with _cue_lock(cue_path):
        cues = _read_cues(cue_path)
        cues[file_name] = CuePoints(start_time=start_time, end_time=end_time)
        _write_cues(cue_path, cues)
    return replace(song, start_time=start_time, end_time=end_time)


def apply_cues(songs: Sequence[Song], folder: str) -> List[Song]:
    cues = load_cues(folder)
    if not cues:
        return list(songs)
    result: List[Song] = []
    for song in songs:
        cue = cues.get(os.path.basename(song.file_path))
        if cue is None:
            result.append(song)
            continue
        result.append(replace(song, start_time=cue.start_time, end_time=cue.end_time))
    return result
