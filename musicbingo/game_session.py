from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set

from musicbingo.bingo_logic import (
    BingoError,
    BingoTicket,
    Song,
    TicketBatch,
    WinType,
    calculate_safe_max,
    check_wins,
    generate_tickets,
    marked_grid,
)
from musicbingo.boards_store import BoardData, normalize_song_path, reconstruct_tickets, update_song_cue

logger = logging.getLogger(__name__)

DEFAULT_SONG_SECONDS = 30.0


class NoSongsError(BingoError):
    pass


class TooManyTicketsError(BingoError):
    def __init__(self, requested: int, safe_max: int) -> None:
        self.requested = requested
        self.safe_max = safe_max
        super().__init__(f"Cannot generate {requested} unique tickets; the current song selection allows at most {safe_max}.")


@dataclass
class GenerationReport:
    batch: TicketBatch[Song]
    safe_max: int
    catalog_size: int


@dataclass
class TicketCheck:
    ticket: Optional[BingoTicket[Song]]
    wins: List[WinType] = field(default_factory=list)


class GameSession:
    """Library, tickets and playback history of one bingo night.

    Every public method takes the session lock, so the web remote thread and
    the Qt thread can both drive the same session.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._lock = threading.RLock()
        self._rng = rng or random.Random()
        self.songs: List[Song] = []
        self.selected_song_ids: Set[str] = set()
        self.game_catalog: List[Song] = []
        self.tickets: Dict[str, BingoTicket[Song]] = {}
        self.played_song_ids: Set[str] = set()
        self.history: List[str] = []
        self.history_index = -1
        self.current_song: Optional[Song] = None
        self.is_playing = False
        self.grid_size = 5
        self.restart_count = 0
        self.current_elapsed = 0.0
        self._cued = False

    # Library

    def set_songs(self, songs: Iterable[Song]) -> None:
        with self._lock:
            self.songs = list(songs)
            known = {song.id for song in self.songs}
            self.selected_song_ids &= known
            logger.info("Library set to %d songs", len(self.songs))

    def add_songs(self, songs: Iterable[Song]) -> int:
        with self._lock:
            known = {song.id for song in self.songs}
            added = [song for song in songs if song.id not in known]
            self.songs.extend(added)
            logger.info("Added %d songs to library", len(added))
            return len(added)

    def remove_song(self, song_id: str) -> bool:
        with self._lock:
            before = len(self.songs)
            self.songs = [song for song in self.songs if song.id != song_id]
            self.selected_song_ids.discard(song_id)
            removed = len(self.songs) != before
            if removed:
                logger.info("Removed song %s", song_id)
            return removed

    def update_song(self, song: Song) -> bool:
        with self._lock:
            for index, existing in enumerate(self.songs):
                if existing.id == song.id:
                    self.songs[index] = song
                    return True
            return False

    def batch_update_songs(self, songs: Iterable[Song]) -> int:
        with self._lock:
            updates = {song.id: song for song in songs}
            count = 0
            for index, existing in enumerate(self.songs):
                if existing.id in updates:
                    self.songs[index] = updates[existing.id]
                    count += 1
            logger.info("Batch updated %d songs", count)
            return count

    def update_song_cues(self, song_id: str, start_time: Optional[float], end_time: Optional[float]) -> Optional[Song]:
        """Store new cue points for a library song and persist them to cue.ini."""
        with self._lock:
            song = self.find_song(song_id)
            if song is None:
                return None
            updated = update_song_cue(song, start_time, end_time)
            self.update_song(updated)
            return updated

    def clear_library(self) -> None:
        with self._lock:
            self.songs = []
            self.selected_song_ids = set()
            self.game_catalog = []
            self.tickets = {}
            self._clear_progress()
            logger.info("Library cleared")

    def find_song(self, song_id: str) -> Optional[Song]:
        with self._lock:
            for song in self.songs:
                if song.id == song_id:
                    return song
            return None

    # Selection

    def toggle_song_selection(self, song_id: str) -> bool:
        with self._lock:
            if song_id in self.selected_song_ids:
                self.selected_song_ids.discard(song_id)
                return False
            self.selected_song_ids.add(song_id)
            return True

    def select_all_songs(self) -> None:
        with self._lock:
            self.selected_song_ids = {song.id for song in self.songs}

    def deselect_all_songs(self) -> None:
        with self._lock:
            self.selected_song_ids = set()

    def set_selected_song_ids(self, song_ids: Iterable[str]) -> None:
        with self._lock:
            known = {song.id for song in self.songs}
            self.selected_song_ids = {song_id for song_id in song_ids if song_id in known}

    def songs_for_generation(self) -> List[Song]:
        with self._lock:
            if not self.selected_song_ids:
                return list(self.songs)
            return [song for song in self.songs if song.id in self.selected_song_ids]

    # Tickets

    def safe_max(self, grid_size: Optional[int] = None) -> int:
        with self._lock:
            return calculate_safe_max(len(self.songs_for_generation()), grid_size or self.grid_size)

    def generate_tickets(self, count: int, grid_size: Optional[int] = None) -> GenerationReport:
        with self._lock:
            size = grid_size or self.grid_size
            catalog = self.songs_for_generation()
            if not catalog:
                raise NoSongsError("No songs available to generate tickets from.")
            safe_max = calculate_safe_max(len(catalog), size)
            if safe_max > 0 and count > safe_max:
                raise TooManyTicketsError(count, safe_max)

            batch = generate_tickets(catalog, size, count, rng=self._rng)
            self.grid_size = size
            self.game_catalog = list(catalog)
            self.tickets = {ticket.id: ticket for ticket in batch.tickets}
            self._clear_progress()
            if not batch.is_complete:
                logger.warning("Only %d of %d tickets could be generated", batch.produced, batch.requested)
            return GenerationReport(batch=batch, safe_max=safe_max, catalog_size=len(catalog))

    def load_tickets_from_boards(self, boards: Sequence[BoardData], catalog: Optional[Sequence[Song]] = None) -> List[tuple]:
        """Rebuild tickets from saved boards; returns ``(board_id, song_id)`` pairs that matched nothing."""
        with self._lock:
            result = reconstruct_tickets(boards, self.songs, catalog)
            self.tickets = dict(result.tickets)
            self.game_catalog = list(result.game_catalog)
            if result.tickets:
                self.grid_size = result.grid_size
            return result.missing

    def clear_tickets(self) -> None:
        with self._lock:
            self.tickets = {}
            self.game_catalog = []
            logger.info("Tickets cleared")

    # Game flow

    def start_game(self) -> None:
        with self._lock:
            self._clear_progress()
            logger.info("Game started with %d tickets", len(self.tickets))

    def reset_game(self) -> None:
        with self._lock:
            self._clear_progress()
            logger.info("Game progress reset")

    def _clear_progress(self) -> None:
        self.played_song_ids = set()
        self.history = []
        self.history_index = -1
        self.current_song = None
        self.current_elapsed = 0.0
        self._cued = False
        self.is_playing = False

    def _active_catalog(self) -> List[Song]:
        return self.game_catalog if self.game_catalog else self.songs

    def _song_for_id(self, song_id: str) -> Optional[Song]:
        for song in self._active_catalog():
            if song.id == song_id:
                return self._with_library_cues(song)
        return self.find_song(song_id)

    def _with_library_cues(self, song: Song) -> Song:
        path = normalize_song_path(song.file_path)
        for candidate in self.songs:
            if candidate.id == song.id or (path and normalize_song_path(candidate.file_path) == path):
                return replace(
                    song,
                    start_time=candidate.start_time,
                    end_time=candidate.end_time,
                    duration=candidate.duration,
                )
        return song

    def _record_played(self, song: Song) -> None:
        self.played_song_ids.add(song.id)
        self.history.append(song.id)
        self.history_index = len(self.history) - 1
        self.current_song = song
        self.current_elapsed = 0.0

    def mark_played(self, song_ids: Iterable[str]) -> None:
        """Record songs as already called, e.g. when checking tickets after the fact."""
        with self._lock:
            for song_id in song_ids:
                if song_id not in self.played_song_ids:
                    self.played_song_ids.add(song_id)
                    self.history.append(song_id)
            self.history_index = len(self.history) - 1

    def cue_first_song(self) -> Optional[Song]:
        """Pick the opening song without starting playback."""
        with self._lock:
            if not self.tickets or self.current_song is not None or self.played_song_ids:
                return None
            catalog = self._active_catalog()
            if not catalog:
                return None
            song = self._with_library_cues(self._rng.choice(catalog))
            self._record_played(song)
            self.is_playing = False
            self._cued = True
            logger.info("Cued first song: %s - %s", song.artist, song.title)
            return song

    def play_next(self) -> Optional[Song]:
        with self._lock:
            if self._cued and self.current_song is not None:
                self._cued = False
                self.is_playing = True
                logger.info("Starting cued song: %s - %s", self.current_song.artist, self.current_song.title)
                return self.current_song

            if self.history_index < len(self.history) - 1:
                next_index = self.history_index + 1
                song = self._song_for_id(self.history[next_index])
                if song is not None:
                    self.history_index = next_index
                    self.current_song = song
                    self.current_elapsed = 0.0
                    self.is_playing = True
                    logger.info("Moving forward in history to %d: %s", next_index, song.title)
                    return song

            unplayed = [song for song in self._active_catalog() if song.id not in self.played_song_ids]
            logger.debug("%d unplayed songs remaining", len(unplayed))
            if not unplayed:
                logger.warning("No more unplayed songs in catalog; stopping game")
                self.is_playing = False
                return None

            song = self._with_library_cues(self._rng.choice(unplayed))
            self._record_played(song)
            self.is_playing = True
            logger.info("Playing next song: %s - %s", song.artist, song.title)
            return song

    def replay_previous(self) -> Optional[Song]:
        with self._lock:
            self._cued = False
            if self.history_index > 0:
                previous_index = self.history_index - 1
                song = self._song_for_id(self.history[previous_index])
                if song is not None:
                    self.history_index = previous_index
                    self.current_song = song
                    self.current_elapsed = 0.0
                    self.is_playing = True
                    logger.info("Moving back in history to %d: %s", previous_index, song.title)
                return song
            if self.history_index == 0:
                self.restart_count += 1
                self.is_playing = True
                logger.info("Restarting first song")
                return self.current_song
            return None

    def toggle_pause(self) -> bool:
        with self._lock:
            self._cued = False
            self.is_playing = not self.is_playing
            return self.is_playing

    def stop(self) -> None:
        with self._lock:
            self.is_playing = False

    # Timing

    def set_current_elapsed(self, seconds: float) -> None:
        """Playback position of the current song, relative to its cue start."""
        with self._lock:
            self.current_elapsed = max(0.0, float(seconds))

    def _cued_seconds(self, song: Song) -> float:
        song = self._with_library_cues(song)
        start = song.start_time or 0.0
        end = song.end_time or song.duration or DEFAULT_SONG_SECONDS
        return max(0.0, end - start)

    def remaining_seconds(self) -> float:
        """Playing time left in the game: the whole catalog minus what has been heard."""
        with self._lock:
            total = sum(self._cued_seconds(song) for song in self._active_catalog())
            completed = 0.0
            for song_id in self.history[: max(self.history_index, 0)]:
                song = self._song_for_id(song_id)
                if song is not None:
                    completed += self._cued_seconds(song)
            current = self.current_elapsed if self.current_song is not None else 0.0
            return max(0.0, total - completed - current)

    # Checking

    def check_ticket(self, ticket_id: str) -> TicketCheck:
        with self._lock:
            ticket = self.tickets.get(str(ticket_id).strip())
            if ticket is None:
                return TicketCheck(ticket=None)
            return TicketCheck(ticket=ticket, wins=check_wins(ticket, self.played_song_ids))

    def winning_tickets(self) -> Dict[str, List[WinType]]:
        with self._lock:
            winners: Dict[str, List[WinType]] = {}
            for ticket_id, ticket in self.tickets.items():
                wins = check_wins(ticket, self.played_song_ids)
                if wins:
                    winners[ticket_id] = wins
            return winners

    def ticket_payload(self, ticket_id: str) -> Optional[dict]:
        check = self.check_ticket(ticket_id)
        if check.ticket is None:
            return None
        with self._lock:
            marks = marked_grid(check.ticket, self.played_song_ids)
        return {
            "id": check.ticket.id,
            "grid": [
                [
                    {"id": song.id, "artist": song.artist, "title": song.title, "marked": marks[r][c]}
                    for c, song in enumerate(row)
                ]
                for r, row in enumerate(check.ticket.grid)
            ],
            "wins": [win.value for win in check.wins],
        }

    def snapshot(self) -> dict:
        with self._lock:
            current = self.current_song
            return {
                "songs": len(self.songs),
                "selected": len(self.selected_song_ids),
                "catalog": len(self.game_catalog),
                "tickets": len(self.tickets),
                "grid_size": self.grid_size,
                "played": len(self.played_song_ids),
                "history_index": self.history_index,
                "history_length": len(self.history),
                "is_playing": self.is_playing,
                "remaining_seconds": round(self.remaining_seconds(), 1),
                "current_song": None
                if current is None
                else {"id": current.id, "artist": current.artist, "title": current.title},
            }
