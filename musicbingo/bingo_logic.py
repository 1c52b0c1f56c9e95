from __future__ import annotations

import enum
import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Generic, Iterable, List, Optional, Protocol, Sequence, Set, Tuple, TypeVar, Union

logger = logging.getLogger(__name__)

SAFE_MAX_CAP = 1_000_000
MAX_UNIQUE_ATTEMPTS = 200

_DEFAULT_RNG = random.Random()


class HasId(Protocol):
    @property
    def id(self) -> str: ...


ItemT = TypeVar("ItemT", bound=HasId)


@dataclass(frozen=True)
class Song:
    id: str
    artist: str = "Unknown Artist"
    title: str = ""
    file_path: str = ""
    duration: Optional[float] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    album_artist: Optional[str] = None
    bitrate: Optional[int] = None
    channels: Optional[int] = None
    sample_rate: Optional[int] = None
    bpm: Optional[int] = None


class WinType(str, enum.Enum):
    SINGLE_LINE = "1_LINE"
    DOUBLE_LINE = "2_LINES"
    FOUR_CORNERS = "FOUR_CORNERS"
    FULL_HOUSE = "FULL_HOUSE"

    @property
    def label(self) -> str:
        return {
            WinType.SINGLE_LINE: "1 Line",
            WinType.DOUBLE_LINE: "2 Lines",
            WinType.FOUR_CORNERS: "Four Corners",
            WinType.FULL_HOUSE: "Full House",
        }[self]


Grid = Tuple[Tuple[ItemT, ...], ...]


@dataclass(frozen=True)
class BingoTicket(Generic[ItemT]):
    id: str
    grid: Grid

    @property
    def size(self) -> int:
        return len(self.grid)

    def items(self) -> List[ItemT]:
        return [item for row in self.grid for item in row]

    def item_ids(self) -> List[str]:
        return [item.id for item in self.items()]


@dataclass
class TicketBatch(Generic[ItemT]):
    requested: int
    tickets: List[BingoTicket[ItemT]] = field(default_factory=list)

    @property
    def produced(self) -> int:
        return len(self.tickets)

    @property
    def is_complete(self) -> bool:
        return self.produced >= self.requested


class BingoError(ValueError):
    pass


class CatalogTooSmallError(BingoError):
    def __init__(self, grid_size: int, required: int, available: int) -> None:
        self.grid_size = grid_size
        self.required = required
        self.available = available
        super().__init__(
            f"Catalog must have at least {required} songs to generate a "
            f"{grid_size}x{grid_size} ticket (only {available} available)."
        )


def combinations(n: int, r: int, cap: int = SAFE_MAX_CAP) -> int:
    """Number of ways to choose ``r`` items out of ``n``, saturating at ``cap``.

    Any result equal to ``cap`` means "at least this many"; callers should not
    treat it as an exact count.
    """
    if r < 0 or r > n:
        return 0
    if r == 0 or r == n:
        return 1
    r = min(r, n - r)
    result = 1
    for i in range(1, r + 1):
        # result * (n - i + 1) is C(n, i) * i, so the division is exact.
        result = result * (n - i + 1) // i
        if result > cap:
            return cap
    return result


def calculate_safe_max(catalog_size: int, grid_size: int, cap: int = SAFE_MAX_CAP) -> int:
    required = grid_size * grid_size
    if catalog_size < required:
        return 0
    return combinations(catalog_size, required, cap)


def ticket_signature(ticket: Union[BingoTicket, Iterable[HasId]]) -> str:
    items = ticket.items() if isinstance(ticket, BingoTicket) else list(ticket)
    return ",".join(sorted(item.id for item in items))


def _check_catalog(catalog: Sequence[ItemT], grid_size: int) -> int:
    if grid_size < 1:
        raise ValueError(f"Grid size must be at least 1, got {grid_size}.")
    required = grid_size * grid_size
    if len(catalog) < required:
        raise CatalogTooSmallError(grid_size, required, len(catalog))
    return required


def _build_ticket(
    catalog: Sequence[ItemT],
    grid_size: int,
    required: int,
    ticket_id: str,
    rng: random.Random,
) -> BingoTicket[ItemT]:
    shuffled = list(catalog)
    rng.shuffle(shuffled)
    selected = shuffled[:required]
    grid = tuple(tuple(selected[r * grid_size : (r + 1) * grid_size]) for r in range(grid_size))
    return BingoTicket(id=ticket_id, grid=grid)


def generate_ticket(
    catalog: Sequence[ItemT],
    grid_size: int,
    ticket_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> BingoTicket[ItemT]:
    required = _check_catalog(catalog, grid_size)
    return _build_ticket(catalog, grid_size, required, ticket_id or uuid.uuid4().hex, rng or _DEFAULT_RNG)


def generate_tickets(
    catalog: Sequence[ItemT],
    grid_size: int,
    count: int,
    rng: Optional[random.Random] = None,
    max_attempts: int = MAX_UNIQUE_ATTEMPTS,
) -> TicketBatch[ItemT]:
    """Generate up to ``count`` tickets whose song sets are pairwise different.

    Raises :class:`CatalogTooSmallError` before doing any work when the catalog
    cannot fill one grid. When ``max_attempts`` shuffles in a row only produce
    already-seen song sets, generation stops and the batch holds fewer tickets
    than requested.
    """
    required = _check_catalog(catalog, grid_size)
    rng = rng or _DEFAULT_RNG
    batch: TicketBatch[ItemT] = TicketBatch(requested=max(0, count))
    seen: Set[str] = set()

    for index in range(1, count + 1):
        ticket_id = str(index)
        attempts_left = max_attempts
        while attempts_left > 0:
            ticket = _build_ticket(catalog, grid_size, required, ticket_id, rng)
            signature = ticket_signature(ticket)
            if signature not in seen:
                seen.add(signature)
                batch.tickets.append(ticket)
                break
            attempts_left -= 1
        else:
            logger.warning(
                "Could not find a unique ticket for slot %d after %d attempts; %d of %d tickets generated.",
                index,
                max_attempts,
                batch.produced,
                batch.requested,
            )
            break

    logger.info("Generated %d/%d tickets (%dx%d grid, %d songs).", batch.produced, batch.requested, grid_size, grid_size, len(catalog))
    return batch


def _grid_of(ticket) -> Sequence[Sequence[HasId]]:
    if ticket is None:
        return ()
    if isinstance(ticket, BingoTicket):
        return ticket.grid
    return ticket


def is_marked(item: HasId, played_ids) -> bool:
    return item.id in played_ids


def marked_grid(ticket, played_ids) -> List[List[bool]]:
    return [[is_marked(item, played_ids) for item in row] for row in _grid_of(ticket)]


def count_completed_lines(ticket, played_ids) -> int:
    grid = _grid_of(ticket)
    if not grid or not grid[0]:
        return 0
    rows = len(grid)
    cols = len(grid[0])

    def played(r: int, c: int) -> bool:
        row = grid[r]
        return c < len(row) and row[c].id in played_ids

    lines = sum(1 for row in grid if row and all(item.id in played_ids for item in row))
    lines += sum(1 for c in range(cols) if all(played(r, c) for r in range(rows)))
    if rows == cols:
        if all(played(i, i) for i in range(rows)):
            lines += 1
        if all(played(i, rows - 1 - i) for i in range(rows)):
            lines += 1
    return lines


def check_wins(ticket, played_ids) -> List[WinType]:
    grid = _grid_of(ticket)
    if not grid or not grid[0]:
        return []
    rows = len(grid)
    cols = len(grid[0])

    wins: List[WinType] = []
    total_lines = count_completed_lines(grid, played_ids)
    if total_lines >= 1:
        wins.append(WinType.SINGLE_LINE)
    if total_lines >= 2:
        wins.append(WinType.DOUBLE_LINE)

    if rows >= 2 and cols >= 2 and len(grid[-1]) >= cols:
        corners = (grid[0][0], grid[0][cols - 1], grid[rows - 1][0], grid[rows - 1][cols - 1])
        if all(item.id in played_ids for item in corners):
            wins.append(WinType.FOUR_CORNERS)

    if all(item.id in played_ids for row in grid for item in row):
        wins.append(WinType.FULL_HOUSE)
    return wins
