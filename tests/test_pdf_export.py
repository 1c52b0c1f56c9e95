import pytest

from musicbingo.bingo_logic import BingoTicket, Song
from musicbingo.boards_store import PDFConfig
from musicbingo.pdf_export import build_tickets_html, cell_char_limit, export_tickets_pdf, truncate_text


def _tickets(count, grid_size=2):
    tickets = []
    for t in range(count):
        grid = tuple(
            tuple(Song(id=f"{t}-{r}-{c}", artist=f"Artist {r}{c}", title=f"Title {r}{c}") for c in range(grid_size))
            for r in range(grid_size)
        )
        tickets.append(BingoTicket(id=str(t + 1), grid=grid))
    return tickets


def test_truncate_text():
    assert truncate_text("Short", 10) == "Short"
    assert truncate_text("A very long song title indeed", 12) == "A very lo..."
    assert len(truncate_text("A very long song title indeed", 12)) == 12
    assert truncate_text("abcdef", 2) == ".."


def test_cell_char_limit_shrinks_with_grid():
    assert cell_char_limit(3) > cell_char_limit(5) > cell_char_limit(8)


def test_two_tickets_per_page_with_cut_line():
    html = build_tickets_html(_tickets(3), PDFConfig(header_text="Pub <Bingo>", footer_text="Enjoy"))
    assert html.count('class="ticket"') == 3
    assert html.count('class="page"') == 2
    assert html.count("page-break-after") == 1
    assert html.count('class="cut"') == 1
    assert "Pub &lt;Bingo&gt;" in html
    assert "Ticket #3" in html
    assert "Artist 01" in html and "Title 10" in html
    assert html.count("Enjoy") == 3


def test_logo_only_when_file_exists(tmp_path):
    missing = build_tickets_html(_tickets(1), PDFConfig(logo_path=str(tmp_path / "none.png")))
    assert "<img" not in missing
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"\x89PNG")
    present = build_tickets_html(_tickets(1), PDFConfig(logo_path=str(logo)))
    assert "<img" in present
    assert "logo.png" in present


def test_export_tickets_pdf_writes_file(qapp, tmp_path):
    output = tmp_path / "out" / "tickets.pdf"
    export_tickets_pdf(_tickets(2, grid_size=5), PDFConfig(), str(output))
    assert output.read_bytes().startswith(b"%PDF")


def test_export_without_tickets_raises(tmp_path):
    with pytest.raises(ValueError):
        export_tickets_pdf([], PDFConfig(), str(tmp_path / "empty.pdf"))
