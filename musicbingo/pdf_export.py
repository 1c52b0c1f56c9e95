from __future__ import annotations

import html
import logging
import os
from pathlib import Path
from typing import List, Sequence

from PyQt5.QtCore import QMarginsF, QSizeF
from PyQt5.QtGui import QPageLayout, QPageSize, QTextDocument
from PyQt5.QtPrintSupport import QPrinter

from musicbingo.bingo_logic import BingoTicket, Song
from musicbingo.boards_store import PDFConfig

logger = logging.getLogger(__name__)

TICKETS_PER_PAGE = 2
ELLIPSIS = "..."
# Characters that fit in one cell of a 5x5 grid on half an A4 page.
_CELL_CHARS_AT_FIVE = 22


def truncate_text(text: str, max_chars: int) -> str:
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    if max_chars <= len(ELLIPSIS):
        return ELLIPSIS[:max_chars]
    return text[: max_chars - len(ELLIPSIS)].rstrip() + ELLIPSIS


def cell_char_limit(grid_size: int) -> int:
    return max(6, int(_CELL_CHARS_AT_FIVE * 5 / max(1, grid_size)))


def _cell_html(song: Song, limit: int) -> str:
    artist = html.escape(truncate_text(song.artist, limit))
    title = html.escape(truncate_text(song.title, limit))
    return f'<td class="cell"><span class="artist">{artist}</span><br/><span class="title">{title}</span></td>'


def _ticket_html(ticket: BingoTicket[Song], config: PDFConfig) -> str:
    limit = cell_char_limit(ticket.size)
    parts: List[str] = ['<div class="ticket">']
    if config.logo_path and os.path.exists(config.logo_path):
        logo_uri = Path(os.path.abspath(config.logo_path)).as_uri()
        parts.append(f'<p align="center"><img src="{html.escape(logo_uri)}" height="48"/></p>')
    parts.append(f'<h2 align="center">{html.escape(config.header_text or "")}</h2>')
    parts.append(f'<p align="right" class="number">Ticket #{html.escape(ticket.id)}</p>')
    parts.append('<table class="grid" width="100%" cellspacing="0" cellpadding="4" border="1">')
    for row in ticket.grid:
        parts.append("<tr>" + "".join(_cell_html(song, limit) for song in row) + "</tr>")
    parts.append("</table>")
    parts.append(f'<p align="center" class="footer">{html.escape(config.footer_text or "")}</p>')
    parts.append("</div>")
    return "\n".join(parts)


def build_tickets_html(tickets: Sequence[BingoTicket[Song]], config: PDFConfig) -> str:
    """Lay out tickets two to a page with a dashed cut line between them."""
    style = (
        "<style>"
        "h2 { font-size: 18pt; margin: 0; }"
        ".cell { text-align: center; vertical-align: middle; height: 48px; }"
        ".artist { font-size: 9pt; font-weight: bold; }"
        ".title { font-size: 10pt; }"
        ".number { font-size: 9pt; color: #555555; }"
        ".footer { font-size: 10pt; font-style: italic; }"
        ".cut { color: #888888; }"
        "</style>"
    )
    pages: List[str] = []
    for start in range(0, len(tickets), TICKETS_PER_PAGE):
        chunk = tickets[start : start + TICKETS_PER_PAGE]
        body = '\n<p align="center" class="cut">- - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - -</p>\n'.join(
            _ticket_html(ticket, config) for ticket in chunk
        )
        last_page = start + TICKETS_PER_PAGE >= len(tickets)
        page_style = "" if last_page else ' style="page-break-after: always;"'
        pages.append(f'<div class="page"{page_style}>\n{body}\n</div>')
    return f"<html><head>{style}</head><body>\n" + "\n".join(pages) + "\n</body></html>"


def export_tickets_pdf(tickets: Sequence[BingoTicket[Song]], config: PDFConfig, output_path: str) -> str:
    if not tickets:
        raise ValueError("No tickets to export.")
    directory = os.path.dirname(os.path.abspath(output_path))
    os.makedirs(directory, exist_ok=True)

    printer = QPrinter(QPrinter.HighResolution)
    printer.setOutputFormat(QPrinter.PdfFormat)
    printer.setOutputFileName(output_path)
    printer.setDocName(config.header_text or "Bingo Tickets")
    printer.setPageLayout(QPageLayout(QPageSize(QPageSize.A4), QPageLayout.Portrait, QMarginsF(10, 10, 10, 10), QPageLayout.Millimeter))

    doc = QTextDocument()
    doc.setHtml(build_tickets_html(tickets, config))
    doc.setPageSize(QSizeF(printer.pageRect(QPrinter.Point).size()))
    doc.print_(printer)
    logger.info("Exported %d tickets to %s", len(tickets), output_path)
    return output_path
