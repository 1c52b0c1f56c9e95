from __future__ import annotations

import argparse
import logging
import os
import random
import signal
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from musicbingo.bingo_logic import BingoError
from musicbingo.boards_store import (
    PDFConfig,
    apply_cues,
    load_boards,
    load_ticket_config,
    save_boards,
    save_ticket_config,
)
from musicbingo.game_session import GameSession
from musicbingo.library_scanner import scan_folder
from musicbingo.presets import PresetError, delete_preset, list_presets, load_preset, save_preset
from musicbingo.settings_store import AppSettings, get_settings_dir, load_settings, save_settings
from musicbingo.version import get_app_title, get_version

logger = logging.getLogger("musicbingo")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_LOG_HANDLERS: List[logging.Handler] = []


def configure_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    while _LOG_HANDLERS:
        handler = _LOG_HANDLERS.pop()
        root.removeHandler(handler)
        handler.close()
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _LOG_HANDLERS.append(handler)
    logging.getLogger("werkzeug").setLevel(logging.ERROR)


def _format_duration(seconds: Optional[float]) -> str:
    if not seconds:
        return "--:--"
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def _load_library(folder: str) -> List:
    songs = scan_folder(folder)
    return apply_cues(songs, folder)


def _pdf_config_from_settings(settings: AppSettings) -> PDFConfig:
    return PDFConfig(
        header_text=settings.pdf_header,
        footer_text=settings.pdf_footer,
        logo_path=settings.pdf_logo or None,
    )


def _session_from_folder(folder: str, preset: Optional[str] = None) -> GameSession:
    session = GameSession()
    session.set_songs(_load_library(folder))
    if preset:
        data = load_preset(folder, preset)
        boards, catalog = data.boards, data.catalog
        session.set_selected_song_ids(data.selected_song_ids)
    else:
        result = load_boards(folder)
        if result is None:
            raise BingoError(f"No boards.ini found in {folder}; run 'generate' first.")
        boards, catalog = result.boards, result.catalog
    missing = session.load_tickets_from_boards(boards, catalog)
    for board_id, song_id in missing:
        logger.warning("Ticket %s: song %s is no longer in the library", board_id, song_id)
    return session


def _cmd_scan(args: argparse.Namespace, settings: AppSettings) -> int:
    songs = _load_library(args.folder)
    if args.bpm:
        from musicbingo.audio_analysis import analyze_file

    for song in songs:
        line = f"{song.artist} - {song.title}  [{_format_duration(song.duration)}]"
        if args.bpm:
            line += f"  {analyze_file(song.file_path).bpm or '?'} BPM"
        print(line)
    print(f"{len(songs)} songs found in {args.folder}")
    settings.last_folder = os.path.abspath(args.folder)
    save_settings(settings)
    return 0


def _cmd_generate(args: argparse.Namespace, settings: AppSettings) -> int:
    session = GameSession(rng=None if args.seed is None else random.Random(args.seed))
    session.set_songs(_load_library(args.folder))
    if args.select:
        session.set_selected_song_ids(args.select)
    grid_size = args.grid_size or settings.grid_size
    report = session.generate_tickets(args.count, grid_size=grid_size)

    save_boards(args.folder, report.batch.tickets, session.game_catalog)
    pdf_config = _pdf_config_from_settings(settings)
    save_ticket_config(args.folder, pdf_config, grid_size)
    if args.preset:
        save_preset(
            args.folder,
            args.preset,
            report.batch.tickets,
            session.game_catalog,
            grid_size,
            pdf_config,
            session.selected_song_ids,
        )

    print(f"Generated {report.batch.produced} of {report.batch.requested} tickets ({grid_size}x{grid_size}, {report.catalog_size} songs, safe max {report.safe_max}).")
    if not report.batch.is_complete:
        print("Ran out of unique combinations; add more songs or request fewer tickets.")
    return 0


def _cmd_check(args: argparse.Namespace, settings: AppSettings) -> int:
    session = _session_from_folder(args.folder, args.preset)
    session.mark_played(args.played or [])
    check = session.check_ticket(args.ticket_id)
    if check.ticket is None:
        print(f"Ticket #{args.ticket_id} not found.")
        return 1
    marks = session.ticket_payload(args.ticket_id)["grid"]
    for row in marks:
        print(" | ".join(("[x] " if cell["marked"] else "[ ] ") + cell["title"] for cell in row))
    if check.wins:
        print("Wins: " + ", ".join(win.label for win in check.wins))
    else:
        print("No win yet.")
    return 0


def _cmd_export_pdf(args: argparse.Namespace, settings: AppSettings) -> int:
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    from PyQt5.QtWidgets import QApplication

    from musicbingo.pdf_export import export_tickets_pdf

    session = _session_from_folder(args.folder, args.preset)
    ticket_config = load_ticket_config(args.folder)
    config = ticket_config[0] if ticket_config else _pdf_config_from_settings(settings)
    tickets = sorted(session.tickets.values(), key=lambda t: (len(t.id), t.id))

    _qt_app = QApplication.instance() or QApplication(sys.argv[:1])
    export_tickets_pdf(tickets, config, args.output)
    print(f"Wrote {len(tickets)} tickets to {args.output}")
    return 0


def _cmd_presets(args: argparse.Namespace, settings: AppSettings) -> int:
    if args.delete:
        if not delete_preset(args.folder, args.delete):
            print(f"Preset not found: {args.delete}")
            return 1
        print(f"Deleted preset {args.delete}")
        return 0
    presets = list_presets(args.folder)
    for info in presets:
        flags = ", ".join(name for name, on in (("boards", info.has_boards), ("tickets", info.has_tickets)) if on)
        print(f"{info.name}  ({flags or 'empty'})")
    if not presets:
        print("No presets saved.")
    return 0


def _acquire_instance_lock():
    from PyQt5.QtCore import QLockFile

    lock = QLockFile(str(Path(tempfile.gettempdir()) / "musicbingo.instance.lock"))
    lock.setStaleLockTime(30_000)
    if not lock.tryLock(0):
        return None
    return lock


def _cmd_serve(args: argparse.Namespace, settings: AppSettings) -> int:
    from PyQt5.QtCore import QCoreApplication, QTimer

    from musicbingo.audio_engine import BingoPlayer, play_effect, set_output_device
    from musicbingo.remote_control import RemoteController
    from musicbingo.web_remote import WebRemoteServer

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    lock = _acquire_instance_lock()
    if lock is None:
        logger.error("Another Music Bingo instance is already running.")
        return 1

    session = _session_from_folder(args.folder, args.preset)
    session.start_game()
    if settings.audio_output_device and not set_output_device(settings.audio_output_device):
        logger.warning("Falling back to the default output device")

    player = BingoPlayer(auto_fade=settings.auto_fade, overlap_seconds=settings.overlap_seconds)
    player.set_volume(settings.volume)
    controller = RemoteController(session, settings, effect_player=play_effect)

    def start_song(song) -> None:
        try:
            player.set_song(song)
        except Exception as exc:
            logger.error("Could not load %s: %s", song.file_path, exc)
            return
        player.play()
        if settings.link_effect_enabled and settings.effects.get("link"):
            play_effect(settings.effects["link"], settings.volume)

    controller.songRequested.connect(start_song)
    controller.pauseToggled.connect(lambda playing: player.play() if playing else player.pause())
    controller.stopRequested.connect(player.stop)
    controller.volumeRequested.connect(player.set_volume)
    player.finished.connect(session.stop)
    player.positionChanged.connect(lambda ms: session.set_current_elapsed(ms / 1000.0))

    cued = session.cue_first_song()
    if cued is not None:
        try:
            player.set_song(cued)
        except Exception as exc:
            logger.error("Could not load %s: %s", cued.file_path, exc)

    server = WebRemoteServer(controller, host=args.host, port=args.port or settings.web_remote_port, effects=[name for name in settings.effects if name != "link"])
    server.start()
    print(f"{get_app_title()} remote at {server.url}  ({len(session.tickets)} tickets)")

    signal.signal(signal.SIGINT, lambda *_args: app.quit())
    # Let the interpreter run so SIGINT is delivered while Qt owns the loop.
    heartbeat = QTimer()
    heartbeat.start(250)
    heartbeat.timeout.connect(lambda: None)
    try:
        return app.exec_()
    finally:
        server.stop()
        player.close()
        save_settings(settings)
        lock.unlock()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="musicbingo", description="Generate, print and run music bingo games.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="list the songs in a music folder")
    scan.add_argument("folder")
    scan.add_argument("--bpm", action="store_true", help="also estimate tempo")
    scan.set_defaults(handler=_cmd_scan)

    generate = sub.add_parser("generate", help="generate unique tickets and save boards.ini")
    generate.add_argument("folder")
    generate.add_argument("--count", type=int, required=True)
    generate.add_argument("--grid-size", type=int, choices=range(2, 9), metavar="{2..8}")
    generate.add_argument("--seed", type=int)
    generate.add_argument("--select", nargs="+", metavar="SONG_ID", help="only use these songs")
    generate.add_argument("--preset", help="also save the result as a named preset")
    generate.set_defaults(handler=_cmd_generate)

    check = sub.add_parser("check", help="check a ticket against the songs played so far")
    check.add_argument("folder")
    check.add_argument("ticket_id")
    check.add_argument("--played", nargs="*", metavar="SONG_ID")
    check.add_argument("--preset")
    check.set_defaults(handler=_cmd_check)

    export = sub.add_parser("export-pdf", help="print tickets to a PDF file")
    export.add_argument("folder")
    export.add_argument("output")
    export.add_argument("--preset")
    export.set_defaults(handler=_cmd_export_pdf)

    presets = sub.add_parser("presets", help="list or delete saved presets")
    presets.add_argument("folder")
    presets.add_argument("--delete", metavar="NAME")
    presets.set_defaults(handler=_cmd_presets)

    serve = sub.add_parser("serve", help="run the game with the web remote")
    serve.add_argument("folder")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int)
    serve.add_argument("--preset")
    serve.set_defaults(handler=_cmd_serve)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    log_file = str(get_settings_dir() / "musicbingo.log") if settings.log_file_enabled else None
    configure_logging(args.debug, log_file)
    try:
        return args.handler(args, settings)
    except (BingoError, PresetError) as exc:
        logger.error("%s", exc)
        return 1
    except OSError as exc:
        logger.error("File error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
