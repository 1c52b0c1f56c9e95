from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence
from urllib.parse import quote, unquote

from musicbingo.bingo_logic import BingoTicket, Song
from musicbingo.boards_store import (
    BOARDS_FILE,
    TICKETS_FILE,
    BoardData,
    PDFConfig,
    load_boards,
    load_ticket_config,
    save_boards,
    save_ticket_config,
)

logger = logging.getLogger(__name__)

PRESETS_DIR = "presets"
PRESET_EXTENSION = ".bingopreset"
MANIFEST_MEMBER = "manifest.json"
PRESET_FORMAT = "musicbingo-preset"
PRESET_VERSION = 1


class PresetError(Exception):
    pass


@dataclass(frozen=True)
class PresetInfo:
    name: str
    encoded_name: str
    has_boards: bool
    has_tickets: bool


@dataclass
class PresetData:
    name: str
    boards: List[BoardData]
    catalog: List[Song]
    grid_size: int
    pdf_config: Optional[PDFConfig]
    selected_song_ids: List[str] = field(default_factory=list)


def encode_preset_name(name: str) -> str:
    cleaned = str(name or "").strip()
    if not cleaned:
        raise PresetError("Preset name must not be empty.")
    return quote(cleaned, safe=" -_()")


def decode_preset_name(encoded_name: str) -> str:
    return unquote(encoded_name)


def presets_dir(folder: str) -> str:
    return os.path.join(folder, PRESETS_DIR)


def preset_path(folder: str, name: str) -> str:
    return os.path.join(presets_dir(folder), encode_preset_name(name) + PRESET_EXTENSION)


def build_manifest(name: str, grid_size: int, selected_song_ids: Iterable[str], has_boards: bool, has_tickets: bool) -> dict:
    return {
        "format": PRESET_FORMAT,
        "version": PRESET_VERSION,
        "name": name,
        "grid_size": int(grid_size),
        "selected_song_ids": sorted(selected_song_ids),
        "has_boards": bool(has_boards),
        "has_tickets": bool(has_tickets),
    }


def read_manifest(package_path: str) -> dict:
    try:
        with zipfile.ZipFile(package_path, "r") as archive:
            try:
                raw = archive.read(MANIFEST_MEMBER)
            except KeyError:
                return {}
    except zipfile.BadZipFile as exc:
        raise PresetError(f"Preset archive is damaged: {os.path.basename(package_path)}") from exc
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {}
    return payload if isinstance(payload, dict) else {}


def list_presets(folder: str) -> List[PresetInfo]:
    directory = presets_dir(folder)
    if not folder or not os.path.isdir(directory):
        return []
    presets: List[PresetInfo] = []
    for entry in os.listdir(directory):
        if not entry.endswith(PRESET_EXTENSION):
            continue
        encoded_name = entry[: -len(PRESET_EXTENSION)]
        try:
            manifest = read_manifest(os.path.join(directory, entry))
        except PresetError as exc:
            logger.warning("%s", exc)
            continue
        presets.append(
            PresetInfo(
                name=str(manifest.get("name") or decode_preset_name(encoded_name)),
                encoded_name=encoded_name,
                has_boards=bool(manifest.get("has_boards")),
                has_tickets=bool(manifest.get("has_tickets")),
            )
        )
    return sorted(presets, key=lambda info: info.name.casefold())


def save_preset(
    folder: str,
    name: str,
    tickets: Sequence[BingoTicket],
    catalog: Sequence[Song],
    grid_size: int,
    pdf_config: PDFConfig,
    selected_song_ids: Iterable[str] = (),
) -> str:
    target = preset_path(folder, name)
    os.makedirs(os.path.dirname(target), exist_ok=True)
    staging = tempfile.mkdtemp(prefix="musicbingo-preset-")
    try:
        save_boards(staging, tickets, catalog)
        save_ticket_config(staging, pdf_config, grid_size)
        manifest = build_manifest(name.strip(), grid_size, selected_song_ids, bool(tickets), True)
        partial = target + ".part"
        with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.write(os.path.join(staging, BOARDS_FILE), arcname=BOARDS_FILE)
            archive.write(os.path.join(staging, TICKETS_FILE), arcname=TICKETS_FILE)
            archive.writestr(MANIFEST_MEMBER, json.dumps(manifest, indent=2))
        os.replace(partial, target)
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    logger.info("Saved preset %r (%d tickets) to %s", name, len(tickets), target)
    return target


def load_preset(folder: str, name: str) -> PresetData:
    source = preset_path(folder, name)
    if not os.path.exists(source):
        raise PresetError(f"Preset not found: {name}")
    manifest = read_manifest(source)
    if manifest.get("format") != PRESET_FORMAT:
        raise PresetError(f"Not a music bingo preset: {os.path.basename(source)}")

    staging = tempfile.mkdtemp(prefix="musicbingo-preset-")
    try:
        with zipfile.ZipFile(source, "r") as archive:
            for member in (BOARDS_FILE, TICKETS_FILE):
                if member in archive.namelist():
                    _extract_to_file(archive, member, os.path.join(staging, member))
        boards_result = load_boards(staging)
        ticket_config = load_ticket_config(staging)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    grid_size = int(manifest.get("grid_size") or (ticket_config[1] if ticket_config else 5))
    return PresetData(
        name=str(manifest.get("name") or name),
        boards=boards_result.boards if boards_result else [],
        catalog=boards_result.catalog if boards_result else [],
        grid_size=grid_size,
        pdf_config=ticket_config[0] if ticket_config else None,
        selected_song_ids=[str(item) for item in manifest.get("selected_song_ids") or []],
    )


def delete_preset(folder: str, name: str) -> bool:
    target = preset_path(folder, name)
    if not os.path.exists(target):
        return False
    os.remove(target)
    logger.info("Deleted preset %r", name)
    return True


def _extract_to_file(archive: zipfile.ZipFile, member: str, target_path: str) -> str:
    os.makedirs(os.path.dirname(target_path), exist_ok=True)
    with archive.open(member, "r") as source, open(target_path, "wb") as target:
        shutil.copyfileobj(source, target)
    return target_path
