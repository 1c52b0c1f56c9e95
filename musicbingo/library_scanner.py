from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from mutagen import File as MutagenFile

from musicbingo.bingo_logic import Song

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {".mp3", ".wav", ".ogg"}
UNKNOWN_ARTIST = "Unknown Artist"

ProgressFn = Callable[[int, int, str], None]


def iter_audio_paths(folder: str) -> List[str]:
    if not folder or not os.path.isdir(folder):
        return []
    paths: List[str] = []
    for dirpath, _dirnames, filenames in os.walk(folder):
        for name in filenames:
            if os.path.splitext(name)[1].lower() in AUDIO_EXTENSIONS:
                paths.append(os.path.abspath(os.path.join(dirpath, name)))
    return sorted(paths)


def split_artist_title(stem: str) -> Tuple[str, str]:
    if " - " in stem:
        artist, title = stem.split(" - ", 1)
        artist = artist.strip()
        title = title.strip()
        if artist and title:
            return artist, title
    return UNKNOWN_ARTIST, stem


def _first(tags, key: str) -> Optional[str]:
    if tags is None:
        return None
    value = tags.get(key)
    if not value:
        return None
    if isinstance(value, list):
        return (str(value[0]).strip() if value else None) or None
    text = str(value).strip()
    return text or None


def _int_or_none(value) -> Optional[int]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def read_song(path: str) -> Song:
    stem = os.path.splitext(os.path.basename(path))[0]
    artist, title = UNKNOWN_ARTIST, stem

    audio = None
    try:
        audio = MutagenFile(path, easy=True)
    except Exception as exc:
        logger.warning("Could not read tags from %s: %s", path, exc)

    tag_artist = _first(audio, "artist") if audio is not None else None
    tag_title = _first(audio, "title") if audio is not None else None
    if tag_title:
        title = tag_title
        if tag_artist:
            artist = tag_artist
    else:
        artist, title = split_artist_title(stem)
        if tag_artist:
            artist = tag_artist

    info = getattr(audio, "info", None)
    duration = None
    if info is not None and getattr(info, "length", None):
        duration = float(info.length)

    return Song(
        id=path,
        artist=artist,
        title=title,
        file_path=path,
        duration=duration,
        album_artist=_first(audio, "albumartist") if audio is not None else None,
        bitrate=_int_or_none(getattr(info, "bitrate", None)),
        channels=_int_or_none(getattr(info, "channels", None)),
        sample_rate=_int_or_none(getattr(info, "sample_rate", None)),
    )


def scan_folder(folder: str, progress_callback: Optional[ProgressFn] = None, max_workers: int = 4) -> List[Song]:
    paths = iter_audio_paths(folder)
    if not paths:
        logger.info("No audio files found in %s", folder)
        return []

    total = len(paths)
    songs: List[Song] = []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="musicbingo-scan") as executor:
        for index, song in enumerate(executor.map(read_song, paths), start=1):
            songs.append(song)
            if progress_callback is not None:
                progress_callback(index, total, os.path.basename(song.file_path))

    logger.info("Scanned %d audio files in %s", len(songs), folder)
    return songs
