from __future__ import annotations

import json
import sys
from pathlib import Path

FALLBACK_VERSION = "0.0.0"


def _candidate_version_paths() -> list[Path]:
    paths: list[Path] = []
    if getattr(sys, "frozen", False):
        paths.append(Path(getattr(sys, "executable", "")).resolve().parent / "version.json")
        meipass = getattr(sys, "_MEIPASS", "")
        if meipass:
            paths.append(Path(meipass) / "version.json")
    paths.append(Path(__file__).resolve().parent.parent / "version.json")
    return paths


def get_version() -> str:
    for path in _candidate_version_paths():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            continue
        version = str(raw.get("version", "")).strip() if isinstance(raw, dict) else ""
        if version:
            return version
    return FALLBACK_VERSION


def get_app_title() -> str:
    return f"Music Bingo {get_version()}"
