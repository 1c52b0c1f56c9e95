from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

EFFECT_NAMES = ("suspense", "win", "lose", "airhorn", "link")


@dataclass
class AppSettings:
    last_folder: str = ""
    grid_size: int = 5
    volume: int = 80
    auto_fade: bool = True
    overlap_seconds: float = 3.0
    link_effect_enabled: bool = False
    effects: Dict[str, str] = field(default_factory=lambda: {name: "" for name in EFFECT_NAMES})
    pdf_header: str = "Musical Bingo"
    pdf_footer: str = "Have Fun!"
    pdf_logo: str = ""
    audio_output_device: str = ""
    web_remote_enabled: bool = True
    web_remote_port: int = 5050
    log_file_enabled: bool = False


def get_settings_dir() -> Path:
    appdata = os.getenv("APPDATA")
    if appdata:
        base = Path(appdata)
    else:
        base = Path.home() / ".config"
    settings_dir = base / "MusicBingo"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir


def get_settings_path() -> Path:
    return get_settings_dir() / "settings.ini"


def load_settings() -> AppSettings:
    settings_path = get_settings_path()
    if not settings_path.exists():
        settings = AppSettings()
        save_settings(settings)
        return settings
    parser = configparser.ConfigParser(interpolation=None)
    parser.read(settings_path, encoding="utf-8")
    return _from_parser(parser)


def save_settings(settings: AppSettings) -> None:
    parser = configparser.ConfigParser(interpolation=None)
    parser["main"] = {
        "last_folder": settings.last_folder,
        "grid_size": str(settings.grid_size),
        "volume": str(settings.volume),
        "auto_fade": "1" if settings.auto_fade else "0",
        "overlap_seconds": str(settings.overlap_seconds),
        "link_effect_enabled": "1" if settings.link_effect_enabled else "0",
        "audio_output_device": settings.audio_output_device,
        "web_remote_enabled": "1" if settings.web_remote_enabled else "0",
        "web_remote_port": str(settings.web_remote_port),
        "log_file_enabled": "1" if settings.log_file_enabled else "0",
    }
    parser["pdf"] = {
        "header": settings.pdf_header,
        "footer": settings.pdf_footer,
        "logo": settings.pdf_logo,
    }
    parser["assets"] = {name: str(settings.effects.get(name, "")) for name in EFFECT_NAMES}
    with open(get_settings_path(), "w", encoding="utf-8") as fh:
        fh.write("; Music Bingo Settings\n\n")
        parser.write(fh)


def _from_parser(parser: configparser.ConfigParser) -> AppSettings:
    defaults = AppSettings()
    section = parser["main"] if parser.has_section("main") else {}
    pdf = parser["pdf"] if parser.has_section("pdf") else {}
    assets = parser["assets"] if parser.has_section("assets") else {}
    return AppSettings(
        last_folder=str(section.get("last_folder", "")),
        grid_size=_clamp_int(_get_int(section, "grid_size", defaults.grid_size), 2, 8),
        volume=_clamp_int(_get_int(section, "volume", defaults.volume), 0, 100),
        auto_fade=_get_bool(section, "auto_fade", defaults.auto_fade),
        overlap_seconds=_clamp_float(_get_float(section, "overlap_seconds", defaults.overlap_seconds), 0.0, 20.0),
        link_effect_enabled=_get_bool(section, "link_effect_enabled", defaults.link_effect_enabled),
        effects={name: str(assets.get(name, "")).strip() for name in EFFECT_NAMES},
        pdf_header=str(pdf.get("header", defaults.pdf_header)),
        pdf_footer=str(pdf.get("footer", defaults.pdf_footer)),
        pdf_logo=str(pdf.get("logo", "")).strip(),
        audio_output_device=str(section.get("audio_output_device", "")),
        web_remote_enabled=_get_bool(section, "web_remote_enabled", defaults.web_remote_enabled),
        web_remote_port=_clamp_int(_get_int(section, "web_remote_port", defaults.web_remote_port), 1024, 65535),
        log_file_enabled=_get_bool(section, "log_file_enabled", defaults.log_file_enabled),
    )


def _get_bool(section, key: str, default: bool) -> bool:
    raw = str(section.get(key, "1" if default else "0")).strip().lower()
    return raw in {"1", "true", "yes", "y", "on"}


def _get_int(section, key: str, default: int) -> int:
    try:
        return int(str(section.get(key, str(default))).strip())
    except ValueError:
        return default


def _get_float(section, key: str, default: float) -> float:
    try:
        return float(str(section.get(key, str(default))).strip())
    except ValueError:
        return default


def _clamp_int(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _clamp_float(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
