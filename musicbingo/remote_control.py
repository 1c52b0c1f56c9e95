from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from musicbingo.game_session import GameSession
from musicbingo.settings_store import AppSettings

logger = logging.getLogger(__name__)

EffectFn = Callable[[str, int], bool]


def ok(result: Any = None, status: int = 200) -> Dict[str, Any]:
    return {"ok": True, "status": status, "result": result}


def error(code: str, message: str, status: int = 400) -> Dict[str, Any]:
    return {"ok": False, "status": status, "error": {"code": code, "message": message}}


class RemoteController(QObject):
    """Turns web remote commands into session changes.

    Called from the web server thread. Playback requests are emitted as
    signals so a player living on the Qt thread receives them queued.
    """

    songRequested = pyqtSignal(object)
    pauseToggled = pyqtSignal(bool)
    stopRequested = pyqtSignal()
    volumeRequested = pyqtSignal(int)

    def __init__(
        self,
        session: GameSession,
        settings: Optional[AppSettings] = None,
        effect_player: Optional[EffectFn] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.session = session
        self.settings = settings or AppSettings()
        self._effect_player = effect_player
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            "health": lambda _params: ok({"status": "ok"}),
            "playnext": self._play_next,
            "previous": self._previous,
            "pause": self._pause,
            "reset": self._reset,
            "volume_set": self._volume_set,
            "effect": self._effect,
            "check": self._check,
            "winners": self._winners,
            "query": lambda _params: ok(self.session.snapshot()),
        }

    def __call__(self, command: str, params: Dict[str, Any]) -> Dict[str, Any]:
        handler = self._handlers.get(command)
        if handler is None:
            return error("unknown_command", f"Unknown command: {command}", 404)
        logger.debug("Web remote command %s %s", command, params)
        return handler(params)

    def _play_next(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.session.tickets:
            return error("no_tickets", "Generate or load tickets before playing.", 409)
        song = self.session.play_next()
        if song is None:
            self.stopRequested.emit()
            return error("catalog_exhausted", "Every song in the catalog has been played.", 409)
        self.songRequested.emit(song)
        return ok(self.session.snapshot())

    def _previous(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        song = self.session.replay_previous()
        if song is None:
            return error("no_history", "Nothing has been played yet.", 409)
        self.songRequested.emit(song)
        return ok(self.session.snapshot())

    def _pause(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        self.pauseToggled.emit(self.session.toggle_pause())
        return ok(self.session.snapshot())

    def _reset(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        self.session.reset_game()
        self.stopRequested.emit()
        return ok(self.session.snapshot())

    def _volume_set(self, params: Dict[str, Any]) -> Dict[str, Any]:
        level = max(0, min(100, int(params.get("level", 0))))
        self.settings.volume = level
        self.volumeRequested.emit(level)
        return ok({"volume": level})

    def _effect(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = str(params.get("name", "")).strip().lower()
        if name not in self.settings.effects:
            return error("unknown_effect", f"Unknown effect: {name}", 404)
        path = self.settings.effects.get(name, "")
        if not path:
            return error("effect_not_set", f"No sound assigned to {name}.", 409)
        if self._effect_player is None or not self._effect_player(path, self.settings.volume):
            return error("effect_failed", f"Could not play {name}.", 500)
        return ok({"effect": name})

    def _check(self, params: Dict[str, Any]) -> Dict[str, Any]:
        ticket_id = str(params.get("ticket_id", "")).strip()
        payload = self.session.ticket_payload(ticket_id)
        if payload is None:
            return error("ticket_not_found", f"Ticket #{ticket_id} not found.", 404)
        return ok(payload)

    def _winners(self, _params: Dict[str, Any]) -> Dict[str, Any]:
        winners = self.session.winning_tickets()
        return ok({"winners": {ticket_id: [win.label for win in wins] for ticket_id, wins in winners.items()}})
