from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict

from flask import Flask, jsonify, render_template_string
from werkzeug.serving import WSGIRequestHandler, make_server

logger = logging.getLogger(__name__)

DispatchFn = Callable[[str, Dict[str, Any]], Dict[str, Any]]

CALLER_PAGE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Music Bingo Remote</title>
  <style>
    :root{--bg:#f3efe6;--panel:#fff;--ink:#222;--muted:#666;--accent:#c2185b;--ok:#2e7d32;--line:#ddd}
    *{box-sizing:border-box}
    body{margin:0;padding:14px;background:var(--bg);font-family:Segoe UI,Arial,sans-serif;color:var(--ink)}
    .shell{max-width:720px;margin:0 auto;display:grid;gap:12px}
    .card{background:var(--panel);border:1px solid var(--line);border-radius:8px;padding:12px}
    h1{margin:0 0 8px 0;font-size:22px}
    .row{display:flex;gap:6px;flex-wrap:wrap;align-items:center;margin-bottom:8px}
    button{height:40px;padding:0 14px;border:0;border-radius:6px;background:#8a8a8a;color:#fff;font-weight:600;cursor:pointer}
    button.primary{background:var(--accent)}
    button.good{background:var(--ok)}
    .status{font-size:13px;color:var(--muted)}
    .now{font-size:18px;font-weight:600}
    input{height:40px;border:1px solid var(--line);border-radius:6px;padding:0 8px;font:inherit}
    table.grid{border-collapse:collapse;width:100%}
    table.grid td{border:1px solid var(--line);padding:6px;text-align:center;font-size:12px}
    table.grid td.marked{background:#ffd54f}
  </style>
</head>
<body>
<div class="shell">
  <div class="card">
    <h1>Music Bingo</h1>
    <div id="now" class="now">-</div>
    <div id="lastStatus" class="status">Ready</div>
    <div id="remaining" class="status">-</div>
  </div>
  <div class="card">
    <div class="row">
      <button onclick="callApi('/api/previous')">Previous</button>
      <button class="primary" onclick="callApi('/api/playnext')">Play Next</button>
      <button onclick="callApi('/api/pause')">Pause / Resume</button>
      <button onclick="if(confirm('Reset game progress?')) callApi('/api/reset')">Reset</button>
    </div>
    <div class="row">
      {% for name in effects %}<button onclick="callApi('/api/effect/{{ name }}')">{{ name|capitalize }}</button>{% endfor %}
    </div>
  </div>
  <div class="card">
    <div class="row">
      <input id="ticketId" placeholder="Ticket #">
      <button class="good" onclick="checkTicket()">Check</button>
      <button onclick="showWinners()">Winners</button>
    </div>
    <div id="result"></div>
  </div>
</div>
<script>
  function formatTime(seconds){
    const total = Math.floor(seconds);
    const h = Math.floor(total / 3600), m = Math.floor((total % 3600) / 60), sec = total % 60;
    const mm = String(m).padStart(h ? 2 : 1, '0') + ':' + String(sec).padStart(2, '0');
    return h ? h + ':' + mm : mm;
  }

  function setStatus(text){ document.getElementById('lastStatus').textContent = text; }

  async function callApi(path){
    const res = await fetch(path, {method:'POST'});
    const payload = await res.json();
    setStatus(payload.ok ? 'OK' : 'Error: ' + (payload.error?.message || res.status));
    await refreshState();
    return payload;
  }

  function el(tag, text, className){
    const node = document.createElement(tag);
    if(text !== undefined){ node.textContent = text; }
    if(className){ node.className = className; }
    return node;
  }

  async function checkTicket(){
    const id = document.getElementById('ticketId').value.trim();
    if(!id){ return; }
    const res = await fetch('/api/check/' + encodeURIComponent(id));
    const payload = await res.json();
    const box = document.getElementById('result');
    box.replaceChildren();
    if(!payload.ok){ box.textContent = payload.error?.message || 'Ticket not found'; return; }
    const t = payload.result;
    const heading = el('p');
    heading.append(el('b', 'Ticket #' + t.id), ': ' + (t.wins.length ? t.wins.join(', ') : 'no win yet'));
    const table = el('table', undefined, 'grid');
    for(const row of t.grid){
      const tr = table.insertRow();
      for(const c of row){
        const td = el('td', undefined, c.marked ? 'marked' : '');
        td.append(el('span', c.artist), el('br'), el('span', c.title));
        tr.appendChild(td);
      }
    }
    box.append(heading, table);
  }

  async function showWinners(){
    const res = await fetch('/api/winners');
    const payload = await res.json();
    const winners = payload.result?.winners || {};
    const ids = Object.keys(winners);
    document.getElementById('result').textContent = ids.length
      ? ids.map(id => '#' + id + ': ' + winners[id].join(', ')).join(' | ')
      : 'No winners yet';
  }

  async function refreshState(){
    try{
      const res = await fetch('/api/query');
      const payload = await res.json();
      const s = payload.result || {};
      const song = s.current_song;
      document.getElementById('now').textContent = song ? (song.artist + ' - ' + song.title) : '-';
      setStatus((s.is_playing ? 'Playing' : 'Paused') + ' | played ' + s.played + ' | tickets ' + s.tickets);
      document.getElementById('remaining').textContent = 'Time left ' + formatTime(s.remaining_seconds || 0);
    }catch(err){
      setStatus('Error: ' + err);
    }
  }

  refreshState();
  setInterval(refreshState, 2000);
</script>
</body>
</html>"""


class QuietRequestHandler(WSGIRequestHandler):
    def log_request(self, _code: int | str = "-", _size: int | str = "-") -> None:
        return

    def log_message(self, _format: str, *args) -> None:
        return


class WebRemoteServer:
    def __init__(
        self,
        dispatch: DispatchFn,
        host: str = "0.0.0.0",
        port: int = 5050,
        effects=("suspense", "win", "lose", "airhorn"),
    ) -> None:
        self._dispatch = dispatch
        self.host = host
        self.port = int(port)
        self.effects = tuple(effects)
        self._app = Flask("musicbingo_web_remote")
        self._server = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._configure_logging()
        self._register_routes()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._server = make_server(
                self.host,
                self.port,
                self._app,
                threaded=True,
                request_handler=QuietRequestHandler,
            )
            self._thread = threading.Thread(target=self._server.serve_forever, name="musicbingo-web-remote", daemon=True)
            self._thread.start()
        logger.info("Web remote listening on %s", self.url)

    def stop(self) -> None:
        with self._lock:
            server = self._server
            thread = self._thread
            self._server = None
            self._thread = None
        if server is not None:
            server.shutdown()
        if thread is not None:
            thread.join(timeout=2.0)
            logger.info("Web remote stopped")

    def _configure_logging(self) -> None:
        logging.getLogger("werkzeug").setLevel(logging.ERROR)
        self._app.logger.setLevel(logging.ERROR)

    def _register_routes(self) -> None:
        app = self._app

        def send(command: str, **params: Any):
            payload = self._dispatch(command, params)
            status = int(payload.get("status", 200))
            body = {k: v for k, v in payload.items() if k != "status"}
            return jsonify(body), status

        @app.get("/")
        def index():
            return render_template_string(CALLER_PAGE, effects=self.effects)

        @app.get("/api/health")
        def api_health():
            return send("health")

        @app.route("/api/playnext", methods=["GET", "POST"])
        def api_playnext():
            return send("playnext")

        @app.route("/api/previous", methods=["GET", "POST"])
        def api_previous():
            return send("previous")

        @app.route("/api/pause", methods=["GET", "POST"])
        def api_pause():
            return send("pause")

        @app.route("/api/reset", methods=["GET", "POST"])
        def api_reset():
            return send("reset")

        @app.route("/api/volume/<int:level>", methods=["GET", "POST"])
        def api_volume_set(level: int):
            return send("volume_set", level=level)

        @app.route("/api/effect/<string:name>", methods=["GET", "POST"])
        def api_effect(name: str):
            return send("effect", name=name)

        @app.get("/api/check/<string:ticket_id>")
        def api_check(ticket_id: str):
            return send("check", ticket_id=ticket_id)

        @app.get("/api/winners")
        def api_winners():
            return send("winners")

        @app.get("/api/query")
        def api_query():
            return send("query")
