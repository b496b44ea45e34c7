"""Development server for Quire.

Serves the built site with live reload:
- Builds the site once in development mode, keeping the build session alive.
- Injects a reload script into HTML responses and answers missing paths with a 404.
- Watches the pages, layouts and includes directories and quire.yaml; every
  change becomes a FileEvent in one EventChannel consumed by the rebuild
  orchestrator, which recompiles only the affected pages.
- Broadcasts ``{"type": "reload", "url": ...}`` over a websocket after each rebuild.

Key classes:
- DevServer: Main class for running the development server.
- WebSocketSink: Notification sink broadcasting reload messages.
- _StaticHandler: HTTP request handler for the output directory.
- _ReloadHandler: Same, injecting the reload script.
- _ChangeHandler: File system event handler publishing FileEvents.

Key functions:
- serve_output: Serve a built site without rebuilding it (``quire preview``).
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .build import FileOutputWriter, build_session, copy_assets, create_session
from .rebuild import EventChannel, EventKind, FileEvent, RebuildOrchestrator
from .utils import echo_info, is_within

_EVENT_KINDS = {
    "created": EventKind.ADD,
    "modified": EventKind.CHANGE,
    "deleted": EventKind.REMOVE,
}


class _StaticHandler(SimpleHTTPRequestHandler):
    """Serves the output directory as a browser would see the deployed site.

    Directories are answered with their ``index.html``, missing paths with
    ``404.html`` (or a plain 404), and responses are never cached.
    """

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def _inject(self, content: str) -> bytes:
        return content.encode("utf-8")

    def _send_html(self, status: int, encoded: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, self._inject(error_page.read_text(encoding="utf-8")))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            path_obj = path_obj / "index.html"
        if not path_obj.is_file():
            return self._serve_404()
        if path_obj.suffix == ".html":
            self._send_html(200, self._inject(path_obj.read_text(encoding="utf-8")))
            return None
        return super().send_head()


class _ReloadHandler(_StaticHandler):
    """HTTP request handler that injects live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript that reloads the page when the websocket
            announces a change of this URL, or of any URL.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      const matches = (url) => url === location.pathname ||
        (url.endsWith('/index.html') && url.slice(0, -10) === location.pathname);
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload' && (!data.url || matches(data.url))) location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=4001)

    def _inject(self, content: str) -> bytes:
        if "</body>" in content:
            content = content.replace("</body>", f"{self.reload_script}</body>")
        else:
            content += self.reload_script
        return content.encode("utf-8")


def serve_output(output_dir: Path, port: int) -> None:  # pragma: no cover - integration path
    """Serve a built site without watching or rebuilding it, until interrupted.

    Args:
        output_dir: Directory of the built site.
        port: HTTP port.
    """
    handler = functools.partial(_StaticHandler, directory=str(output_dir))
    httpd = ThreadingHTTPServer(("", port), handler)
    echo_info(f"Previewing {output_dir} at http://localhost:{port}")
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        httpd.server_close()


class WebSocketSink:
    """Notification sink that broadcasts reload messages to websocket clients.

    ``notify`` must be called on the event loop that serves the websockets;
    delivery happens in a background task.
    """

    def __init__(self):
        self._clients: set = set()
        self._tasks: set[asyncio.Task] = set()

    async def handler(self, websocket) -> None:
        self._clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._clients.discard(websocket)

    def notify(self, url: str | None) -> None:
        message = json.dumps({"type": "reload", "url": url})
        task = asyncio.get_running_loop().create_task(self._broadcast(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _broadcast(self, message: str) -> None:
        stale = set()
        for ws in list(self._clients):
            try:
                await ws.send(message)
            except websockets.ConnectionClosed:
                stale.add(ws)
        for ws in stale:
            self._clients.discard(ws)


class _ChangeHandler(FileSystemEventHandler):
    """Publishes watchdog events of files as FileEvents."""

    def __init__(self, channel: EventChannel, output_dir: Path):
        super().__init__()
        self.channel = channel
        self.output_dir = output_dir

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if event.event_type == "moved":
            self._publish(EventKind.REMOVE, event.src_path)
            self._publish(EventKind.ADD, event.dest_path)
            return
        kind = _EVENT_KINDS.get(event.event_type)
        if kind is not None:
            self._publish(kind, event.src_path)

    def _publish(self, kind: EventKind, raw_path: str | bytes) -> None:
        path = Path(os.fsdecode(raw_path))
        if is_within(path, self.output_dir):
            return
        self.channel.publish_threadsafe(FileEvent(kind, path))


class _AssetHandler(FileSystemEventHandler):
    """Copies the assets directory again when one of its files changes."""

    def __init__(self, server: DevServer, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.server = server
        self.loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("created", "modified", "moved"):
            return
        self.loop.call_soon_threadsafe(self.server.assets_changed)


class DevServer:
    """Development server with incremental rebuilds and live reload.

    Attributes:
        project_root: Root directory of the project.
        session: Build session kept alive between rebuilds.
        config: Site configuration.
        output_dir: Directory where built site is served.
        http_port: Port for HTTP server.
        ws_port: Port for WebSocket connections.
        sink: Reload notification sink.
        orchestrator: Rebuild orchestrator fed by the watchers.
    """

    def __init__(
        self, project_root: Path, http_port: int | None = None, ws_port: int | None = None
    ):
        """Initialize the development server.

        Args:
            project_root: Root directory of the project.
            http_port: Optional override for HTTP port.
            ws_port: Optional override for the websocket port. Defaults to the
                HTTP port + 1 when only the HTTP port is overridden.
        """
        self.project_root = project_root
        self.session = create_session(project_root, development=True)
        self.config = self.session.config
        self.output_dir = self.config.output_dir
        self.http_port = int(http_port or self.config.port)
        if ws_port is not None:
            self.ws_port = ws_port
        elif http_port is not None:
            self.ws_port = self.http_port + 1
        else:
            self.ws_port = self.config.ws_port
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        self.sink = WebSocketSink()
        self.orchestrator = RebuildOrchestrator(
            self.session.store,
            self.session.discovery,
            self.session.compiler,
            FileOutputWriter(),
            self.sink,
            self.config,
        )
        self._observer: Observer | None = None
        self._channel: EventChannel | None = None

    def start(self) -> None:  # pragma: no cover - integration path
        try:
            asyncio.run(self.serve())
        except KeyboardInterrupt:
            pass

    async def serve(self) -> None:  # pragma: no cover - integration path
        """Build the site, then serve it and rebuild on changes until cancelled."""
        result = await build_session(self.session)
        echo_info(f"Built {len(result.written)} page(s) into {self.output_dir}")
        loop = asyncio.get_running_loop()
        self._channel = EventChannel(loop)
        threading.Thread(target=self._start_http, daemon=True).start()
        self._start_watcher(self._channel, loop)
        try:
            async with websockets.serve(self.sink.handler, "0.0.0.0", self.ws_port):
                await self.orchestrator.run(self._channel)
        finally:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._channel is not None and self._channel.loop is not None:
            self._channel.loop.call_soon_threadsafe(self._channel.close)

    def assets_changed(self) -> None:
        copy_assets(self.config)
        self.sink.notify(None)

    def watched_directories(self) -> list[Path]:
        """Source directories to watch, without nested duplicates."""
        directories: list[Path] = []
        candidates = (self.config.pages_dir, self.config.layouts_dir, self.config.includes_dir)
        for directory in sorted(set(candidates), key=lambda p: len(p.parts)):
            if not directory.is_dir():
                continue
            if any(is_within(directory, parent) for parent in directories):
                continue
            directories.append(directory)
        return directories

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        echo_info(f"Serving {self.output_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()

    def _start_watcher(self, channel: EventChannel, loop: asyncio.AbstractEventLoop) -> None:
        handler = _ChangeHandler(channel, self.output_dir)
        observer = Observer()
        directories = self.watched_directories()
        for directory in directories:
            observer.schedule(handler, str(directory), recursive=True)
        root = self.config.project_root
        if not any(is_within(root, directory) for directory in directories):
            # quire.yaml
            observer.schedule(handler, str(root), recursive=False)
        if self.config.assets_dir.is_dir():
            observer.schedule(_AssetHandler(self, loop), str(self.config.assets_dir), recursive=True)
        observer.start()
        self._observer = observer
