"""HTTP status surface: health, readiness, metrics and version endpoints."""

import logging
import os
import threading
from importlib.metadata import PackageNotFoundError, version

from flask import Flask, jsonify
from werkzeug.serving import make_server

from .constants import APP_NAME, BUILD_COMMIT_ENV, BUILD_DATE_ENV
from .engine import SyncEngine

logger = logging.getLogger(APP_NAME)


def get_version() -> str:
    """Returns the installed package version, or 'dev' from a source checkout."""
    try:
        return version(APP_NAME)
    except PackageNotFoundError:
        return "dev"


def create_app(engine: SyncEngine) -> Flask:
    """Creates the Flask app serving the engine's status.

    Args:
        engine (SyncEngine): The engine whose snapshot backs every route.
    """
    app = Flask(__name__)

    @app.get("/healthz")
    def healthz():
        return "", 204 if engine.is_healthy() else 503

    @app.get("/readyz")
    def readyz():
        if engine.is_healthy():
            return jsonify({"status": "ready"}), 200
        return jsonify({"status": "not ready"}), 503

    @app.get("/metrics")
    def metrics():
        return jsonify(engine.snapshot().to_dict())

    @app.get("/version")
    def version_info():
        return jsonify(
            {
                "version": get_version(),
                "gitCommit": os.environ.get(BUILD_COMMIT_ENV, "unknown"),
                "buildDate": os.environ.get(BUILD_DATE_ENV, "unknown"),
            }
        )

    return app


class StatusServer:
    """Serves the status app from a background thread.

    Attributes:
        host (str): Bind address.
        port (int): Bound port (resolved after `start` when 0 is requested).
    """

    def __init__(self, engine: SyncEngine, host: str, port: int):
        self.host = host
        self.port = port
        self._app = create_app(engine)
        self._server = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Binds the socket and starts serving.

        Raises:
            OSError: If the address cannot be bound.
        """
        # Request lines duplicate what the sync log already says.
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
        self._server = make_server(self.host, self.port, self._app, threaded=True)
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="status-server", daemon=True
        )
        self._thread.start()
        logger.info(f"Status server listening on {self.host}:{self.port}")

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread:
            self._thread.join(timeout=10)
        self._server = None
        logger.info("Status server stopped.")
