import atexit
import logging
import signal
import sys
import threading
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from rich.console import Console

from .config import Config, LoggingConfig
from .constants import APP_NAME
from .engine import SyncEngine
from .errors import ConfigError
from .server import StatusServer

logger = logging.getLogger(APP_NAME)

err_console = Console(stderr=True)


class Scheduler:
    """Triggers sync cycles at a fixed rate from a background thread.

    Ticks that fall due while a cycle is still running are skipped rather than
    queued, so a slow remote never causes a burst of back-to-back cycles.

    Attributes:
        engine (SyncEngine): The engine to trigger.
        interval (int): Seconds between ticks.
    """

    def __init__(self, engine: SyncEngine, interval: int):
        self.engine = engine
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._loop, name="sync-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stops ticking and waits for an in-flight cycle to end."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)

    def _loop(self) -> None:
        next_run = time.monotonic() + self.interval
        while not self._stop.wait(max(0.0, next_run - time.monotonic())):
            self.engine.run_cycle(wait=False)

            next_run += self.interval
            now = time.monotonic()
            if next_run <= now:
                missed = int((now - next_run) // self.interval) + 1
                logger.warning(
                    f"SCHEDULE: cycle overran its interval, skipping {missed} tick(s)."
                )
                next_run += missed * self.interval


def setup_logging(settings: LoggingConfig, interactive: bool = False) -> None:
    """Configures the application logger.

    Args:
        settings (LoggingConfig): Level and optional rotating log file.
        interactive (bool): If True, logs to stdout instead of stderr.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    # Re-running setup (tests, `once` after `config`) must not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stdout if interactive else sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if settings.file:
        file_handler = RotatingFileHandler(
            settings.file,
            maxBytes=settings.max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def load_config(config_file: Path | None = None) -> Config:
    """Loads and validates the configuration, exiting on a fatal error.

    Raises:
        SystemExit: If a required setting is missing or invalid.
    """
    config = Config.load(config_file)
    try:
        config.validate()
    except ConfigError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] Configuration error: {e}")
        sys.exit(1)
    return config


def run(config: Config) -> int:
    """Runs the sync service until it is told to stop.

    In run-once mode a single cycle is performed. Otherwise the status server
    and the scheduler are started and the call blocks until SIGINT or SIGTERM.

    Args:
        config (Config): A validated configuration.

    Returns:
        int: The process exit status.
    """
    setup_logging(config.logging)

    engine = SyncEngine(config.sync)
    atexit.register(engine.close)

    if config.sync.once:
        result = engine.run_cycle()
        logger.info("SYNC_ONCE is enabled, exiting after initial sync.")
        return 0 if result.success else 1

    stop = threading.Event()

    def handle_signal(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    server = None
    if config.server.enabled:
        server = StatusServer(engine, config.server.host, config.server.port)
        try:
            server.start()
        except OSError as e:
            err_console.print(
                f"[bold red]FATAL:[/bold red] Could not start status server: {e}"
            )
            return 1

    scheduler = Scheduler(engine, config.sync.interval)
    try:
        result = engine.run_cycle()
        if not result.success:
            logger.warning("Initial sync failed. Retrying on the next tick.")

        scheduler.start()
        logger.info(f"Sync scheduled every {config.sync.interval}s.")

        while not stop.wait(1.0):
            pass
    finally:
        scheduler.stop(timeout=config.sync.timeout)
        if server:
            server.stop()

    return 0


def main() -> None:
    """Entry point of the `git-mirror-daemon` executable."""
    sys.exit(run(load_config()))


if __name__ == "__main__":
    main()
