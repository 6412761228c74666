"""Polling watcher for the system template files.

Checks the (mtime, size) signature of each template file every
``interval`` seconds and calls ``notify`` when any signature differs from
the previous poll. ``notify`` is expected to only enqueue a message
(``SelfHostingLoader.notify_template_change``); reconciliation happens on
another thread.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

Signature = Optional[Tuple[int, int]]

# Seconds between polls when no interval is given.
DEFAULT_POLL_INTERVAL = 1.0


def file_signature(path: Path) -> Signature:
    """(mtime_ns, size) of *path*, or None if it cannot be stat'ed."""
    try:
        stat = path.stat()
    except OSError:
        return None
    return (stat.st_mtime_ns, stat.st_size)


class TemplateWatcher:
    """Daemon thread that reports changes to a fixed set of files."""

    def __init__(
        self,
        paths: Iterable[Path],
        notify: Callable[[str], None],
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.paths = [Path(p) for p in paths]
        self.interval = interval
        self._notify = notify
        self._signatures = self.snapshot()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def snapshot(self) -> Dict[Path, Signature]:
        return {path: file_signature(path) for path in self.paths}

    def poll(self) -> bool:
        """Compare signatures with the previous poll; notify on difference."""
        current = self.snapshot()
        changed = [path.name for path in self.paths if current[path] != self._signatures.get(path)]
        self._signatures = current
        if not changed:
            return False
        logger.info("Template files changed: %s", ", ".join(changed), extra={"templates": changed})
        self._notify(f"template files changed: {', '.join(changed)}")
        return True

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="template-watcher", daemon=True)
        self._thread.start()
        logger.info(
            "Watching %d template files every %.1fs", len(self.paths), self.interval,
        )

    def stop(self, join_timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=join_timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.poll()
            except Exception as e:
                logger.error("Template poll failed: %s", e, exc_info=True)
