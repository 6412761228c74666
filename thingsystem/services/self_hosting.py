"""Self-hosting loader: keeps the system Thing in step with its templates.

The system Thing's four components are defined by files on disk (see
``templates.TemplateSources``). On every boot the loader fingerprints
those files and compares them with the digests recorded on the persisted
system Thing:

  COLD_START       -- boot; reconcile the record with the files
  LOADED           -- system server fragment executed, serving requests
  UPDATE_DETECTED  -- files differ from the last reconciliation
  RESTARTING       -- revision persisted, process is being replaced

A detected change is written to the store as a new revision of the system
Thing and then the process asks to be restarted; the running code is never
swapped in place. The next process boots from the persisted revision.

While LOADED, file-change notifications arrive on a queue (filled by the
template watcher thread) and are processed by a reconciler thread, so the
watcher never touches the store itself.
"""

import logging
import os
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import SYSTEM_THING_ID, SYSTEM_VERSION
from ..exceptions import ContentUnreadableError, ExecutionFailureError
from .capabilities import SystemCapabilities
from .content_store import ContentStore, normalize_components
from .templates import TemplateSources

logger = logging.getLogger(__name__)

Restarter = Callable[[str], None]

# Name the server fragment must define.
SETUP_ENTRY_POINT = "setup"


class LoaderState(Enum):
    COLD_START = "cold_start"
    LOADED = "loaded"
    UPDATE_DETECTED = "update_detected"
    RESTARTING = "restarting"


@dataclass(frozen=True)
class TemplateChange:
    """Queued notification that the template files may have changed."""

    reason: str
    noticed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def restart_process(reason: str) -> None:
    """Terminate the process so the supervisor starts a fresh one.

    Uses ``os._exit`` with the configured restart exit code: no cleanup
    handlers run and other in-flight requests are dropped.
    """
    logger.warning(
        "Restarting process: %s", reason,
        extra={"exit_code": settings.restart_exit_code},
    )
    logging.shutdown()
    os._exit(settings.restart_exit_code)


class SelfHostingLoader:
    """State machine for loading, reconciling and restarting the system Thing.

    Args:
        sources: the system template files.
        capabilities: what the server fragment's ``setup()`` receives.
        session_factory: creates database sessions for the loader's own use.
        restarter: called with a reason when a restart is required.
            Defaults to ``restart_process``; tests inject a recorder.
    """

    def __init__(
        self,
        sources: TemplateSources,
        capabilities: SystemCapabilities,
        session_factory: Callable[[], Session],
        restarter: Optional[Restarter] = None,
    ) -> None:
        self.sources = sources
        self.capabilities = capabilities
        self._session_factory = session_factory
        self._restarter = restarter or restart_process

        self._state = LoaderState.COLD_START
        self._state_lock = threading.RLock()
        self._last_digests: Dict[str, Optional[str]] = {}
        self._signals: "queue.Queue[TemplateChange]" = queue.Queue()
        self._stop_event = threading.Event()
        self._reconciler: Optional[threading.Thread] = None

    @property
    def state(self) -> LoaderState:
        with self._state_lock:
            return self._state

    # ------------------------------------------------------------------
    # Boot
    # ------------------------------------------------------------------

    def boot(self) -> LoaderState:
        """Reconcile the system Thing with its templates, then load it.

        Returns LOADED, or RESTARTING when a new revision was written and
        the restarter returned (it normally does not).

        Raises:
            ContentUnreadableError: a template source cannot be read.
            ExecutionFailureError: the server fragment failed to load.
        """
        with self._state_lock:
            if self._state is not LoaderState.COLD_START:
                raise RuntimeError(f"boot() called in state {self._state.value}")

            snapshot = self.sources.load()
            db = self._session_factory()
            try:
                store = ContentStore(db)
                system = store.find(SYSTEM_THING_ID)

                if system is None:
                    logger.info("No system thing stored, creating it from templates")
                    system, _ = store.write_system_revision(
                        snapshot.components, snapshot.digests, SYSTEM_VERSION,
                    )
                elif (system.template_hashes or {}) == snapshot.digests:
                    if system.system_version != SYSTEM_VERSION:
                        # Templates unchanged since the last reconciliation.
                        store.stamp_system_version(SYSTEM_VERSION)
                else:
                    self._transition(LoaderState.UPDATE_DETECTED)
                    store.write_system_revision(
                        snapshot.components, snapshot.digests, SYSTEM_VERSION,
                    )
                    self._last_digests = dict(snapshot.digests)
                    self._restart("system templates changed since last boot")
                    return self._state

                server_fragment = normalize_components(system.components)["serverJs"]
            finally:
                db.close()

            self._last_digests = dict(snapshot.digests)
            self._execute_server_fragment(server_fragment)
            self._transition(LoaderState.LOADED)
            return self._state

    def _execute_server_fragment(self, source: str) -> None:
        """Run the fragment in a fresh namespace and call its ``setup()``."""
        namespace = {"__name__": "thingsystem.system_thing"}
        try:
            code = compile(source, f"<{SYSTEM_THING_ID}:serverJs>", "exec")
            exec(code, namespace)
            setup = namespace.get(SETUP_ENTRY_POINT)
            if not callable(setup):
                raise TypeError(f"server fragment does not define {SETUP_ENTRY_POINT}(capabilities)")
            setup(self.capabilities)
        except Exception as e:
            raise ExecutionFailureError(SYSTEM_THING_ID, e) from e
        logger.info("System server fragment loaded")

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    def notify_template_change(self, reason: str = "template files changed") -> None:
        """Queue a change signal. Safe to call from any thread."""
        self._signals.put(TemplateChange(reason))

    def process_next_signal(self, timeout: Optional[float] = None) -> bool:
        """Handle one queued signal. Returns False if none arrived in time."""
        try:
            signal = self._signals.get(timeout=timeout)
        except queue.Empty:
            return False
        try:
            self._reconcile(signal)
        finally:
            self._signals.task_done()
        return True

    def _reconcile(self, signal: TemplateChange) -> None:
        with self._state_lock:
            if self._state is not LoaderState.LOADED:
                logger.debug("Ignoring template change in state %s", self._state.value)
                return

            if self.sources.fingerprint() == self._last_digests:
                logger.debug("Template change signal with identical digests, ignoring")
                return

            self._transition(LoaderState.UPDATE_DETECTED)
            try:
                snapshot = self.sources.load()
            except ContentUnreadableError as e:
                # Keep serving; the next signal retries.
                logger.error(
                    "Template change detected but sources unreadable: %s", e.message,
                    extra=e.details,
                )
                self._transition(LoaderState.LOADED)
                return

            db = self._session_factory()
            try:
                ContentStore(db).write_system_revision(
                    snapshot.components, snapshot.digests, SYSTEM_VERSION,
                )
            except Exception:
                self._transition(LoaderState.LOADED)
                raise
            finally:
                db.close()

            self._last_digests = dict(snapshot.digests)
            self._restart(signal.reason)

    def system_updated(self, reason: str) -> None:
        """Restart after the system Thing was edited or restored through the API."""
        with self._state_lock:
            if self._state is LoaderState.RESTARTING:
                return
            self._restart(reason)

    def _restart(self, reason: str) -> None:
        self._transition(LoaderState.RESTARTING)
        self._restarter(reason)

    def _transition(self, new_state: LoaderState) -> None:
        logger.info(
            "Loader %s -> %s", self._state.value, new_state.value,
            extra={"loader_state": new_state.value},
        )
        self._state = new_state

    # ------------------------------------------------------------------
    # Reconciler thread
    # ------------------------------------------------------------------

    def start_reconciler(self, poll_timeout: float = 0.5) -> None:
        """Start the background thread that drains the signal queue."""
        if self._reconciler is not None and self._reconciler.is_alive():
            return
        self._stop_event.clear()
        self._reconciler = threading.Thread(
            target=self._run_reconciler,
            args=(poll_timeout,),
            name="template-reconciler",
            daemon=True,
        )
        self._reconciler.start()

    def stop_reconciler(self, join_timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._reconciler is not None:
            self._reconciler.join(timeout=join_timeout)
            self._reconciler = None

    def _run_reconciler(self, poll_timeout: float) -> None:
        logger.info("Template reconciler started")
        while not self._stop_event.is_set():
            try:
                self.process_next_signal(timeout=poll_timeout)
            except Exception as e:
                logger.error("Template reconciliation failed: %s", e, exc_info=True)
        logger.info("Template reconciler stopped")
