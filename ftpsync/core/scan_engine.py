"""
Scan control - one background scan at a time, with cancellation
"""
import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..errors import FtpSyncError, ScanAborted, StorageWriteError
from ..operations.scanner import scan_folders
from ..state.fingerprint_cache import FingerprintCache
from ..utils.logging import is_verbose, log, vlog, warn


class ScanState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPING = "stopping"


class ScanStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanOutcome:
    status: ScanStatus
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is not ScanStatus.FAILED


class ScanController:
    """
    Runs scans of one site against one cache.

    ``begin_scan`` starts the walk on a worker thread and returns at once.
    The worker's single outcome is collected exactly once, either by
    ``scan_complete``/``wait`` (normal path) or by ``end_scan`` (shutdown).
    Completed and aborted scans persist the cache; failed scans do not.
    """

    def __init__(self, site, cache: FingerprintCache, prompts,
                 on_status: Optional[Callable[[str], None]] = None,
                 on_complete: Optional[Callable[[], None]] = None):
        self.site = site
        self.cache = cache
        self.prompts = prompts
        self.on_status = on_status
        self.on_complete = on_complete
        self._lock = threading.Lock()
        self._state = ScanState.IDLE
        self._future: Optional[Future] = None
        self._cancel: Optional[threading.Event] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ftpsync-scan")

    @property
    def state(self) -> ScanState:
        return self._state

    # ── start ─────────────────────────────────────────────────────────────

    def begin_scan(self) -> bool:
        """Start a scan; False if one is already running. Raises ConfigurationError."""
        with self._lock:
            if self._state is not ScanState.IDLE:
                return False
            self.site.check()
            if is_verbose():
                log("Starting scan...")
                log(f"  Local folder: {self.site.source}")
                log(f"  Cache file:   {self.site.cache_file}")
                log(f"  Exclude:      {self.site.exclude}")
                log(f"  Binary:       {self.site.binary_files}")
                log(f"  Remote addr:  {self.site.display_remote}")
                log(f"  Server key:   {(self.site.server_key or b'').hex()}")
            self._cancel = threading.Event()
            self._state = ScanState.ACTIVE
            self._future = self._executor.submit(self._run, self._cancel)
        if self.on_complete is not None:
            self._future.add_done_callback(lambda _f: self.on_complete())
        return True

    def _run(self, cancel: threading.Event) -> ScanOutcome:
        try:
            scan_folders(self.site, self.cache, self.prompts, cancel, self.on_status)
        except ScanAborted:
            return ScanOutcome(ScanStatus.ABORTED)
        except FtpSyncError as exc:
            return ScanOutcome(ScanStatus.FAILED, exc)
        except Exception as exc:
            if is_verbose():
                traceback.print_exc()
            return ScanOutcome(ScanStatus.FAILED, exc)
        return ScanOutcome(ScanStatus.COMPLETED)

    # ── stop ──────────────────────────────────────────────────────────────

    def cancel(self):
        """Ask the running scan to stop at the next file or folder."""
        with self._lock:
            if self._state is ScanState.ACTIVE:
                self._state = ScanState.STOPPING
                self._cancel.set()

    def _drain(self, timeout=None) -> Optional[ScanOutcome]:
        with self._lock:
            fut = self._future
        if fut is None:
            return None
        outcome = fut.result(timeout)
        with self._lock:
            if self._future is not fut:
                return None
            self._future = None
        return outcome

    def scan_complete(self, timeout=None) -> Optional[ScanOutcome]:
        """
        Collect the outcome of the current scan (blocking until it is ready),
        persist the cache unless the scan failed, and return to idle.
        Returns None if there was nothing to collect.
        """
        outcome = self._drain(timeout)
        if outcome is None:
            return None
        if outcome.status is ScanStatus.FAILED:
            warn(f"Scan failed: {outcome.error}")
        else:
            log("Scan complete" if outcome.status is ScanStatus.COMPLETED else "Scan aborted")
            try:
                self.cache.persist()
            except StorageWriteError as exc:
                warn(str(exc))
                outcome = ScanOutcome(ScanStatus.FAILED, exc)
        with self._lock:
            self._state = ScanState.IDLE
            self._cancel = None
        return outcome

    wait = scan_complete

    def end_scan(self) -> Optional[ScanOutcome]:
        """Shutdown path: cancel any running scan and wait for it to unwind."""
        with self._lock:
            running = self._state is not ScanState.IDLE
            if running:
                self._state = ScanState.STOPPING
                self._cancel.set()
        outcome = self.scan_complete() if running else None
        self._executor.shutdown(wait=True)
        vlog("Scan worker stopped")
        return outcome

    # ── reset ─────────────────────────────────────────────────────────────

    def reset(self) -> bool:
        """Replace the cache with an empty one and persist it; refused while scanning."""
        with self._lock:
            if self._state is not ScanState.IDLE:
                return False
            self.cache.entries.clear()
        self.cache.persist()
        return True
