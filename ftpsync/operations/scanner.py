"""
Tree scanning: reconcile local and remote fingerprints
"""
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from ..core.transport import RemoteEntry, RemoteTransport, dial_remote, remote_join
from ..errors import LocalIOError, ScanAborted, TransferError
from ..state.fingerprint_cache import FileState, FingerprintCache
from ..utils.file_utils import CHUNK_SIZE, BinaryClassifier, new_digest
from ..utils.ignore_patterns import ExclusionList
from ..utils.logging import is_verbose, log, vlog, warn

StatusCallback = Callable[[str], None]


def _join(parent: str, name: str) -> str:
    return name if parent == "." else f"{parent}/{name}"


class TreeScanner:
    """
    Walks the local tree depth-first and, folder by folder, the matching
    remote folder.

    Remote files are reconciled when their parent folder is entered, which is
    always before the local walk reaches the same file. Digests are only
    recomputed when a side's size or modification time moved.
    """

    def __init__(self, cache: FingerprintCache, conn: RemoteTransport,
                 local_root, remote_root: str,
                 exclude: Optional[ExclusionList] = None,
                 binary: Optional[BinaryClassifier] = None,
                 on_status: Optional[StatusCallback] = None):
        self.cache = cache
        self.conn = conn
        self.local_root = Path(local_root)
        self.remote_root = remote_root
        self.exclude = exclude if exclude is not None else ExclusionList()
        self.binary = binary if binary is not None else BinaryClassifier()
        self.on_status = on_status

    # ── walk ──────────────────────────────────────────────────────────────

    def walk(self, cancel: Optional[threading.Event] = None):
        """Scan everything; raises ScanAborted, LocalIOError or TransferError."""
        try:
            info = os.stat(self.local_root)
        except OSError as exc:
            raise LocalIOError(f"Cannot read {self.local_root}: {exc}") from exc
        self._visit_folder(".", info, cancel)

    def _check_cancel(self, cancel: Optional[threading.Event]):
        if cancel is not None and cancel.is_set():
            raise ScanAborted()

    def _visit_folder(self, rel: str, info: os.stat_result, cancel):
        self._check_cancel(cancel)
        if not self.enter_folder(rel, info):
            return

        path = self.local_path(rel)
        try:
            with os.scandir(path) as it:
                children = sorted(it, key=lambda e: e.name)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise LocalIOError(f"Cannot list {path}: {exc}") from exc

        for entry in children:
            child = _join(rel, entry.name)
            try:
                if entry.is_symlink() and entry.is_dir():
                    vlog(f"  skipping linked folder {child}")
                    continue
                is_dir = entry.is_dir(follow_symlinks=False)
                st = entry.stat()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise LocalIOError(f"Cannot stat {entry.path}: {exc}") from exc

            if is_dir:
                self._visit_folder(child, st, cancel)
            else:
                self._check_cancel(cancel)
                self.check_local(child, st)

    # ── nodes ─────────────────────────────────────────────────────────────

    def enter_folder(self, rel: str, info: os.stat_result) -> bool:
        """
        Record the local folder, then list the remote copy and reconcile
        every remote file in it. Returns False if the folder is excluded.
        """
        if self.excluded(rel):
            return False
        shown = str(self.local_root) if rel == "." else rel
        vlog(f"Entering {shown}")
        self._status(shown)

        ent = self.cache.get_or_create(rel)
        ent.local = FileState(is_dir=True, mod_time=info.st_mtime, size=0)

        try:
            listing = self.conn.list_directory(self.remote_path(rel))
        except TransferError:
            if ent.remote.is_dir:
                raise
            vlog(f"  no remote copy of {shown}")
            return True

        for item in listing:
            child = _join(rel, item.name)
            if self.excluded(child):
                continue
            if item.is_dir:
                sub = self.cache.get_or_create(child)
                sub.remote = FileState(is_dir=True, mod_time=item.mod_time, size=0)
            else:
                self.check_remote(child, item)
        return True

    def check_local(self, rel: str, info: os.stat_result):
        """Refresh the local fingerprint of one file if its metadata moved."""
        if self.excluded(rel):
            return
        self._status(rel)

        ent = self.cache.get_or_create(rel)
        side = ent.local
        if side.mod_time == info.st_mtime and side.size == info.st_size:
            return

        side.is_dir = False
        side.changed = True
        side.mod_time = info.st_mtime
        side.size = info.st_size
        try:
            side.hash = self._hash_local(rel)
        except OSError as exc:
            vlog(f"Hash ({rel}): {exc}")
            side.hash = None
            raise LocalIOError(f"Cannot read {rel}: {exc}") from exc

        if side.hash == ent.remote.hash:
            side.changed = False
            ent.remote.changed = False

    def check_remote(self, rel: str, item: RemoteEntry):
        """Refresh the remote fingerprint of one file; fetch errors are kept on the entry."""
        if self.excluded(rel):
            return
        self._status(rel)

        ent = self.cache.get_or_create(rel)
        side = ent.remote
        if side.mod_time == item.mod_time and side.size == item.size:
            return

        side.is_dir = False
        side.changed = True
        side.mod_time = item.mod_time
        side.size = item.size

        h = new_digest(self.binary.is_binary(rel))
        try:
            self.conn.fetch(self.remote_path(rel), h.update)
        except TransferError as exc:
            warn(f"Retrieve ({rel}): {exc}")
            side.hash = None
            return
        side.hash = h.digest()

    # ── helpers ───────────────────────────────────────────────────────────

    def _hash_local(self, rel: str) -> bytes:
        h = new_digest(self.binary.is_binary(rel))
        with open(self.local_path(rel), "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                h.update(chunk)
        return h.digest()

    def excluded(self, rel: str) -> bool:
        return rel != "." and self.exclude.matches(rel)

    def local_path(self, rel: str) -> Path:
        return self.local_root if rel == "." else self.local_root / rel

    def remote_path(self, rel: str) -> str:
        return remote_join(self.remote_root, rel)

    def _status(self, msg: str):
        if self.on_status is not None:
            self.on_status(msg)


def scan_folders(site, cache: FingerprintCache, prompts,
                 cancel: Optional[threading.Event] = None,
                 on_status: Optional[StatusCallback] = None):
    """Dial the site's remote, then walk and reconcile both trees."""
    if on_status is not None:
        on_status("Opening connection ...")
    conn = dial_remote(site, prompts)
    try:
        exclude = ExclusionList.expand(site.exclude, Path(site.source).expanduser(),
                                       implicit=[site.cache_rel_path or site.cache_file])
        binary = BinaryClassifier.parse(site.binary_files)
        if is_verbose():
            log(f"Excluding:    {exclude.patterns}")
        scanner = TreeScanner(cache, conn, Path(site.source).expanduser(), site.remote_path,
                              exclude, binary, on_status)
        scanner.walk(cancel)
    finally:
        conn.close()
