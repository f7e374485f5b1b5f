"""
Fingerprint cache management (persistent across runs)

On-disk layout:
  MAGIC | version (1 byte) | sha256(body) (32 bytes) | body
where body is zlib-compressed JSON of {rel_path: {"local": ..., "remote": ...}}.
The checksum makes a truncated or half-written file decode as corrupt rather
than as a smaller cache.
"""
import hashlib
import json
import os
import tempfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..errors import StorageCorrupt, StorageWriteError
from ..utils.logging import vlog

MAGIC = b"FTPSYNC-CACHE\n"
VERSION = 1
_DIGEST_LEN = 32


@dataclass
class FileState:
    """One side (local or remote) of a fingerprint."""
    is_dir: bool = False
    changed: bool = False
    mod_time: float = 0.0
    size: int = 0
    hash: Optional[bytes] = None

    def to_dict(self) -> dict:
        return {
            "is_dir": self.is_dir,
            "changed": self.changed,
            "mod_time": self.mod_time,
            "size": self.size,
            "hash": self.hash.hex() if self.hash is not None else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "FileState":
        h = d.get("hash")
        return cls(
            is_dir=bool(d["is_dir"]),
            changed=bool(d["changed"]),
            mod_time=float(d["mod_time"]),
            size=int(d["size"]),
            hash=bytes.fromhex(h) if h is not None else None,
        )


def _unknown() -> FileState:
    return FileState(changed=True)


@dataclass
class Fingerprint:
    """Local and remote state of one relative path; new entries are unproven."""
    local: FileState = field(default_factory=_unknown)
    remote: FileState = field(default_factory=_unknown)


class FingerprintCache:
    """
    In-memory map of relative path -> Fingerprint.

    Only the single running scan mutates it, so there is no locking.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self.entries: Dict[str, Fingerprint] = {}

    # ── load / persist ──────────────────────────────────────────────────────

    @classmethod
    def load(cls, path: Path) -> "FingerprintCache":
        """Read the saved cache; a missing file yields an empty cache."""
        cache = cls(path)
        try:
            raw = Path(path).read_bytes()
        except FileNotFoundError:
            vlog("Cache file not found; creating new cache")
            return cache
        except OSError as exc:
            raise StorageCorrupt(f"Cannot read cache {path}: {exc}") from exc

        vlog("Loading saved cache")
        cache.entries = _decode(raw, path)
        return cache

    def persist(self, path: Optional[Path] = None):
        """Write the cache via a temp file and an atomic replace."""
        dest = Path(path) if path is not None else self.path
        if dest is None:
            raise StorageWriteError("No cache file location set")
        vlog("Writing new cache file")
        data = _encode(self.entries)
        tmp = None
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=dest.name + ".", suffix=".tmp", dir=str(dest.parent))
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, dest)
        except OSError as exc:
            if tmp:
                Path(tmp).unlink(missing_ok=True)
            raise StorageWriteError(f"Write cache {dest}: {exc}") from exc

    # ── entries ────────────────────────────────────────────────────────────

    def get_or_create(self, rel: str) -> Fingerprint:
        """Return the entry for *rel*, inserting an unproven one if absent."""
        ent = self.entries.get(rel)
        if ent is None:
            ent = Fingerprint()
            self.entries[rel] = ent
        return ent

    def get(self, rel: str) -> Optional[Fingerprint]:
        return self.entries.get(rel)

    def ordered_paths(self) -> List[str]:
        return sorted(self.entries)

    def items(self) -> Iterator[Tuple[str, Fingerprint]]:
        for rel in self.ordered_paths():
            yield rel, self.entries[rel]

    def for_each(self, cb: Callable[[str, Fingerprint], None]):
        for rel, ent in self.items():
            cb(rel, ent)

    def __len__(self):
        return len(self.entries)

    def __contains__(self, rel):
        return rel in self.entries


def _encode(entries: Dict[str, Fingerprint]) -> bytes:
    doc = {
        rel: {"local": ent.local.to_dict(), "remote": ent.remote.to_dict()}
        for rel, ent in sorted(entries.items())
    }
    body = zlib.compress(json.dumps(doc, separators=(",", ":")).encode("utf-8"))
    return MAGIC + bytes([VERSION]) + hashlib.sha256(body).digest() + body


def _decode(raw: bytes, path) -> Dict[str, Fingerprint]:
    header = len(MAGIC) + 1 + _DIGEST_LEN
    if len(raw) < header or not raw.startswith(MAGIC):
        raise StorageCorrupt(f"Bad format for cache {path}")
    version = raw[len(MAGIC)]
    if version != VERSION:
        raise StorageCorrupt(f"Unsupported cache version {version} in {path}")
    digest = raw[len(MAGIC) + 1:header]
    body = raw[header:]
    if hashlib.sha256(body).digest() != digest:
        raise StorageCorrupt(f"Checksum mismatch in cache {path}")
    try:
        doc = json.loads(zlib.decompress(body).decode("utf-8"))
        return {
            rel: Fingerprint(FileState.from_dict(d["local"]), FileState.from_dict(d["remote"]))
            for rel, d in doc.items()
        }
    except (zlib.error, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise StorageCorrupt(f"Bad format for cache {path}: {exc}") from exc
