"""
File utilities (digests, text folding, binary classification)
"""
import hashlib
from pathlib import Path
from typing import Iterable, Optional

CHUNK_SIZE = 65536

_CR = b"\r"
_CRLF = b"\r\n"
_LF = b"\n"


class TextFoldHash:
    """
    Wraps a hashlib digest so that every CRLF pair is folded to a single LF
    before it reaches the underlying hash.

    A trailing CR is held back until the next chunk arrives, so a CRLF pair
    split across two writes is still folded.
    """

    def __init__(self, inner):
        self._inner = inner
        self._pending_cr = False

    @property
    def name(self) -> str:
        return self._inner.name

    def update(self, data: bytes):
        if not data:
            return
        if self._pending_cr:
            data = _CR + data
            self._pending_cr = False
        if data.endswith(_CR):
            data = data[:-1]
            self._pending_cr = True
        self._inner.update(data.replace(_CRLF, _LF))

    # file-like alias so the hash can be used as a copy destination
    write = update

    def _finished(self):
        h = self._inner.copy()
        if self._pending_cr:
            h.update(_CR)
        return h

    def digest(self) -> bytes:
        return self._finished().digest()

    def hexdigest(self) -> str:
        return self._finished().hexdigest()


def new_digest(binary: bool):
    """Return a fresh MD5 accumulator, folded for text unless *binary*."""
    h = hashlib.md5()
    if binary:
        return h
    return TextFoldHash(h)


def md5_local(path: Path, binary: bool = True) -> bytes:
    """Compute the (optionally text-folded) MD5 digest of a local file"""
    h = new_digest(binary)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.digest()


def file_extension(rel_path: str) -> str:
    """Lower-cased extension of the last path element, including the dot."""
    base = rel_path.replace("\\", "/").rsplit("/", 1)[-1]
    dot = base.rfind(".")
    if dot < 0:
        return ""
    return base[dot:].lower()


class BinaryClassifier:
    """Set of file extensions whose content is hashed verbatim."""

    def __init__(self, extensions: Optional[Iterable[str]] = None):
        self.extensions = {e.strip().lower() for e in (extensions or ()) if e.strip()}

    @classmethod
    def parse(cls, spec: str) -> "BinaryClassifier":
        """Build from a pipe-delimited string such as ``.png|.jpg``."""
        return cls((spec or "").split("|"))

    def is_binary(self, rel_path: str) -> bool:
        ext = file_extension(rel_path)
        return ext == "" or ext in self.extensions
