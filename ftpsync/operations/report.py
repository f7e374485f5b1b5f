"""
Report of the paths whose local and remote copies differ
"""
from dataclasses import dataclass
from enum import Enum
from typing import List

from ..state.fingerprint_cache import Fingerprint, FingerprintCache


class Mark(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    CONFLICT = "conflict"
    MISSING = "X"
    SAME = "-"


@dataclass(frozen=True)
class ReportRow:
    path: str
    local: Mark
    remote: Mark


def _seen(side) -> bool:
    return side.is_dir or side.mod_time != 0 or side.size != 0 or side.hash is not None


def classify(ent: Fingerprint):
    """(local mark, remote mark) for an entry with at least one changed side."""
    if not _seen(ent.remote):
        return Mark.UPLOAD, Mark.MISSING
    if not _seen(ent.local):
        return Mark.MISSING, Mark.DOWNLOAD
    if ent.local.changed and ent.remote.changed:
        return Mark.CONFLICT, Mark.CONFLICT
    if ent.local.changed:
        return Mark.UPLOAD, Mark.SAME
    return Mark.SAME, Mark.DOWNLOAD


def build_report(cache: FingerprintCache) -> List[ReportRow]:
    """Rows in path order; unchanged entries and the root are left out."""
    rows: List[ReportRow] = []
    for path, ent in cache.items():
        if path == ".":
            continue
        if not (ent.local.changed or ent.remote.changed):
            continue
        local, remote = classify(ent)
        rows.append(ReportRow(path, local, remote))
    return rows
