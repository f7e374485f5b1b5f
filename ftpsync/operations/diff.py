"""
Text difference between the local and remote copies of one file
"""
import difflib
import io
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, List

from ..core.transport import dial_remote, remote_join
from ..errors import LocalIOError

# Replace blocks larger than this (characters, both sides) are not refined
# character by character.
INTRALINE_LIMIT = 4000


class DiffTag(str, Enum):
    EQUAL = "equal"
    INSERTED = "inserted"  # present only in the remote copy
    DELETED = "deleted"    # present only in the local copy


@dataclass(frozen=True)
class DiffFragment:
    tag: DiffTag
    text: str


def _raw_diff(local: str, remote: str) -> List[List]:
    """Line diff, refined to characters inside changed blocks."""
    out: List[List] = []
    a = local.splitlines(keepends=True)
    b = remote.splitlines(keepends=True)
    for tag, i1, i2, j1, j2 in difflib.SequenceMatcher(None, a, b, autojunk=False).get_opcodes():
        left = "".join(a[i1:i2])
        right = "".join(b[j1:j2])
        if tag == "equal":
            out.append([DiffTag.EQUAL, left])
        elif tag == "replace" and len(left) + len(right) <= INTRALINE_LIMIT:
            sm = difflib.SequenceMatcher(None, left, right, autojunk=False)
            for ctag, c1, c2, d1, d2 in sm.get_opcodes():
                if ctag == "equal":
                    out.append([DiffTag.EQUAL, left[c1:c2]])
                    continue
                if c2 > c1:
                    out.append([DiffTag.DELETED, left[c1:c2]])
                if d2 > d1:
                    out.append([DiffTag.INSERTED, right[d1:d2]])
        else:
            if left:
                out.append([DiffTag.DELETED, left])
            if right:
                out.append([DiffTag.INSERTED, right])
    return out


def cleanup_semantic(frags: List[List]) -> List[List]:
    """
    Absorb short equalities into the surrounding edits.

    An equality is dissolved when it is no longer than the edits on either
    side of it, so scattered one-character matches inside a rewritten phrase
    do not split it into fragments. Repeats until nothing changes.
    """
    frags = _merge(frags)
    changed = True
    while changed:
        changed = False
        for i, (tag, text) in enumerate(frags):
            if tag is not DiffTag.EQUAL or i == 0 or i == len(frags) - 1:
                continue
            before = after = 0
            j = i - 1
            while j >= 0 and frags[j][0] is not DiffTag.EQUAL:
                before += len(frags[j][1])
                j -= 1
            j = i + 1
            while j < len(frags) and frags[j][0] is not DiffTag.EQUAL:
                after += len(frags[j][1])
                j += 1
            if before and after and len(text) <= min(before, after):
                frags[i:i + 1] = [[DiffTag.DELETED, text], [DiffTag.INSERTED, text]]
                frags = _merge(frags)
                changed = True
                break
    return frags


def _merge(frags: List[List]) -> List[List]:
    """
    Collapse each run between equalities into one deletion followed by one
    insertion, and join adjacent equalities.
    """
    out: List[List] = []
    dels: List[str] = []
    ins: List[str] = []
    for tag, text in frags + [[DiffTag.EQUAL, ""]]:
        if tag is DiffTag.DELETED:
            dels.append(text)
        elif tag is DiffTag.INSERTED:
            ins.append(text)
        else:
            if dels:
                out.append([DiffTag.DELETED, "".join(dels)])
            if ins:
                out.append([DiffTag.INSERTED, "".join(ins)])
            dels, ins = [], []
            if text:
                if out and out[-1][0] is DiffTag.EQUAL:
                    out[-1][1] += text
                else:
                    out.append([DiffTag.EQUAL, text])
    return out


def render_diff(local_text: str, remote_text: str) -> Iterator[DiffFragment]:
    """Tagged fragments turning *local_text* into *remote_text*, in order."""
    for tag, text in cleanup_semantic(_raw_diff(local_text, remote_text)):
        yield DiffFragment(tag, text)


def view_file(site, rel: str, prompts) -> Iterator[DiffFragment]:
    """Fetch the remote copy of one file and diff it against the local copy."""
    conn = dial_remote(site, prompts)
    try:
        buf = io.BytesIO()
        conn.fetch(remote_join(site.remote_path, rel), buf.write)
    finally:
        conn.close()
    path = Path(site.source).expanduser() / rel
    try:
        local = path.read_bytes()
    except OSError as exc:
        raise LocalIOError(f"Cannot read {path}: {exc}") from exc
    return render_diff(local.decode("utf-8", errors="replace"),
                       buf.getvalue().decode("utf-8", errors="replace"))
