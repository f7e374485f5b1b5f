"""
Exclusion patterns handling (pipe-delimited globs, '@file' indirection)
"""
import re
from pathlib import Path
from typing import Iterable, List, Optional

from .logging import vlog

INDIRECT_MARKER = "@"


def _compile_pattern(raw: str):
    """
    Compile a glob into an anchored regex.

    '*' and '?' never match a '/', and '[...]' classes (negated by '!' or '^')
    match a single non-separator character.
    """
    out = []
    i, n = 0, len(raw)
    while i < n:
        c = raw[i]
        i += 1
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = raw.find("]", i + 1)
            if end < 0:
                out.append(re.escape(c))
                continue
            body = raw[i:end].replace("\\", "\\\\")
            i = end + 1
            if body[:1] in ("!", "^"):
                out.append("[^/" + body[1:] + "]")
            else:
                out.append("[" + body + "]")
        elif c == "\\" and i < n:
            out.append(re.escape(raw[i]))
            i += 1
        else:
            out.append(re.escape(c))
    try:
        return re.compile("".join(out) + r"\Z")
    except re.error:
        return None


class ExclusionList:
    """
    Ordered glob patterns used to prune paths from a scan.

    A pattern without a '/' is matched against the base name only; one with
    a '/' is matched against the whole relative path. Names in *implicit*
    are always excluded by exact relative path.
    """

    def __init__(self, patterns: Iterable[str] = (), implicit: Iterable[str] = ()):
        self.patterns: List[str] = []
        self._compiled = []
        self.implicit = {p for p in implicit if p}
        for p in patterns:
            self.add(p)

    def add(self, pattern: str):
        if not pattern:
            return
        compiled = _compile_pattern(pattern)
        if compiled is None:
            vlog(f"  ignoring malformed pattern {pattern!r}")
            return
        self.patterns.append(pattern)
        self._compiled.append((compiled, "/" in pattern))

    @classmethod
    def expand(cls, spec: str, root: Optional[Path] = None,
               implicit: Iterable[str] = ()) -> "ExclusionList":
        """
        Build the list from a pipe-delimited pattern string.

        An entry starting with '@' names a pattern file: the file name itself
        becomes a pattern, and so does every non-empty line of the file.
        Relative pattern files are resolved against *root*; a file that cannot
        be read is skipped.
        """
        result = cls(implicit=implicit)
        for entry in (spec or "").split("|"):
            entry = entry.strip()
            if not entry:
                continue
            if not entry.startswith(INDIRECT_MARKER):
                result.add(entry)
                continue
            name = entry[len(INDIRECT_MARKER):]
            result.add(name)
            path = Path(name)
            if not path.is_absolute() and root is not None:
                path = Path(root) / path
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                vlog(f"  pattern file {path} not readable, skipped")
                continue
            for line in text.splitlines():
                line = line.strip()
                if line:
                    result.add(line)
        return result

    def matches(self, rel_path: str) -> bool:
        """True if *rel_path* (forward-slash relative path) is excluded."""
        norm = rel_path.replace("\\", "/")
        if norm in self.implicit:
            return True
        base = norm.rsplit("/", 1)[-1]
        for regex, full in self._compiled:
            if regex.match(norm if full else base):
                return True
        return False

    def __iter__(self):
        return iter(self.patterns)

    def __len__(self):
        return len(self.patterns)
