"""
FTP / FTPS (explicit TLS) transport
"""
import ftplib
import posixpath
import ssl
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..config import CONNECT_TIMEOUT
from ..errors import RemoteConnectionError, TransferError
from ..utils.logging import log, vlog
from .transport import RemoteEntry, Sink, resolve_password
from .trust import TrustVerifier

_MLSD_FACTS = ["type", "size", "modify"]

# Replies meaning the server does not implement MLSD
_MLSD_UNSUPPORTED = ("500", "502")


def parse_mlsd_time(value: str) -> float:
    """MLSD 'modify' fact (YYYYMMDDHHMMSS[.fff], UTC) -> epoch seconds."""
    if not value:
        return 0.0
    whole, _, frac = value.partition(".")
    dt = datetime.strptime(whole[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    stamp = dt.timestamp()
    if frac.isdigit():
        stamp += float("0." + frac)
    return stamp


def parse_list_line(line: str, now: Optional[datetime] = None) -> Optional[RemoteEntry]:
    """
    One line of a unix-style LIST reply, e.g.

        -rw-r--r--   1 www  www      1234 Mar 14 09:26 index.html
        drwxr-xr-x   2 www  www      4096 Dec 31  2022 img

    Returns None for lines that are not entries ("total 12", ".", "..").
    Dates without a year fall in the twelve months before *now*; times are
    taken as UTC.
    """
    parts = line.split(None, 8)
    if len(parts) < 9 or parts[0][:1] not in "-dl":
        return None
    mode, size, month, day, when, name = parts[0], parts[4], parts[5], parts[6], parts[7], parts[8]
    if mode[0] == "l":
        name = name.split(" -> ", 1)[0]
    if name in (".", ".."):
        return None

    now = now or datetime.now(timezone.utc)
    try:
        if ":" in when:
            dt = datetime.strptime(f"{month} {day} {now.year} {when}", "%b %d %Y %H:%M")
            dt = dt.replace(tzinfo=timezone.utc)
            if dt > now + timedelta(days=1):
                dt = dt.replace(year=now.year - 1)
        else:
            dt = datetime.strptime(f"{month} {day} {when}", "%b %d %Y").replace(tzinfo=timezone.utc)
        mod_time = dt.timestamp()
    except ValueError:
        mod_time = 0.0
    is_dir = mode[0] == "d"
    try:
        size_n = 0 if is_dir else int(size)
    except ValueError:
        size_n = 0
    return RemoteEntry(name, is_dir, mod_time, size_n)


class FTPTransport:
    """
    Wraps a single ftplib control connection. Requests are strictly
    sequential; there is never more than one transfer in flight.
    """

    def __init__(self, ftp: ftplib.FTP):
        self._ftp = ftp
        self._use_mlsd = True

    def close(self):
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except ftplib.all_errors:
            self._ftp.close()
        self._ftp = None
        vlog("[FTP] disconnected.")

    def list_directory(self, remote_path: str) -> List[RemoteEntry]:
        if self._use_mlsd:
            try:
                return self._list_mlsd(remote_path)
            except ftplib.error_perm as exc:
                if str(exc)[:3] not in _MLSD_UNSUPPORTED:
                    raise TransferError(f"List {remote_path}: {exc}") from exc
                vlog(f"[FTP] MLSD not supported ({exc}); using LIST")
                self._use_mlsd = False
            except ftplib.all_errors as exc:
                raise TransferError(f"List {remote_path}: {exc}") from exc
        return self._list_unix(remote_path)

    def _list_mlsd(self, remote_path: str) -> List[RemoteEntry]:
        entries: List[RemoteEntry] = []
        for name, fact in self._ftp.mlsd(remote_path, facts=_MLSD_FACTS):
            kind = fact.get("type", "").lower()
            if kind in ("cdir", "pdir") or name in (".", ".."):
                continue
            name = posixpath.basename(name.rstrip("/")) or name
            is_dir = kind == "dir"
            try:
                mod_time = parse_mlsd_time(fact.get("modify", ""))
            except ValueError:
                mod_time = 0.0
            try:
                size = int(fact.get("size", 0) or 0)
            except ValueError:
                size = 0
            entries.append(RemoteEntry(name, is_dir, mod_time, 0 if is_dir else size))
        return entries

    def _list_unix(self, remote_path: str) -> List[RemoteEntry]:
        lines: List[str] = []
        try:
            self._ftp.retrlines(f"LIST {remote_path}", lines.append)
        except ftplib.all_errors as exc:
            raise TransferError(f"List {remote_path}: {exc}") from exc
        now = datetime.now(timezone.utc)
        return [e for e in (parse_list_line(line, now) for line in lines) if e is not None]

    def fetch(self, remote_path: str, sink: Sink):
        try:
            self._ftp.retrbinary(f"RETR {remote_path}", sink)
        except ftplib.all_errors as exc:
            raise TransferError(f"Retrieve {remote_path}: {exc}") from exc


def _unverified_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _connect_tls(site, context: ssl.SSLContext) -> ftplib.FTP_TLS:
    ftp = ftplib.FTP_TLS(context=context, timeout=CONNECT_TIMEOUT)
    try:
        ftp.connect(site.hostname, site.port)
        ftp.auth()
    except BaseException:
        ftp.close()
        raise
    return ftp


def _open_tls(site, verifier: TrustVerifier) -> ftplib.FTP_TLS:
    """
    Secure the control connection. The presented chain is tried against the
    system roots first; if that fails the leaf is handed to the verifier.
    """
    try:
        return _connect_tls(site, ssl.create_default_context())
    except ssl.SSLCertVerificationError as exc:
        detail = getattr(exc, "verify_message", None) or str(exc)
        vlog(f"[FTP] certificate not verified: {detail}")

    ftp = _connect_tls(site, _unverified_context())
    try:
        verifier.vet_certificate(ftp.sock.getpeercert(binary_form=True), detail)
    except BaseException:
        ftp.close()
        raise
    return ftp


def dial_ftp(site, prompts) -> FTPTransport:
    """Open an FTP session (with TLS for ftps://) and check the remote root."""
    vlog("Opening FTP session")
    user = site.username
    pwd = resolve_password(site, prompts)

    log(f"[FTP] connecting to {user}@{site.endpoint} …")
    try:
        if site.scheme == "ftps":
            ftp = _open_tls(site, TrustVerifier(site, prompts))
        else:
            ftp = ftplib.FTP(timeout=CONNECT_TIMEOUT)
            ftp.connect(site.hostname, site.port)
    except ftplib.all_errors as exc:
        raise RemoteConnectionError(f"Connect {site.endpoint}: {exc}") from exc

    try:
        ftp.login(user, pwd)
        if site.scheme == "ftps":
            ftp.prot_p()
    except ftplib.all_errors as exc:
        ftp.close()
        raise RemoteConnectionError(f"Login {site.endpoint}: {exc}") from exc

    conn = FTPTransport(ftp)
    try:
        conn.list_directory(site.remote_path)
    except TransferError as exc:
        conn.close()
        raise RemoteConnectionError(str(exc)) from exc
    log("[FTP] connected ✓")
    return conn
