"""
SFTP transport over paramiko, with trust-on-first-use host key checks
"""
import stat
from typing import List

import paramiko

from ..config import CONNECT_TIMEOUT, SSH_AUTH_TIMEOUT, SSH_BANNER_TIMEOUT
from ..errors import RemoteConnectionError, TransferError, UntrustedEndpoint
from ..utils.file_utils import CHUNK_SIZE
from ..utils.logging import log, vlog
from .transport import RemoteEntry, Sink, resolve_password
from .trust import TrustVerifier


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """
    Host keys are self-issued, so no system known_hosts is consulted: every
    key goes straight to the stored-key comparison and, failing that, to the
    operator.
    """

    def __init__(self, verifier: TrustVerifier):
        self.verifier = verifier

    def missing_host_key(self, client, hostname, key):
        self.verifier.check(
            key.asbytes(),
            f"The key for {hostname} cannot be verified.",
            f"{key.get_name()} {key.get_fingerprint().hex()}",
            "self-issued",
        )


class SFTPTransport:
    """Wraps paramiko SSHClient + SFTPClient."""

    def __init__(self, ssh: paramiko.SSHClient, sftp: paramiko.SFTPClient):
        self._ssh = ssh
        self._sftp = sftp

    def close(self):
        try:
            if self._sftp:
                self._sftp.close()
        finally:
            if self._ssh:
                self._ssh.close()
            self._ssh = None
            self._sftp = None
        vlog("[SSH] disconnected.")

    def list_directory(self, remote_path: str) -> List[RemoteEntry]:
        try:
            attrs = self._sftp.listdir_attr(remote_path)
        except (OSError, paramiko.SSHException) as exc:
            raise TransferError(f"List {remote_path}: {exc}") from exc
        entries = []
        for a in attrs:
            is_dir = stat.S_ISDIR(a.st_mode or 0)
            entries.append(RemoteEntry(
                name=a.filename,
                is_dir=is_dir,
                mod_time=float(a.st_mtime or 0),
                size=0 if is_dir else int(a.st_size or 0),
            ))
        return entries

    def fetch(self, remote_path: str, sink: Sink):
        try:
            with self._sftp.open(remote_path, "rb") as f:
                f.prefetch()
                for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                    sink(chunk)
        except (OSError, paramiko.SSHException) as exc:
            raise TransferError(f"Retrieve {remote_path}: {exc}") from exc


def dial_sftp(site, prompts) -> SFTPTransport:
    """Open an SSH session, start SFTP on it and check the remote root."""
    vlog("Opening SFTP session")
    user = site.username
    kw: dict = dict(hostname=site.hostname, port=site.port, username=user,
                    timeout=CONNECT_TIMEOUT, banner_timeout=SSH_BANNER_TIMEOUT,
                    auth_timeout=SSH_AUTH_TIMEOUT, allow_agent=False, look_for_keys=False)
    if site.ssh_key:
        kw["key_filename"] = site.ssh_key
    else:
        kw["password"] = resolve_password(site, prompts)

    log(f"[SSH] connecting to {user}@{site.endpoint} …")
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(TrustOnFirstUsePolicy(TrustVerifier(site, prompts)))
    try:
        client.connect(**kw)
        sftp = client.open_sftp()
    except UntrustedEndpoint:
        client.close()
        raise
    except (OSError, paramiko.SSHException) as exc:
        client.close()
        raise RemoteConnectionError(f"Connect {site.endpoint}: {exc}") from exc

    conn = SFTPTransport(client, sftp)
    try:
        conn.list_directory(site.remote_path)
    except TransferError as exc:
        conn.close()
        raise RemoteConnectionError(str(exc)) from exc
    log("[SSH] connected ✓")
    return conn

