"""
Remote transport interface and dialing
"""
import posixpath
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from ..errors import AuthCancelled, ConfigurationError

Sink = Callable[[bytes], None]


@dataclass(frozen=True)
class RemoteEntry:
    """One item of a remote directory listing."""
    name: str
    is_dir: bool
    mod_time: float
    size: int


class RemoteTransport(Protocol):
    """Capabilities the scanner needs from a remote file store."""

    def close(self) -> None: ...

    def list_directory(self, remote_path: str) -> List[RemoteEntry]: ...

    def fetch(self, remote_path: str, sink: Sink) -> None: ...


class Prompts(Protocol):
    """Operator decisions the transports may need while dialing."""

    def prompt_trust(self, endpoint: str, detail: str, subject: str, issuer: str) -> bool: ...

    def prompt_password(self, endpoint: str) -> Optional[str]: ...


def resolve_password(site, prompts: Prompts) -> str:
    """
    Password from the remote URL, else from this session, else from the
    operator. The answer is kept on the site for the rest of the session.
    """
    pwd = site.url_password
    if pwd is not None:
        return pwd
    if site.password is not None:
        return site.password
    pwd = prompts.prompt_password(site.hostname)
    if pwd is None:
        raise AuthCancelled("Transfer cancelled")
    site.password = pwd
    return pwd


def dial_remote(site, prompts: Prompts) -> RemoteTransport:
    """Open an FTP, FTPS or SFTP transport according to the site's scheme."""
    scheme = site.scheme
    if scheme in ("ftp", "ftps"):
        from .ftp_transport import dial_ftp
        return dial_ftp(site, prompts)
    if scheme == "sftp":
        from .sftp_transport import dial_sftp
        return dial_sftp(site, prompts)
    raise ConfigurationError(f"Unsupported scheme ({scheme}) for remote address")


def remote_join(root: str, rel: str) -> str:
    """Remote path for a scan-relative path ('.' is the root itself)."""
    if rel in ("", "."):
        return root
    return posixpath.join(root, rel)
