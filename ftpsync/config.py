"""
Site configuration for ftpsync
"""
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlsplit

import yaml

from .errors import ConfigurationError, StorageWriteError
from .utils.logging import vlog

# ══════════════════════════════════════════════════════════════════════════════
#  DEFAULTS
# ══════════════════════════════════════════════════════════════════════════════

DEFAULT_CACHE_FILE = ".ftpsync-cache"
DEFAULT_REMOTE = "ftps://"
DEFAULT_EXCLUDE = "@.gitignore|.DS_Store|_vti_cnf|_vti_pvt|thumbs.db|.git"
DEFAULT_BINARY_FILES = ".jar|.phar|.zip|.mp3|.mp4|.ogg|.mkv|.png|.gif|.jpg|.jpeg"

SUPPORTED_SCHEMES = ("ftp", "ftps", "sftp")
DEFAULT_PORTS = {"ftp": 21, "ftps": 21, "sftp": 22}

# Seconds allowed for establishing a connection
CONNECT_TIMEOUT = 20
SSH_BANNER_TIMEOUT = 30
SSH_AUTH_TIMEOUT = 30

SITES_FILE = "sites.yaml"


# ══════════════════════════════════════════════════════════════════════════════
#  GLOBAL CONFIG DIR  ── $XDG_CONFIG_HOME/ftpsync
# ══════════════════════════════════════════════════════════════════════════════

def get_global_config_dir() -> Path:
    """Return the global config directory for ftpsync."""
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) / "ftpsync"
    if os.name == "nt":
        appdata = os.environ.get("APPDATA", "")
        if appdata:
            return Path(appdata) / "ftpsync"
    return Path.home() / ".config" / "ftpsync"


def get_sites_file() -> Path:
    return get_global_config_dir() / SITES_FILE


# ══════════════════════════════════════════════════════════════════════════════
#  SITE
# ══════════════════════════════════════════════════════════════════════════════

@dataclass
class SiteConfig:
    """
    One local/remote pair to compare.

    ``server_key`` is the trust record: the certificate signature (FTPS) or
    host key (SFTP) the operator accepted on an earlier connection.
    ``password`` lives for the session only and is never saved.
    """
    name: str = "New site"
    source: str = ""
    cache_file: str = DEFAULT_CACHE_FILE
    remote: str = DEFAULT_REMOTE
    exclude: str = DEFAULT_EXCLUDE
    binary_files: str = DEFAULT_BINARY_FILES
    server_key: Optional[bytes] = None
    ssh_key: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False, compare=False)

    # ── remote address ────────────────────────────────────────────────────

    @property
    def scheme(self) -> str:
        return urlsplit(self.remote).scheme.lower()

    @property
    def hostname(self) -> str:
        return urlsplit(self.remote).hostname or ""

    @property
    def port(self) -> int:
        try:
            port = urlsplit(self.remote).port
        except ValueError:
            port = None
        return port or DEFAULT_PORTS.get(self.scheme, 21)

    @property
    def endpoint(self) -> str:
        """host:port, as shown to the operator in prompts."""
        return f"{self.hostname}:{self.port}"

    @property
    def username(self) -> str:
        user = urlsplit(self.remote).username
        if user:
            return unquote(user)
        return "anonymous" if self.scheme in ("ftp", "ftps") else ""

    @property
    def url_password(self) -> Optional[str]:
        pwd = urlsplit(self.remote).password
        return unquote(pwd) if pwd is not None else None

    @property
    def remote_path(self) -> str:
        return unquote(urlsplit(self.remote).path) or "."

    @property
    def display_remote(self) -> str:
        """Remote address with any embedded password removed."""
        parts = urlsplit(self.remote)
        if parts.password is None:
            return self.remote
        netloc = parts.netloc.replace(f":{parts.password}@", "@", 1)
        return parts._replace(netloc=netloc).geturl()

    # ── local paths ───────────────────────────────────────────────────────

    @property
    def cache_path(self) -> Path:
        """Cache file location; a bare file name lives inside the source folder."""
        path = Path(self.cache_file).expanduser()
        if self.source and not path.is_absolute() and path.name == self.cache_file:
            path = Path(self.source).expanduser() / path
        return path

    @property
    def cache_rel_path(self) -> Optional[str]:
        """Cache file path relative to the source folder, if it lies inside it."""
        if not self.source:
            return None
        try:
            rel = self.cache_path.resolve().relative_to(Path(self.source).expanduser().resolve())
        except ValueError:
            return None
        return rel.as_posix()

    def check(self):
        """Raise ConfigurationError if the site cannot be scanned."""
        if not self.source:
            raise ConfigurationError("No source configured for scan")
        if not self.hostname:
            raise ConfigurationError("No remote server configured for scan")
        if not self.cache_file:
            raise ConfigurationError("Cache file name must not be blank")
        if self.scheme not in SUPPORTED_SCHEMES:
            raise ConfigurationError(
                f"Unsupported scheme ({self.scheme}) for remote address")

    # ── (de)serialisation ─────────────────────────────────────────────────

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "source": self.source,
            "cache_file": self.cache_file,
            "remote": self.remote,
            "exclude": self.exclude,
            "binary_files": self.binary_files,
        }
        if self.server_key:
            data["server_key"] = self.server_key.hex()
        if self.ssh_key:
            data["ssh_key"] = self.ssh_key
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SiteConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(f"Bad site entry: {data!r}")
        key = data.get("server_key")
        try:
            server_key = bytes.fromhex(str(key)) if key else None
        except ValueError as exc:
            raise ConfigurationError(
                f"Bad server_key for site {data.get('name')!r}") from exc
        return cls(
            name=str(data.get("name", "New site")),
            source=str(data.get("source") or ""),
            cache_file=str(data.get("cache_file", DEFAULT_CACHE_FILE) or ""),
            remote=str(data.get("remote") or DEFAULT_REMOTE),
            exclude=str(data.get("exclude", DEFAULT_EXCLUDE) or ""),
            binary_files=str(data.get("binary_files", DEFAULT_BINARY_FILES) or ""),
            server_key=server_key,
            ssh_key=str(data["ssh_key"]) if data.get("ssh_key") else None,
        )


# ══════════════════════════════════════════════════════════════════════════════
#  SITE LIST  ── sites.yaml
# ══════════════════════════════════════════════════════════════════════════════

class SiteList:
    """The known sites and which one is current."""

    def __init__(self, sites: Optional[List[SiteConfig]] = None,
                 current: Optional[str] = None, path: Optional[Path] = None):
        self.sites: List[SiteConfig] = list(sites or [])
        self.current_name = current
        self.path = path or get_sites_file()

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "SiteList":
        """Load the site list; an absent file yields an empty list."""
        path = path or get_sites_file()
        if not path.is_file():
            vlog(f"No site list at {path}")
            return cls(path=path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Bad format for saved config ({exc})") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Bad format for saved config ({path})")
        sites = [SiteConfig.from_dict(s) for s in data.get("sites") or []]
        return cls(sites, data.get("current"), path)

    def save(self):
        """Write the site list atomically."""
        data = {
            "current": self.current_name,
            "sites": [s.to_dict() for s in self.sites],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".sites-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, sort_keys=False)
            os.replace(tmp, self.path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise StorageWriteError(f"Error saving site config ({exc})") from exc

    def find(self, name: str) -> Optional[SiteConfig]:
        return next((s for s in self.sites if s.name.lower() == name.lower()), None)

    def select(self, name: str) -> SiteConfig:
        """Make the named site current (case-insensitive)."""
        site = self.find(name)
        if site is None:
            raise ConfigurationError(f"No such site: {name}")
        self.current_name = site.name
        return site

    def current(self) -> Optional[SiteConfig]:
        if self.current_name:
            site = self.find(self.current_name)
            if site is not None:
                return site
        return self.sites[0] if self.sites else None
