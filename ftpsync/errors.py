"""
Exception types raised by the ftpsync engine
"""


class FtpSyncError(Exception):
    """Base class for every error the engine reports."""


class ConfigurationError(FtpSyncError):
    """The current site is incomplete; a scan cannot start."""


class RemoteConnectionError(FtpSyncError):
    """Dialing the remote server, or listing its root, failed."""


class UntrustedEndpoint(RemoteConnectionError):
    """The operator declined to trust the server certificate or host key."""


class AuthCancelled(RemoteConnectionError):
    """The operator dismissed the password prompt."""


class LocalIOError(FtpSyncError):
    """A local file or folder could not be read; the scan is abandoned."""


class TransferError(FtpSyncError):
    """A remote listing or fetch failed."""


class ScanAborted(FtpSyncError):
    """Cancellation was observed at a walk node boundary."""

    def __init__(self, msg: str = "Scan aborted"):
        super().__init__(msg)


class StorageCorrupt(FtpSyncError):
    """A cache snapshot exists but cannot be decoded."""


class StorageWriteError(FtpSyncError):
    """A cache snapshot (or site list) could not be written."""
