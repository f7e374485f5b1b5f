"""Core functionality (transports, trust, scan control)"""
from .transport import RemoteEntry, RemoteTransport, Prompts, dial_remote, remote_join
from .trust import TrustVerifier

__all__ = [
    "RemoteEntry", "RemoteTransport", "Prompts", "dial_remote", "remote_join",
    "TrustVerifier",
]
