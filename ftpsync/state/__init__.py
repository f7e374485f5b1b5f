"""State management (fingerprint cache)"""
from .fingerprint_cache import FileState, Fingerprint, FingerprintCache

__all__ = ["FileState", "Fingerprint", "FingerprintCache"]
