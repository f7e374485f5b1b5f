"""Utilities (logging, patterns, file utilities)"""
from .logging import log, vlog, warn, set_verbose, is_verbose
from .ignore_patterns import ExclusionList
from .file_utils import BinaryClassifier, TextFoldHash, new_digest, md5_local

__all__ = [
    "log", "vlog", "warn", "set_verbose", "is_verbose",
    "ExclusionList",
    "BinaryClassifier", "TextFoldHash", "new_digest", "md5_local",
]
