"""Operations (scan, diff, report)"""
from .scanner import TreeScanner, scan_folders
from .diff import DiffFragment, DiffTag, render_diff, view_file
from .report import Mark, ReportRow, build_report

__all__ = [
    "TreeScanner", "scan_folders",
    "DiffFragment", "DiffTag", "render_diff", "view_file",
    "Mark", "ReportRow", "build_report",
]
