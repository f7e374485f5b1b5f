#!/usr/bin/env python3
"""
ftpsync  —  Compare a local folder with its copy on an FTP/FTPS/SFTP server
===========================================================================

Subcommands:
  scan      Scan the current site and report real content differences.
  report    Show the differences recorded by the last scan.
  diff      Show the text differences of one file.
  reset     Forget cached fingerprints, forcing a full rescan.
  sites     List the configured sites.

Sites are read from $XDG_CONFIG_HOME/ftpsync/sites.yaml.
Run 'ftpsync <subcommand> --help' for more details.
"""
import argparse
import getpass
import sys
from typing import Optional

from ftpsync import config as _cfg
from ftpsync.core.scan_engine import ScanController, ScanStatus
from ftpsync.errors import FtpSyncError
from ftpsync.operations.diff import DiffTag, view_file
from ftpsync.operations.report import build_report
from ftpsync.state.fingerprint_cache import FingerprintCache
from ftpsync.utils.logging import log, set_verbose, warn


# ── prompts ──────────────────────────────────────────────────────────────────

class TerminalPrompts:
    """Asks the operator on the terminal."""

    def prompt_trust(self, endpoint: str, detail: str, subject: str, issuer: str) -> bool:
        print(f"\n⚠  {detail}", file=sys.stderr)
        if subject or issuer:
            print("Certificate details:", file=sys.stderr)
            print(f"  Subject: {subject}", file=sys.stderr)
            print(f"  Issuer:  {issuer}", file=sys.stderr)
        if not sys.stdin.isatty():
            return False
        try:
            answer = input(f"Do you trust this server ({endpoint})? [y/N]: ").strip().lower()
        except EOFError:
            return False
        return answer in ("y", "yes")

    def prompt_password(self, endpoint: str) -> Optional[str]:
        if not sys.stdin.isatty():
            return None
        try:
            pwd = getpass.getpass(f"Enter password for {endpoint}: ")
        except EOFError:
            return None
        return pwd


# ── helpers ──────────────────────────────────────────────────────────────────

def _load_site(args):
    sites = _cfg.SiteList.load()
    if args.site:
        site = sites.select(args.site)
    else:
        site = sites.current()
        if site is None:
            raise FtpSyncError(f"No sites configured; edit {sites.path}")
    return sites, site


def _show_status(msg: str):
    print(f"\r\033[K{msg[:70]}", end="", file=sys.stderr, flush=True)


def _print_report(cache: FingerprintCache):
    rows = build_report(cache)
    if not rows:
        print("No differences.")
        return
    width = max(len("Path"), *(len(r.path) for r in rows))
    print(f"{'Path':<{width}}  {'Local':<9} {'Remote':<9}")
    print(f"{'─' * width}  {'─' * 9} {'─' * 9}")
    for r in rows:
        print(f"{r.path:<{width}}  {r.local.value:<9} {r.remote.value:<9}")
    print(f"\n{len(rows)} difference(s)")


# ── scan ─────────────────────────────────────────────────────────────────────

def cmd_scan(args):
    """Run a scan of the current site and print the report."""
    sites, site = _load_site(args)
    site.check()
    cache = FingerprintCache.load(site.cache_path)
    key_before = site.server_key

    on_status = _show_status if sys.stderr.isatty() else None
    controller = ScanController(site, cache, TerminalPrompts(), on_status=on_status)
    controller.begin_scan()
    try:
        outcome = controller.wait()
    except KeyboardInterrupt:
        print(file=sys.stderr)
        warn("Interrupted by user; stopping scan …")
        outcome = controller.end_scan()
    else:
        controller.end_scan()
    if sys.stderr.isatty():
        print(file=sys.stderr)

    if site.server_key != key_before:
        sites.save()

    if outcome is None or outcome.status is ScanStatus.FAILED:
        err = outcome.error if outcome else "no result"
        print(f"error: scan failed: {err}", file=sys.stderr)
        sys.exit(1)
    if outcome.status is ScanStatus.ABORTED:
        log("Partial results saved; run 'ftpsync scan' again to finish.")
    _print_report(cache)


# ── report ───────────────────────────────────────────────────────────────────

def cmd_report(args):
    """Print the differences recorded by the last scan."""
    _, site = _load_site(args)
    site.check()
    _print_report(FingerprintCache.load(site.cache_path))


# ── diff ─────────────────────────────────────────────────────────────────────

def cmd_diff(args):
    """Print one file with remote-only text as {+…+} and local-only text as [-…-]."""
    sites, site = _load_site(args)
    site.check()
    key_before = site.server_key
    rel = args.path.replace("\\", "/").lstrip("/")
    fragments = view_file(site, rel, TerminalPrompts())
    if site.server_key != key_before:
        sites.save()
    for frag in fragments:
        if frag.tag is DiffTag.INSERTED:
            sys.stdout.write("{+" + frag.text + "+}")
        elif frag.tag is DiffTag.DELETED:
            sys.stdout.write("[-" + frag.text + "-]")
        else:
            sys.stdout.write(frag.text)
    sys.stdout.flush()


# ── reset ────────────────────────────────────────────────────────────────────

def cmd_reset(args):
    """Delete cached fingerprints for the current site."""
    _, site = _load_site(args)
    site.check()
    if not args.yes:
        if not sys.stdin.isatty():
            print("error: refusing to reset without --yes.", file=sys.stderr)
            sys.exit(1)
        answer = input(f"Clear cached results for {site.name}? [y/N]: ").strip().lower()
        if answer not in ("y", "yes"):
            return
    controller = ScanController(site, FingerprintCache(site.cache_path), TerminalPrompts())
    controller.reset()
    controller.end_scan()
    log(f"Cache cleared for {site.name}")


# ── sites ────────────────────────────────────────────────────────────────────

def cmd_sites(args):
    """List configured sites, marking the current one."""
    sites = _cfg.SiteList.load()
    if not sites.sites:
        print(f"No sites configured; edit {sites.path}")
        return
    current = sites.current()
    for s in sites.sites:
        mark = "*" if s is current else " "
        print(f"{mark} {s.name:<20} {s.source}  →  {s.display_remote}")


# ── main ──────────────────────────────────────────────────────────────────────

def main(argv=None):
    """CLI entry point for ftpsync"""
    parser = argparse.ArgumentParser(
        prog="ftpsync",
        description="Compare a local folder with a remote copy, accessed via FTP, FTPS or SFTP.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log activity to the standard error stream")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    def _add(name, **kw):
        p = subparsers.add_parser(name, **kw)
        p.add_argument("--site", metavar="NAME",
                       help="Site to use (default: current site)")
        p.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
                       help="Log activity to the standard error stream")
        return p

    _add("scan", help="Scan the current site and report differences",
         description="Scan local and remote folders and report real content differences.")
    _add("report", help="Show differences recorded by the last scan")
    diff_p = _add("diff", help="Show text differences for one file")
    diff_p.add_argument("path", metavar="PATH", help="File path relative to the site root")
    reset_p = _add("reset", help="Clear cached fingerprints for the site")
    reset_p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    subparsers.add_parser("sites", help="List configured sites")

    args = parser.parse_args(argv)
    set_verbose(args.verbose)

    commands = {
        "scan": cmd_scan,
        "report": cmd_report,
        "diff": cmd_diff,
        "reset": cmd_reset,
        "sites": cmd_sites,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)
    try:
        handler(args)
    except FtpSyncError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
