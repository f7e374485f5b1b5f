"""
Integration tests for the ftpsync command line.

Tests:
  - sites: listing, current-site marker, empty configuration
  - report: rows from a saved cache, no-difference message
  - reset: requires --yes when not interactive, clears the cache
  - terminal prompts: empty password accepted, EOF or no terminal cancels
  - argument errors: no command, unknown site
"""
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from ftpsync.cli import TerminalPrompts
from ftpsync.config import SiteConfig, SiteList
from ftpsync.state.fingerprint_cache import FileState, FingerprintCache


# ── Helpers ───────────────────────────────────────────────────────────────────

REPO_ROOT = Path(__file__).parent.parent


def run_ftpsync(*args, config_home, input_text=None):
    """Run the ftpsync CLI and return (returncode, stdout, stderr)."""
    result = subprocess.run(
        [sys.executable, "-m", "ftpsync", *args],
        cwd=str(REPO_ROOT),
        capture_output=True,
        text=True,
        input=input_text,
        env={**os.environ, "PYTHONPATH": str(REPO_ROOT), "XDG_CONFIG_HOME": str(config_home)},
    )
    return result.returncode, result.stdout, result.stderr


class _CliTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.config_home = self.root / "config"
        self.source = self.root / "site"
        self.source.mkdir()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write_sites(self, *sites, current=None):
        SiteList(list(sites), current=current,
                 path=self.config_home / "ftpsync" / "sites.yaml").save()

    def _site(self, name="Blog"):
        return SiteConfig(name=name, source=str(self.source),
                          remote="ftps://me@ftp.example.com/htdocs")

    def run_cli(self, *args, **kw):
        return run_ftpsync(*args, config_home=self.config_home, **kw)


# ── Tests: sites ──────────────────────────────────────────────────────────────

class TestSitesCommand(_CliTestCase):

    def test_no_sites(self):
        rc, out, _ = self.run_cli("sites")
        self.assertEqual(rc, 0)
        self.assertIn("No sites configured", out)

    def test_lists_sites_and_marks_current(self):
        self._write_sites(self._site("Blog"), self._site("Shop"), current="Shop")
        rc, out, _ = self.run_cli("sites")
        self.assertEqual(rc, 0)
        lines = out.splitlines()
        self.assertTrue(lines[0].startswith("  Blog"))
        self.assertTrue(lines[1].startswith("* Shop"))
        self.assertIn("ftps://me@ftp.example.com/htdocs", out)


# ── Tests: report ─────────────────────────────────────────────────────────────

class TestReportCommand(_CliTestCase):

    def test_report_from_saved_cache(self):
        site = self._site()
        self._write_sites(site)
        cache = FingerprintCache(site.cache_path)
        cache.get_or_create(".")
        cache.get_or_create("index.html").local = FileState(changed=True, mod_time=1.0, size=3)
        cache.persist()

        rc, out, err = self.run_cli("report")
        self.assertEqual(rc, 0, err)
        self.assertIn("index.html", out)
        self.assertIn("upload", out)
        self.assertIn("1 difference(s)", out)

    def test_report_without_cache(self):
        self._write_sites(self._site())
        rc, out, _ = self.run_cli("report")
        self.assertEqual(rc, 0)
        self.assertIn("No differences.", out)

    def test_report_with_corrupt_cache(self):
        site = self._site()
        self._write_sites(site)
        site.cache_path.write_bytes(b"not a cache")
        rc, _, err = self.run_cli("report")
        self.assertEqual(rc, 1)
        self.assertIn("error:", err)


# ── Tests: reset ──────────────────────────────────────────────────────────────

class TestResetCommand(_CliTestCase):

    def _seed(self):
        site = self._site()
        self._write_sites(site)
        cache = FingerprintCache(site.cache_path)
        cache.get_or_create("a.txt")
        cache.persist()
        return site

    def test_reset_needs_confirmation(self):
        site = self._seed()
        rc, _, err = self.run_cli("reset", input_text="")
        self.assertEqual(rc, 1)
        self.assertIn("--yes", err)
        self.assertEqual(len(FingerprintCache.load(site.cache_path)), 1)

    def test_reset_clears_cache(self):
        site = self._seed()
        rc, _, err = self.run_cli("reset", "--yes")
        self.assertEqual(rc, 0, err)
        self.assertEqual(len(FingerprintCache.load(site.cache_path)), 0)


# ── Tests: terminal prompts ───────────────────────────────────────────────────

class TestTerminalPrompts(unittest.TestCase):

    def _tty(self, is_tty=True):
        stdin = mock.patch("sys.stdin")
        fake = stdin.start()
        self.addCleanup(stdin.stop)
        fake.isatty.return_value = is_tty

    def test_empty_password_is_an_answer(self):
        self._tty()
        with mock.patch("ftpsync.cli.getpass.getpass", return_value=""):
            self.assertEqual(TerminalPrompts().prompt_password("host"), "")

    def test_eof_cancels_password_prompt(self):
        self._tty()
        with mock.patch("ftpsync.cli.getpass.getpass", side_effect=EOFError):
            self.assertIsNone(TerminalPrompts().prompt_password("host"))

    def test_no_terminal_cancels_password_prompt(self):
        self._tty(False)
        with mock.patch("ftpsync.cli.getpass.getpass") as ask:
            self.assertIsNone(TerminalPrompts().prompt_password("host"))
        ask.assert_not_called()


# ── Tests: argument errors ────────────────────────────────────────────────────

class TestArguments(_CliTestCase):

    def test_no_command_prints_help(self):
        rc, out, _ = self.run_cli()
        self.assertEqual(rc, 1)
        self.assertIn("usage:", out)

    def test_unknown_site(self):
        self._write_sites(self._site())
        rc, _, err = self.run_cli("report", "--site", "missing")
        self.assertEqual(rc, 1)
        self.assertIn("No such site", err)

    def test_no_sites_configured(self):
        rc, _, err = self.run_cli("scan")
        self.assertEqual(rc, 1)
        self.assertIn("No sites configured", err)


if __name__ == "__main__":
    unittest.main()
