#!/usr/bin/env python3
"""confluence_cookies.py unit tests"""
import os
import sqlite3
import sys
import tempfile
import unittest
from contextlib import closing
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock, patch

sys.path.insert(0, str(Path(__file__).parent.parent))
import confluence_cookies
from confluence_cookies import (CookieFileNotFound, CookieJar, Platform,
                                StoreAccessError, UnsupportedPlatform)


def make_cookie_db(path, rows):
    with closing(sqlite3.connect(path)) as db:
        db.execute("CREATE TABLE moz_cookies (id INTEGER PRIMARY KEY, host TEXT, name TEXT, value TEXT)")
        db.executemany("INSERT INTO moz_cookies (host, name, value) VALUES (?, ?, ?)", rows)
        db.commit()


class FirefoxHomeTestCase(unittest.TestCase):
    """Temporary $HOME holding a Linux Firefox profile"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.home = self._tmp.name
        self.profile = os.path.join(self.home, ".mozilla", "firefox", "ab12cd.default-release")
        os.makedirs(self.profile)

    def tearDown(self):
        self._tmp.cleanup()

    def write_flat_file(self):
        path = os.path.join(self.profile, "cookies.txt")
        with open(path, "w") as f:
            f.write("# Netscape HTTP Cookie File\n")
            f.write(".example.com\tTRUE\t/\tFALSE\t2147483647\tJSESSIONID\tabc\n")
        return path


class TestDetectPlatform(unittest.TestCase):
    def test_darwin_is_macos(self):
        self.assertIs(confluence_cookies.detect_platform("x86_64-darwin21"), Platform.MACOS)

    def test_linux(self):
        self.assertIs(confluence_cookies.detect_platform("linux"), Platform.LINUX)

    def test_other_platform_is_rejected(self):
        with self.assertRaises(UnsupportedPlatform) as cm:
            confluence_cookies.detect_platform("win32")
        self.assertIn("win32", str(cm.exception))


class TestProfilesHome(unittest.TestCase):
    def test_linux_profile_glob(self):
        result = confluence_cookies.profiles_home(Platform.LINUX, "/home/me")
        self.assertEqual(result, "/home/me/.mozilla/firefox/*.default*")

    def test_macos_profile_glob(self):
        result = confluence_cookies.profiles_home(Platform.MACOS, "/Users/me")
        self.assertEqual(result, "/Users/me/Library/Application Support/Firefox/Profiles/*.default*")


class TestLocateCookieFile(FirefoxHomeTestCase):
    def test_finds_file_in_profile(self):
        path = self.write_flat_file()
        profile_glob = confluence_cookies.profiles_home(Platform.LINUX, self.home)
        self.assertEqual(confluence_cookies.locate_cookie_file(profile_glob, "cookies.txt"), path)

    def test_missing_file_raises(self):
        profile_glob = confluence_cookies.profiles_home(Platform.LINUX, self.home)
        with self.assertRaises(CookieFileNotFound):
            confluence_cookies.locate_cookie_file(profile_glob, "cookies.sqlite")


class TestReadCookieDatabase(FirefoxHomeTestCase):
    def test_returns_matching_pairs_in_order(self):
        path = os.path.join(self.profile, "cookies.sqlite")
        make_cookie_db(path, [
            ("confluence.example.com", "JSESSIONID", "abc"),
            ("www.other.org", "tracker", "zzz"),
            (".confluence.example.com", "seraph.rememberme", "xyz"),
        ])
        jar = confluence_cookies.read_cookie_database(path, "%confluence%")
        self.assertEqual(jar.pairs, (("JSESSIONID", "abc"), ("seraph.rememberme", "xyz")))
        self.assertEqual(jar.header_value(), "JSESSIONID=abc;seraph.rememberme=xyz")

    def test_does_not_modify_database(self):
        path = os.path.join(self.profile, "cookies.sqlite")
        make_cookie_db(path, [("confluence.example.com", "a", "1")])
        before = os.path.getmtime(path), os.path.getsize(path)
        confluence_cookies.read_cookie_database(path, "%confluence%")
        self.assertEqual((os.path.getmtime(path), os.path.getsize(path)), before)

    def test_missing_database_raises_not_found(self):
        with self.assertRaises(CookieFileNotFound):
            confluence_cookies.read_cookie_database(os.path.join(self.profile, "nope.sqlite"), "%x%")

    def test_corrupt_database_raises_access_error(self):
        path = os.path.join(self.profile, "cookies.sqlite")
        with open(path, "w") as f:
            f.write("this is not a database" * 100)
        with self.assertRaises(StoreAccessError):
            confluence_cookies.read_cookie_database(path, "%confluence%")

    def test_missing_table_raises_access_error(self):
        path = os.path.join(self.profile, "cookies.sqlite")
        with closing(sqlite3.connect(path)) as db:
            db.execute("CREATE TABLE other (x TEXT)")
        with self.assertRaises(StoreAccessError):
            confluence_cookies.read_cookie_database(path, "%confluence%")


class TestDomainMatches(unittest.TestCase):
    def test_suffix_matching(self):
        self.assertTrue(confluence_cookies.domain_matches("confluence.example.com", "confluence.example.com"))
        self.assertTrue(confluence_cookies.domain_matches("confluence.example.com", ".example.com"))
        self.assertFalse(confluence_cookies.domain_matches("confluence.example.com", "ample.com"))
        self.assertFalse(confluence_cookies.domain_matches("example.com", "confluence.example.com"))


class TestCookieJar(unittest.TestCase):
    def test_cookie_file_is_passed_through(self):
        jar = CookieJar(cookie_file="/tmp/cookies.txt")
        self.assertEqual(jar.header_value(), "/tmp/cookies.txt")

    def test_requires_exactly_one_representation(self):
        with self.assertRaises(ValueError):
            CookieJar()
        with self.assertRaises(ValueError):
            CookieJar(pairs=(("a", "b"),), cookie_file="/tmp/cookies.txt")


class TestExtractCookies(FirefoxHomeTestCase):
    def extract(self, **kwargs):
        return confluence_cookies.extract_cookies(
            "%confluence%", "confluence.example.com", platform_name="linux", home=self.home, **kwargs
        )

    def test_prefers_structured_store(self):
        make_cookie_db(os.path.join(self.profile, "cookies.sqlite"), [("confluence.example.com", "a", "1")])
        self.write_flat_file()
        jar = self.extract()
        self.assertEqual(jar.pairs, (("a", "1"),))

    def test_falls_back_to_flat_file_when_database_missing(self):
        path = self.write_flat_file()
        jar = self.extract()
        self.assertEqual(jar.cookie_file, path)

    def test_falls_back_to_flat_file_when_database_unreadable(self):
        with open(os.path.join(self.profile, "cookies.sqlite"), "w") as f:
            f.write("garbage" * 200)
        path = self.write_flat_file()
        jar = self.extract()
        self.assertEqual(jar.cookie_file, path)

    def test_no_cookie_store_is_fatal(self):
        with self.assertRaises(CookieFileNotFound):
            self.extract()

    def test_unsupported_platform_is_fatal(self):
        self.write_flat_file()
        with self.assertRaises(UnsupportedPlatform):
            confluence_cookies.extract_cookies("%x%", platform_name="sunos5", home=self.home)

    def test_browser_cookies_used_first(self):
        loader = Mock(return_value=[
            SimpleNamespace(name="JSESSIONID", value="b1", domain="confluence.example.com"),
            SimpleNamespace(name="other", value="x", domain="elsewhere.org"),
        ])
        with patch.dict(confluence_cookies.BROWSER_LOADERS, {"chrome": loader}):
            jar = self.extract(browser="chrome")
        loader.assert_called_once_with(domain_name="confluence.example.com")
        self.assertEqual(jar.pairs, (("JSESSIONID", "b1"),))

    def test_browser_failure_falls_back_to_firefox_store(self):
        loader = Mock(side_effect=confluence_cookies.browser_cookie3.BrowserCookieError("no profile"))
        path = self.write_flat_file()
        with patch.dict(confluence_cookies.BROWSER_LOADERS, {"chrome": loader}):
            jar = self.extract(browser="chrome")
        self.assertEqual(jar.cookie_file, path)

    def test_browser_runtime_error_falls_back_to_firefox_store(self):
        loader = Mock(side_effect=RuntimeError("Can not find secret for Chrome Safe Storage"))
        path = self.write_flat_file()
        with patch.dict(confluence_cookies.BROWSER_LOADERS, {"chrome": loader}):
            jar = self.extract(browser="chrome")
        self.assertEqual(jar.cookie_file, path)

    def test_browser_keeps_parent_domain_cookies(self):
        loader = Mock(return_value=[
            SimpleNamespace(name="sso", value="s1", domain=".example.com"),
            SimpleNamespace(name="JSESSIONID", value="b1", domain="confluence.example.com"),
            SimpleNamespace(name="evil", value="x", domain="notexample.com"),
        ])
        with patch.dict(confluence_cookies.BROWSER_LOADERS, {"chrome": loader}):
            jar = self.extract(browser="chrome")
        self.assertEqual(jar.pairs, (("sso", "s1"), ("JSESSIONID", "b1")))

    def test_browser_without_matching_cookies_falls_back(self):
        loader = Mock(return_value=[])
        path = self.write_flat_file()
        with patch.dict(confluence_cookies.BROWSER_LOADERS, {"chrome": loader}):
            jar = self.extract(browser="chrome")
        self.assertEqual(jar.cookie_file, path)


if __name__ == "__main__":
    unittest.main()
