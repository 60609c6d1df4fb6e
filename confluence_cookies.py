"""Browser session cookie discovery for Confluence uploads.

Reuses the authenticated session of a browser instead of logging in:
Firefox's cookies.sqlite is queried first, its old cookies.txt is the
fallback, and any browser supported by browser_cookie3 can be asked first.
"""

import glob
import os
import sqlite3
import sys
from contextlib import closing
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

import browser_cookie3

STRUCTURED_COOKIE_FILE = "cookies.sqlite"
FLAT_COOKIE_FILE = "cookies.txt"


class CookieError(Exception):
    """Base class for cookie discovery failures."""


class UnsupportedPlatform(CookieError):
    pass


class CookieFileNotFound(CookieError):
    pass


class StoreAccessError(CookieError):
    pass


class Platform(Enum):
    MACOS = "macos"
    LINUX = "linux"


PROFILE_TEMPLATES = {
    Platform.MACOS: "Library/Application Support/Firefox/Profiles/*.default*",
    Platform.LINUX: ".mozilla/firefox/*.default*",
}

BROWSER_LOADERS = {
    "chrome": browser_cookie3.chrome,
    "chromium": browser_cookie3.chromium,
    "firefox": browser_cookie3.firefox,
    "edge": browser_cookie3.edge,
    "safari": browser_cookie3.safari,
    "brave": browser_cookie3.brave,
}


@dataclass(frozen=True)
class CookieJar:
    """Cookies handed to the transfer layer.

    Either ``pairs`` (name/value tuples) or ``cookie_file`` (a Netscape
    cookie file passed through unparsed) is set, never both.
    """

    pairs: Optional[Tuple[Tuple[str, str], ...]] = None
    cookie_file: Optional[str] = None

    def __post_init__(self):
        if (self.pairs is None) == (self.cookie_file is None):
            raise ValueError("CookieJar needs exactly one of pairs or cookie_file")

    def header_value(self) -> str:
        """Value for curl's --cookie option."""
        if self.cookie_file is not None:
            return self.cookie_file
        return ";".join(f"{name}={value}" for name, value in self.pairs)


@dataclass(frozen=True)
class CookieLookup:
    """Outcome of one cookie source: a jar, or the error that stopped it."""

    source: str
    jar: Optional[CookieJar] = None
    error: Optional[CookieError] = None

    @property
    def found(self) -> bool:
        return self.jar is not None


def detect_platform(platform_name=None) -> Platform:
    """Map a platform identifier (default ``sys.platform``) to a Platform.

    Raises:
        UnsupportedPlatform: for anything but macOS and Linux
    """
    name = (platform_name if platform_name is not None else sys.platform).lower()
    if any(tag in name for tag in ("darwin", "osx", "mac")):
        return Platform.MACOS
    if "linux" in name:
        return Platform.LINUX
    raise UnsupportedPlatform(f"Unrecognised/unsupported platform '{name}'")


def profiles_home(platform: Platform, home=None) -> str:
    """Glob pattern of the default Firefox profile directory."""
    home = home if home is not None else os.path.expanduser("~")
    return os.path.join(home, PROFILE_TEMPLATES[platform])


def locate_cookie_file(profile_glob: str, basename: str) -> str:
    """Return the first file called ``basename`` in a profile matching the glob.

    Raises:
        CookieFileNotFound: if no profile holds such a file
    """
    cookie_glob = os.path.join(profile_glob, basename)
    matches = sorted(glob.glob(cookie_glob))
    if not matches:
        raise CookieFileNotFound(f"Cannot find cookie file {cookie_glob}")
    return matches[0]


def read_cookie_database(cookie_file: str, like_host: str) -> CookieJar:
    """Read name/value pairs from a Firefox cookies.sqlite, read-only.

    Args:
        cookie_file: Path of the sqlite database
        like_host: SQL LIKE pattern matched against the host column

    Returns:
        CookieJar holding the matching pairs in row order

    Raises:
        CookieFileNotFound: if the database file is absent
        StoreAccessError: if it cannot be opened or queried (e.g. locked)
    """
    if not os.path.isfile(cookie_file):
        raise CookieFileNotFound(f"Cannot find cookie database {cookie_file}")

    uri = Path(cookie_file).resolve().as_uri() + "?mode=ro"
    try:
        with closing(sqlite3.connect(uri, uri=True)) as db:
            rows = db.execute(
                "SELECT name, value FROM moz_cookies WHERE host LIKE ?", (like_host,)
            ).fetchall()
    except sqlite3.Error as e:
        raise StoreAccessError(f"Cannot read cookie database {cookie_file}: {e}") from e

    if not rows:
        print(f"WARNING: No cookies matching '{like_host}' in {cookie_file}", file=sys.stderr)
    return CookieJar(pairs=tuple((name, value) for name, value in rows))


def structured_store_cookies(profile_glob: str, like_host: str) -> CookieLookup:
    source = "Firefox cookies.sqlite"
    try:
        cookie_file = locate_cookie_file(profile_glob, STRUCTURED_COOKIE_FILE)
        return CookieLookup(source, jar=read_cookie_database(cookie_file, like_host))
    except CookieError as e:
        return CookieLookup(source, error=e)


def flat_file_cookies(profile_glob: str) -> CookieLookup:
    source = "Firefox cookies.txt"
    try:
        return CookieLookup(source, jar=CookieJar(cookie_file=locate_cookie_file(profile_glob, FLAT_COOKIE_FILE)))
    except CookieFileNotFound as e:
        return CookieLookup(source, error=e)


def domain_matches(host: str, cookie_domain: str) -> bool:
    """True if a cookie set for ``cookie_domain`` is sent to ``host``."""
    cookie_domain = cookie_domain.lstrip(".")
    return host == cookie_domain or host.endswith("." + cookie_domain)


def browser_session_cookies(browser: str, domain: str) -> CookieLookup:
    """Load cookies for ``domain`` from a browser through browser_cookie3."""
    source = f"{browser} browser session"
    loader = BROWSER_LOADERS.get(browser)
    if loader is None:
        return CookieLookup(source, error=StoreAccessError(f"Unsupported browser '{browser}'"))

    try:
        cookies = loader(domain_name=domain)
    except Exception as e:
        return CookieLookup(source, error=StoreAccessError(f"Cannot load {browser} cookies: {e}"))

    pairs = tuple((c.name, c.value) for c in cookies if domain_matches(domain, c.domain))
    if not pairs:
        return CookieLookup(source, error=CookieFileNotFound(f"No {browser} cookies found for {domain}"))
    return CookieLookup(source, jar=CookieJar(pairs=pairs))


def extract_cookies(like_host: str, domain: str = "", browser=None, platform_name=None, home=None) -> CookieJar:
    """Find usable session cookies, trying each source in order.

    Order: the named browser (if any), Firefox cookies.sqlite, then
    Firefox cookies.txt. Failed sources are reported as warnings.

    Raises:
        UnsupportedPlatform: if the Firefox profile location is unknown
        CookieError: the last source's error when every source failed
    """
    if browser:
        lookup = browser_session_cookies(browser, domain)
        if lookup.found:
            print(f"✓ Loaded cookies from {lookup.source} ({len(lookup.jar.pairs)} cookies for {domain})")
            return lookup.jar
        print(f"WARNING: {lookup.error}", file=sys.stderr)

    profile_glob = profiles_home(detect_platform(platform_name), home)

    lookup = structured_store_cookies(profile_glob, like_host)
    if not lookup.found:
        print(f"WARNING: {lookup.error}", file=sys.stderr)
        lookup = flat_file_cookies(profile_glob)

    if not lookup.found:
        raise lookup.error
    print(f"✓ Loaded cookies from {lookup.source}")
    return lookup.jar
