#!/usr/bin/env python3
"""
Confluence Attach Tool

Attach local files to a Confluence page using your browser's session
cookies (Firefox by default), so no login or API token is needed.

Usage:
    python confluence_attach.py -c https://confluence.example.com -p 123456 x.png x.svg

Requirements:
    Python 3.8+ with: browser_cookie3, requests, and the curl program

"""

import argparse
import re
import sys
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlparse

try:
    import confluence_api
    import confluence_cookies
    import confluence_transfer
    from confluence_upload import Outcome, UploadTarget, build_upload_plan
except ImportError as e:
    print(f"ERROR: Missing required module: {e}")
    print("Install with: pip install browser-cookie3 requests")
    sys.exit(1)

CONFIG_ERROR_EXIT = 2
SETUP_ERROR_EXIT = 2


class ConfigValidationError(argparse.ArgumentTypeError):
    pass


@dataclass(frozen=True)
class AttachConfig:
    """Command line options, built once in main() and passed down."""

    url: str
    page_id: int
    files: Tuple[str, ...]
    verbose: bool = False
    noop: bool = False
    cookie_host: Optional[str] = None
    browser: Optional[str] = None
    transport: str = confluence_transfer.CURL
    login_marker: Optional[str] = None

    @property
    def domain(self) -> str:
        return urlparse(self.url).hostname or ""

    @property
    def like_host(self) -> str:
        if self.cookie_host:
            return self.cookie_host
        return f"%{self.domain}%" if self.domain else "%confluence%"

    @property
    def target(self) -> UploadTarget:
        return UploadTarget(self.url, self.page_id)


def parse_page_id(text: str) -> int:
    """Page ID from the leading digits of ``text`` (as copied from a page URL)."""
    match = re.match(r"^\d+", text)
    if not match or int(match.group()) <= 0:
        raise ConfigValidationError("Page ID should be a positive integer")
    return int(match.group())


def parse_login_marker(text: str) -> str:
    try:
        re.compile(text)
    except re.error as e:
        raise ConfigValidationError(f"Invalid login marker pattern: {e}")
    return text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Attach files to a Confluence page using browser session cookies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -c https://confluence.example.com -p 123456 x.png x.svg
    Attaches x.png and x.svg files to a Confluence page.
        """,
    )

    parser.add_argument("--confluence", "-c", dest="url", type=str, help="Confluence URL")
    parser.add_argument(
        "--page",
        "-p",
        dest="page_id",
        type=parse_page_id,
        help="Confluence page upload destination (edit page and copy from browser address)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Display more feedback")
    parser.add_argument(
        "--noop", "-n", action="store_true", help="Don't actually do anything. Just print what commands would be run"
    )
    parser.add_argument(
        "--cookie-host",
        type=str,
        help="SQL LIKE pattern of cookie hosts to send (default: %%<host of URL>%%)",
    )
    parser.add_argument(
        "--browser",
        choices=sorted(confluence_cookies.BROWSER_LOADERS),
        help="Try this browser's cookies before the Firefox cookie files",
    )
    parser.add_argument(
        "--transport",
        choices=confluence_transfer.TRANSPORTS,
        default=confluence_transfer.CURL,
        help="Upload with the curl program (default) or in-process with requests",
    )
    parser.add_argument(
        "--login-marker",
        type=parse_login_marker,
        help="Regex marking a redirect to the login page in the transfer output",
    )
    parser.add_argument("files", nargs="*", metavar="FILE", help="Files to attach")
    return parser


def parse_config(parser: argparse.ArgumentParser, argv=None) -> AttachConfig:
    """Parse and validate the command line.

    Raises:
        ConfigValidationError: if the URL, page ID or files are missing
    """
    args = parser.parse_args(argv)

    if not args.url:
        raise ConfigValidationError("You must specify confluence's URL.")
    if args.page_id is None:
        raise ConfigValidationError("You must specify a page ID to upload to.")
    if not args.files:
        raise ConfigValidationError("You must specify a file to attach.")

    return AttachConfig(
        url=confluence_api.build_base_url(args.url),
        page_id=args.page_id,
        files=tuple(args.files),
        verbose=args.verbose,
        noop=args.noop,
        cookie_host=args.cookie_host,
        browser=args.browser,
        transport=args.transport,
        login_marker=args.login_marker,
    )


def run(config: AttachConfig) -> int:
    """Upload the configured files; returns the process exit code."""
    try:
        if config.transport == confluence_transfer.CURL:
            confluence_transfer.require_curl()
        cookie_jar = confluence_cookies.extract_cookies(config.like_host, config.domain, browser=config.browser)
    except confluence_transfer.MissingDependency as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return SETUP_ERROR_EXIT
    except confluence_cookies.CookieError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("\nMake sure you're logged into Confluence in your browser.", file=sys.stderr)
        return SETUP_ERROR_EXIT

    plan = build_upload_plan(config.target, list(config.files))
    if not plan.files:
        print("WARNING: None of the given files exist, uploading nothing", file=sys.stderr)

    try:
        result = confluence_transfer.execute_upload(
            plan,
            cookie_jar,
            verbose=config.verbose,
            noop=config.noop,
            transport=config.transport,
            login_marker=config.login_marker,
        )
    except (confluence_transfer.MissingDependency, confluence_cookies.CookieError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return SETUP_ERROR_EXIT

    if config.noop:
        return result.exit_code
    if result.outcome is Outcome.TRANSPORT_FAILURE:
        print(f"\n!!! Failed to upload ({config.transport} error {result.exit_status})", file=sys.stderr)
    elif result.outcome is Outcome.AUTH_FAILURE:
        print("\n!!! Failed to upload (not authenticated)", file=sys.stderr)
    else:
        print()
        print(f"✓ Uploaded {len(plan.files)} file(s) successfully")
    return result.exit_code


def main(argv=None):
    """Main entry point for the Confluence attach tool."""
    parser = build_parser()
    try:
        config = parse_config(parser, argv)
    except ConfigValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print(file=sys.stderr)
        parser.print_help(sys.stderr)
        sys.exit(CONFIG_ERROR_EXIT)

    sys.exit(run(config))


if __name__ == "__main__":
    main()
