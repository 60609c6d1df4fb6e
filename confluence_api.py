"""Confluence HTTP helpers for the in-process (requests) upload transport."""

import os
from contextlib import ExitStack
from http.cookiejar import LoadError, MozillaCookieJar

import requests
import urllib3

from confluence_cookies import StoreAccessError

ATTACH_ACTION = "pages/doattachfile.action"

# curl exit codes, so both transports report failures the same way
CURL_FAILED_CONNECT = 7
CURL_READ_ERROR = 26
CURL_TIMEOUT = 28
CURL_SSL_ERROR = 35
CURL_GENERIC_ERROR = 1


def build_base_url(arg_site):
    """Build the base URL of the Confluence instance.

    Args:
        arg_site: Full URL or bare host name (https is assumed for the latter)

    Returns:
        Base URL without trailing slash
    """
    site = arg_site.strip().rstrip("/")
    if "://" not in site:
        return f"https://{site}"
    return site


def attach_url(base_url, page_id):
    """URL of the attachment form action for a page."""
    return f"{base_url}/{ATTACH_ACTION}?pageId={page_id}"


def build_session(cookie_jar):
    """Build a requests.Session carrying the browser cookies.

    Args:
        cookie_jar: confluence_cookies.CookieJar

    Returns:
        requests.Session with certificate checks disabled

    Raises:
        StoreAccessError: if a flat cookie file cannot be parsed
    """
    session = requests.Session()
    session.verify = False
    session.headers.update({"X-Atlassian-Token": "no-check"})

    if cookie_jar.cookie_file is not None:
        jar = MozillaCookieJar(cookie_jar.cookie_file)
        try:
            jar.load(ignore_discard=True, ignore_expires=True)
        except (LoadError, OSError) as e:
            raise StoreAccessError(f"Cannot read cookie file {cookie_jar.cookie_file}: {e}") from e
        session.cookies.update(jar)
    elif cookie_jar.pairs:
        # Sent verbatim, like curl's --cookie "a=b;c=d"
        session.headers["Cookie"] = cookie_jar.header_value()
    return session


def _header_name(name):
    return "-".join(part.capitalize() for part in name.split("-"))


def format_transcript(response):
    """Render a response the way ``curl -v`` prints it."""
    request = response.request
    lines = [f"> {request.method} {request.url}"]
    lines += [f"> {_header_name(k)}: {v}" for k, v in request.headers.items() if k.lower() != "cookie"]
    lines.append(">")
    lines.append(f"< HTTP/1.1 {response.status_code} {response.reason}")
    lines += [f"< {_header_name(k)}: {v}" for k, v in response.headers.items()]
    lines.append("<")
    lines.append(response.text)
    return "\n".join(lines)


def post_attachments(plan, cookie_jar):
    """POST the upload form with requests.

    Redirects are not followed so a bounce to the login page stays visible
    in the transcript.

    Args:
        plan: confluence_upload.UploadPlan
        cookie_jar: confluence_cookies.CookieJar

    Returns:
        Tuple of (exit_status: int, transcript: str)
    """
    session = build_session(cookie_jar)
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    with ExitStack() as stack:
        stack.callback(session.close)
        try:
            parts = []
            for field in plan.fields:
                if field.is_file:
                    handle = stack.enter_context(open(field.value, "rb"))
                    parts.append((field.name, (os.path.basename(field.value), handle)))
                else:
                    parts.append((field.name, (None, field.value)))
        except OSError as e:
            return (CURL_READ_ERROR, f"Failed to open/read local data: {e}")

        try:
            response = session.post(plan.url, files=parts, allow_redirects=False)
        except requests.exceptions.SSLError as e:
            return (CURL_SSL_ERROR, f"SSL connect error: {e}")
        except requests.exceptions.Timeout as e:
            return (CURL_TIMEOUT, f"Operation timed out: {e}")
        except requests.exceptions.ConnectionError as e:
            return (CURL_FAILED_CONNECT, f"Failed to connect: {e}")
        except requests.exceptions.RequestException as e:
            return (CURL_GENERIC_ERROR, f"Request failed: {e}")

    return (0, format_transcript(response))
