"""Run the attachment upload through curl or requests."""

import re
import shlex
import subprocess

import confluence_api
from confluence_upload import Outcome, UploadResult, classify_outcome

CURL = "curl"
REQUESTS = "requests"
TRANSPORTS = (CURL, REQUESTS)
SIGNAL_EXIT_BASE = 128


class MissingDependency(Exception):
    pass


def curl_version():
    """Return curl's version as (major, minor, patch), or None if curl is missing."""
    try:
        result = subprocess.run(
            [CURL, "--version"], stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True, check=False
        )
    except OSError:
        return None
    match = re.match(r"^curl (\d+)\.(\d+)\.(\d+)", result.stdout.strip())
    if not match:
        return None
    return tuple(int(part) for part in match.groups())


def require_curl():
    if curl_version() is None:
        raise MissingDependency("This program relies on the 'curl' program which is not installed. Aborting.")


def curl_form_value(field):
    """Value for curl's -F option.

    File names holding ; , or " are quoted, otherwise curl would read them
    as type/filename modifiers.
    """
    if not field.is_file:
        return f"{field.name}={field.value}"
    path = field.value
    if any(ch in path for ch in ';,"'):
        path = '"' + path.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return f"{field.name}=@{path}"


def curl_command(plan, cookie_jar):
    """Argument list for the curl upload, one token per argument."""
    cmd = [CURL, "-v", "--insecure"]
    if cookie_jar.header_value():
        cmd += ["--cookie", cookie_jar.header_value()]
    for field in plan.fields:
        cmd += ["-F", curl_form_value(field)]
    cmd.append(plan.url)
    return cmd


def describe_upload(plan, cookie_jar, transport=CURL):
    """Human readable form of what the upload would run."""
    if transport == CURL:
        return shlex.join(curl_command(plan, cookie_jar))
    parts = [f"{f.name}=@{f.value}" if f.is_file else f"{f.name}={f.value}" for f in plan.fields]
    return " ".join(["POST", shlex.quote(plan.url)] + [shlex.quote(p) for p in parts])


def run_curl(cmd):
    """Run curl, returning (exit_status, combined stdout and stderr)."""
    try:
        result = subprocess.run(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, errors="replace", check=False
        )
    except FileNotFoundError as e:
        raise MissingDependency(f"Cannot run curl: {e}") from e
    if result.returncode < 0:
        # killed by a signal; report it the way a shell would
        return (SIGNAL_EXIT_BASE - result.returncode, result.stdout)
    return (result.returncode, result.stdout)


def execute_upload(plan, cookie_jar, verbose=False, noop=False, transport=CURL, login_marker=None):
    """Upload the planned attachments and classify what came back.

    Args:
        plan: confluence_upload.UploadPlan
        cookie_jar: confluence_cookies.CookieJar
        verbose: Echo the full transfer transcript
        noop: Only print what would run
        transport: "curl" or "requests"
        login_marker: Regex overriding the login redirect marker

    Returns:
        confluence_upload.UploadResult
    """
    print(describe_upload(plan, cookie_jar, transport))
    if noop:
        print("No-op mode")
        return UploadResult(0, "", Outcome.SUCCESS)

    if transport == CURL:
        exit_status, output = run_curl(curl_command(plan, cookie_jar))
    else:
        exit_status, output = confluence_api.post_attachments(plan, cookie_jar)

    if verbose:
        print(output)
    return classify_outcome(exit_status, output, login_marker)
