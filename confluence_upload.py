"""Attachment upload plan and outcome classification."""

import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from confluence_api import attach_url

SVG_COMMENT = "Inkscape"
CONFIRM_FIELD = ("confirm", "Attach Files(s)")

# curl -v prints response headers as "< Name: value"; Confluence answers an
# unauthenticated upload with a redirect to its login page.
LOGIN_REDIRECT_MARKER = r"< Location:.*login\.action;jsessionid="
NOT_AUTHENTICATED_EXIT = 26


@dataclass(frozen=True)
class UploadTarget:
    base_url: str
    page_id: int

    def __post_init__(self):
        if not isinstance(self.page_id, int) or self.page_id <= 0:
            raise ValueError(f"Page ID should be a positive integer, got {self.page_id!r}")


@dataclass(frozen=True)
class AttachmentFile:
    path: str
    exists: bool

    @classmethod
    def probe(cls, path: str) -> "AttachmentFile":
        return cls(path, os.path.isfile(path))

    @property
    def is_svg(self) -> bool:
        return os.path.splitext(self.path)[1] == ".svg"


@dataclass(frozen=True)
class FormField:
    """One multipart field; ``is_file`` means ``value`` is a local path."""

    name: str
    value: str
    is_file: bool = False


@dataclass(frozen=True)
class UploadPlan:
    fields: Tuple[FormField, ...]
    url: str

    @property
    def files(self) -> List[str]:
        return [f.value for f in self.fields if f.is_file]


class Outcome(Enum):
    SUCCESS = "success"
    TRANSPORT_FAILURE = "transport failure"
    AUTH_FAILURE = "not authenticated"


@dataclass(frozen=True)
class UploadResult:
    exit_status: int
    response_body: str
    outcome: Outcome

    @property
    def exit_code(self) -> int:
        if self.outcome is Outcome.TRANSPORT_FAILURE:
            return self.exit_status
        if self.outcome is Outcome.AUTH_FAILURE:
            return NOT_AUTHENTICATED_EXIT
        return 0


def build_upload_plan(target: UploadTarget, candidates: List[str]) -> UploadPlan:
    """Build the multipart fields for the files that exist.

    Missing files are skipped. Included files are numbered from 0 in input
    order; SVG files also get a ``comment_<n>`` field.

    Args:
        target: Upload destination
        candidates: Local file paths, duplicates allowed

    Returns:
        UploadPlan ending with the confirmation field
    """
    fields = []
    count = 0
    for attachment in (AttachmentFile.probe(path) for path in candidates):
        if not attachment.exists:
            continue
        fields.append(FormField(f"file_{count}", attachment.path, is_file=True))
        if attachment.is_svg:
            fields.append(FormField(f"comment_{count}", SVG_COMMENT))
        count += 1

    fields.append(FormField(*CONFIRM_FIELD))
    return UploadPlan(tuple(fields), attach_url(target.base_url, target.page_id))


def classify_outcome(exit_status: int, response_body: str, login_marker: Optional[str] = None) -> UploadResult:
    """Decide what happened to an upload.

    A non-zero exit status wins over anything in the body, since a failed
    transfer may not produce a readable response at all.
    """
    marker = login_marker if login_marker is not None else LOGIN_REDIRECT_MARKER
    if exit_status != 0:
        outcome = Outcome.TRANSPORT_FAILURE
    elif re.search(marker, response_body):
        outcome = Outcome.AUTH_FAILURE
    else:
        outcome = Outcome.SUCCESS
    return UploadResult(exit_status, response_body, outcome)
