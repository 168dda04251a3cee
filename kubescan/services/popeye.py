"""Parse Popeye JSON reports into IssueSpecs.

A report is a list of sanitizer sections, one per resource type:

    {"popeye": {"sanitizers": [
        {"sanitizer": "daemonsets", "gvr": "apps/v1/daemonsets",
         "issues": {"kube-system/aws-node": [{"level": 2, "message": "[POP-106] ..."}]}}
    ]}}

Every message carries its code as a "[POP-<n>]" prefix. Issues are merged by
code across the whole report, so each code yields exactly one IssueSpec.
"""

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from kubescan.core.errors import ReportParseError
from kubescan.schemas.issues import IssueSpec
from kubescan.services.popeye_codes import (
    DOC_URLS,
    GENERIC_MESSAGES,
    category_for_code,
    severity_for_level,
)

logger = logging.getLogger(__name__)

PLUGIN_NAME = "popeye"

_MESSAGE_PATTERN = re.compile(r"^\[(POP-\d+)\]\s*(.*)$", re.DOTALL)


class PopeyeIssue(BaseModel):
    model_config = {"extra": "ignore"}

    group: str = ""
    gvr: str = ""
    level: int | None = None
    message: str


class Sanitizer(BaseModel):
    model_config = {"extra": "ignore"}

    sanitizer: str = ""
    gvr: str = ""
    issues: dict[str, list[PopeyeIssue]] | None = None


class PopeyeReport(BaseModel):
    model_config = {"extra": "ignore"}

    score: int | None = None
    grade: str | None = None
    sanitizers: list[Sanitizer] | None = None


class Report(BaseModel):
    popeye: PopeyeReport = Field(...)


def split_code_and_message(raw_message: str) -> tuple[str, str]:
    """
    Return (lowercased code, description) for a "[POP-<n>] text" message.

    When the code has a generic description it replaces the original text,
    which often embeds names or quantities of the scanned resources.
    """
    match = _MESSAGE_PATTERN.match(raw_message or "")
    if match is None:
        raise ReportParseError(f"Unable to split Popeye issue code from message {raw_message!r}")
    code, text = match.group(1), match.group(2)
    return code.lower(), GENERIC_MESSAGES.get(code, text)


def _load(data: bytes) -> Report:
    if not data or not data.strip():
        raise ReportParseError("Empty Popeye report")
    try:
        payload: Any = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ReportParseError(f"Invalid Popeye report: {e!s}") from e
    try:
        return Report.model_validate(payload)
    except ValidationError as e:
        raise ReportParseError(f"Unexpected Popeye report structure: {e.error_count()} error(s)") from e


def parse(data: bytes) -> list[IssueSpec]:
    """
    Transform a Popeye report into IssueSpecs, one per issue code.

    Any message without a "[POP-<n>]" prefix fails the whole report; no
    partial list is ever returned.
    """
    report = _load(data)
    by_code: dict[str, IssueSpec] = {}
    for san in report.popeye.sanitizers or []:
        for resource_name, issues in (san.issues or {}).items():
            for issue in issues:
                try:
                    code, message = split_code_and_message(issue.message)
                except ReportParseError as e:
                    raise ReportParseError(
                        f"Unable to parse Popeye issue on <{resource_name}>: {e.message}"
                    ) from e
                resource_type = san.gvr or issue.gvr
                existing = by_code.get(code)
                if existing is not None:
                    existing.add_resource(resource_type, resource_name)
                    continue
                upper = code.upper()
                spec = IssueSpec(
                    id=code,
                    message=message,
                    severity=severity_for_level(issue.level),
                    category=category_for_code(upper) or san.sanitizer,
                    url=DOC_URLS.get(upper, ""),
                )
                spec.add_resource(resource_type, resource_name)
                by_code[code] = spec

    logger.debug("Popeye report parsed: %d issue codes", len(by_code))
    return list(by_code.values())
