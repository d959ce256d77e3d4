# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 Problem Details for the dashboard API.

Maps serprank exceptions to structured problem detail objects.  The
module is a near-leaf dependency (stdlib + errors.py + starlette lazy) so
it can be imported safely from any layer.

Key public API:

- ``ProblemType``   — error taxonomy.
- ``ProblemDetail`` — frozen dataclass (→ JSON dict / Starlette response / CLI text).
- ``sanitize_detail()`` — scrub filesystem paths from error messages.
- ``from_exception`` / ``from_validation`` / ``from_not_found`` — factories.

Type URI namespace: ``https://www.retio.ai/serprank/errors/{slug}``
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# ── Constants ────────────────────────────────────────────────────────

_ERROR_BASE = "https://www.retio.ai/serprank/errors"

MAX_DETAIL_LENGTH = 200

# ── ProblemType taxonomy ─────────────────────────────────────────────


class ProblemType(StrEnum):
    CHECK_RUNNING = "check-running"
    VALIDATION_ERROR = "validation-error"
    NOT_FOUND = "not-found"
    TERM_SOURCE_INVALID = "term-source-invalid"
    BROWSER_UNAVAILABLE = "browser-unavailable"

    @property
    def uri(self) -> str:
        """Full type URI for RFC 9457 ``type`` field."""
        return f"{_ERROR_BASE}/{self.value}"


# ── Per-type metadata: (status, title) ───────────────────────────────

_TYPE_METADATA: dict[ProblemType, tuple[int, str]] = {
    ProblemType.CHECK_RUNNING: (409, "Check Already Running"),
    ProblemType.VALIDATION_ERROR: (422, "Validation Error"),
    ProblemType.NOT_FOUND: (404, "Not Found"),
    ProblemType.TERM_SOURCE_INVALID: (500, "Term Source Invalid"),
    ProblemType.BROWSER_UNAVAILABLE: (503, "Browser Unavailable"),
}

_CLI_HINTS: dict[str, str] = {
    ProblemType.TERM_SOURCE_INVALID.uri: "The term file must be a JSON array of strings, e.g. [\"office cleaning\"].",
    ProblemType.BROWSER_UNAVAILABLE.uri: "Ensure Chromium is installed: playwright install chromium",
}

_PATH_PATTERN = re.compile(
    r"(/(?:Users|home|tmp|var|etc|opt|root|srv|usr|Library|private|mnt|media)/[\w./-]+|[A-Z]:\\[\w.\\-]+)"
)


def sanitize_detail(text: str) -> str:
    """Replace absolute filesystem paths in *text*, then truncate to ``MAX_DETAIL_LENGTH``."""
    text = _PATH_PATTERN.sub("<path>", text)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[:MAX_DETAIL_LENGTH] + "..."
    return text


# ── ProblemDetail dataclass ──────────────────────────────────────────

# Standard RFC 9457 fields that extensions must never shadow.
_STANDARD_FIELDS = frozenset({"type", "title", "status", "detail", "instance"})


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 9457 Problem Detail object."""

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """RFC 9457 JSON dict.  Empty optional fields omitted, extensions merged at top level."""
        d: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.title:
            d["title"] = self.title
        if self.detail:
            d["detail"] = self.detail
        if self.instance:
            d["instance"] = self.instance
        for k, v in self.extensions.items():
            if k not in _STANDARD_FIELDS:
                d[k] = v
        return d

    def to_response(self):
        """Starlette ``JSONResponse`` with ``Content-Type: application/problem+json``."""
        from starlette.responses import JSONResponse

        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers={"Cache-Control": "no-store", "Content-Language": "en"},
        )

    def to_cli_text(self) -> str:
        """``Error: <detail>`` plus an optional ``Hint:`` line."""
        hint = _CLI_HINTS.get(self.type, "")
        lines = [f"Error: {self.detail}"]
        if hint:
            lines.append(f"Hint: {hint}")
        return "\n".join(lines)


def _build(problem_type: ProblemType, detail: str, *, instance: str = "", extensions=None) -> ProblemDetail:
    status, title = _TYPE_METADATA[problem_type]
    return ProblemDetail(
        type=problem_type.uri,
        title=title,
        status=status,
        detail=sanitize_detail(detail),
        instance=instance,
        extensions=dict(extensions) if extensions else {},
    )


# ── Factory functions ────────────────────────────────────────────────


def from_exception(exc: Exception, *, instance: str = "") -> ProblemDetail:
    """Build a ProblemDetail from an exception.

    Known serprank errors map to their ProblemType; anything else becomes
    a generic 500 ``about:blank`` with a sanitized message.
    """
    from .errors import BrowserError, CheckAlreadyRunningError, KeywordError, TermSourceError

    if isinstance(exc, CheckAlreadyRunningError):
        return _build(ProblemType.CHECK_RUNNING, str(exc), instance=instance)
    if isinstance(exc, KeywordError):
        problem_type = ProblemType.NOT_FOUND if exc.not_found else ProblemType.VALIDATION_ERROR
        return _build(problem_type, str(exc), instance=instance)
    if isinstance(exc, TermSourceError):
        return _build(ProblemType.TERM_SOURCE_INVALID, str(exc), instance=instance)
    if isinstance(exc, BrowserError):
        return _build(ProblemType.BROWSER_UNAVAILABLE, str(exc), instance=instance)

    return ProblemDetail(status=500, detail=sanitize_detail(str(exc)), instance=instance)


def from_validation(detail: str, *, field_name: str = "", instance: str = "") -> ProblemDetail:
    """Build a 422 ProblemDetail for request validation errors."""
    ext = {"field": field_name} if field_name else None
    return _build(ProblemType.VALIDATION_ERROR, detail, instance=instance, extensions=ext)


def from_not_found(detail: str, *, instance: str = "") -> ProblemDetail:
    """Build a 404 ProblemDetail."""
    return _build(ProblemType.NOT_FOUND, detail, instance=instance)
