"""
Scan error taxonomy.

Every failure the scan pipeline surfaces to its caller is a ScanError subclass
carrying an HTTP status and a stable machine-readable code, so clients can tell
"this site disallows scanning" from "upgrade your plan" from "try again later".
"""

from __future__ import annotations

from typing import Any


class ScanError(Exception):
    """Base class for all typed scan errors."""

    status_code: int = 500
    code: str = "scan_error"
    default_message: str = "Scan failed"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


# ── Input ────────────────────────────────────

class InvalidURL(ScanError):
    status_code = 400
    code = "invalid_url"
    default_message = "Invalid URL"


class MissingTarget(ScanError):
    status_code = 400
    code = "missing_target"
    default_message = "Exactly one of 'site_id' or 'url' must be provided"


# ── Authorization ────────────────────────────

class NotAuthenticated(ScanError):
    status_code = 401
    code = "not_authenticated"
    default_message = "Missing or invalid API key"


class Forbidden(ScanError):
    status_code = 403
    code = "forbidden"
    default_message = "Site is not owned by this account"


class SiteNotFound(ScanError):
    status_code = 404
    code = "site_not_found"
    default_message = "Site not found"


class ScanNotFound(ScanError):
    status_code = 404
    code = "scan_not_found"
    default_message = "Scan not found"


# ── Quota / rate ─────────────────────────────

class QuotaExceeded(ScanError):
    status_code = 402
    code = "quota_exceeded"
    default_message = "Usage limit reached for your plan"


class RateLimited(ScanError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many scan requests, slow down"


# ── Policy ───────────────────────────────────

class RobotsBlocked(ScanError):
    """The target's robots.txt disallows the path. Not retryable."""

    status_code = 422
    code = "robots_blocked"
    default_message = "This site disallows automated scanning of the requested path"


# ── Transport ────────────────────────────────

class FetchFailed(ScanError):
    """Page fetch failed (connection, DNS, timeout, error status). Caller may retry."""

    status_code = 502
    code = "fetch_failed"
    default_message = "Failed to fetch webpage"
