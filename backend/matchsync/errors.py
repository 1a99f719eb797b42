"""
backend/matchsync/errors.py

Purpose:
    Error taxonomy shared by the provider client, discovery, sync, listener and
    invalidation gateway. Route-level mapping to HTTP status codes lives in
    matchsync.main.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A required secret or credential is missing. Raised before any network call."""


class UpstreamFetchError(RuntimeError):
    """Provider call failed: timeout, non-2xx status or malformed body."""

    def __init__(self, message: str, *, status_code: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class AuthorizationError(PermissionError):
    """Shared secret did not match. The request is rejected without side effects."""


class ReconciliationError(RuntimeError):
    """Creating or updating one CMS match record failed."""

    def __init__(self, message: str, *, external_match_id: str | None = None):
        super().__init__(message)
        self.external_match_id = external_match_id
