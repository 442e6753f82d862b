"""
Trigger authorization.

A refresh cycle is legitimate when either:
- `Authorization: Bearer <CRON_SECRET>` matches the configured cron secret, or
- `x-api-key: <API_SECRET_KEY>` matches the configured API key.

An unset credential never matches. Rejection is a boolean, not an exception;
the orchestrator short-circuits with an unauthorized result.
"""

import hmac
from typing import Mapping, Optional


def _safe_equals(supplied: Optional[str], expected: Optional[str]) -> bool:
    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode('utf-8'), expected.encode('utf-8'))


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    # Starlette headers are case-insensitive already; plain dicts are not
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


class RequestAuthorizer:
    """Validates trigger headers against the configured secrets."""

    def __init__(self, cron_secret: Optional[str] = None, api_key: Optional[str] = None):
        self._cron_secret = cron_secret
        self._api_key = api_key

    def authorize(self, headers: Mapping[str, str]) -> bool:
        """Return True when the bearer token or the x-api-key header matches."""
        auth_header = _header(headers, 'authorization') or ''
        if auth_header.startswith('Bearer '):
            if _safe_equals(auth_header[len('Bearer '):], self._cron_secret):
                return True

        return _safe_equals(_header(headers, 'x-api-key'), self._api_key)
