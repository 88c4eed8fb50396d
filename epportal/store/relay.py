"""
Relay Transport
Every store call goes through the relay: one POST carrying
{path, method, body?, queryParams?} plus the caller's bearer credential.

The relay's access contract is checked here too, before anything is sent:
path shape, base/table allow-lists, permitted methods, and a per-caller
request budget. A request that breaks the contract never leaves the process.
"""

import logging
import re
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, Optional, Tuple

import requests

from epportal.errors import (
    AuthorizationError,
    ConfigurationError,
    RateLimitedError,
    RecordNotFoundError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ('GET', 'PATCH', 'POST')

_PATH_CHARS_RE = re.compile(r'^[a-zA-Z0-9_\- /]+$')
_BASE_ID_RE = re.compile(r'^app[a-zA-Z0-9]+$')
_TABLE_RE = re.compile(r'^(tbl[a-zA-Z0-9]+|[a-zA-Z0-9\s\-_]+)$')


# =============================================================================
# ACCESS CONTRACT
# =============================================================================

class RelayPolicy:
    """Path, allow-list and method rules the relay enforces."""

    def __init__(self, allowed_bases: Iterable[str] = (), allowed_tables: Iterable[str] = ()):
        self.allowed_bases = tuple(allowed_bases)
        self.allowed_tables = tuple(allowed_tables)

    @staticmethod
    def sanitize_path(path: Any) -> str:
        """Return the trimmed path, or raise ValidationError('Invalid path')."""
        if not path or not isinstance(path, str):
            raise ValidationError("Invalid path", field='path')
        if '..' in path or '//' in path or not _PATH_CHARS_RE.match(path):
            raise ValidationError("Invalid path", field='path')
        return path.strip().strip('/')

    @staticmethod
    def split_path(path: str) -> Tuple[Optional[str], str, Optional[str]]:
        """Split "[baseId/]table[/recordId]" into (base_id, table, record_id)."""
        parts = [p for p in path.split('/') if p]
        base_id = None
        if len(parts) > 1 and parts[0].startswith('app'):
            base_id, parts = parts[0], parts[1:]
        table = parts[0] if parts else ''
        record_id = '/'.join(parts[1:]) or None
        return base_id, table, record_id

    def check_base(self, base_id: str) -> None:
        if not _BASE_ID_RE.match(base_id):
            raise ValidationError(f"Invalid base id {base_id!r}", field='base_id')
        if self.allowed_bases and base_id not in self.allowed_bases:
            raise ValidationError(f"Base {base_id!r} is not allowed", field='base_id')

    def check_table(self, table: str) -> None:
        if not table or not _TABLE_RE.match(table):
            raise ValidationError(f"Invalid table {table!r}", field='table')
        if self.allowed_tables and table not in self.allowed_tables:
            raise ValidationError(f"Table {table!r} is not allowed", field='table')

    def check(self, path: Any, method: str) -> str:
        """Validate a request against the contract. Returns the sanitized path."""
        if method not in ALLOWED_METHODS:
            raise ValidationError(f"Method {method} not allowed", field='method')
        clean = self.sanitize_path(path)
        base_id, table, record_id = self.split_path(clean)
        if base_id:
            self.check_base(base_id)
        self.check_table(table)
        if method == 'POST' and record_id:
            raise ValidationError("Invalid path for POST request", field='path')
        return clean


class RateLimiter:
    """
    Rolling-window request budget per caller key.
    allow() records the request and returns False once the window is full.
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str = 'default') -> bool:
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True


# =============================================================================
# TRANSPORT
# =============================================================================

class RelayTransport:
    """
    HTTP client for the relay.

    Maps the relay's answers onto the portal's error types: 401/403 become
    AuthorizationError, 404 RecordNotFoundError, 429 RateLimitedError, any
    other non-2xx UpstreamError with the status and body preserved.
    """

    def __init__(
        self,
        relay_url: str,
        id_token: str,
        timeout: float = 30.0,
        policy: Optional[RelayPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        self._relay_url = (relay_url or '').rstrip('/')
        self._id_token = id_token
        self._timeout = timeout
        self._policy = policy or RelayPolicy()
        self._rate_limiter = rate_limiter
        self._session = session or requests.Session()

    def request(
        self,
        path: str,
        method: str = 'GET',
        body: Optional[Dict[str, Any]] = None,
        query_params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send one request through the relay and return the store's JSON body."""
        if not self._relay_url:
            raise ConfigurationError('RELAY_URL')
        if not self._id_token:
            raise AuthorizationError("Unauthorized: missing authentication token")

        clean_path = self._policy.check(path, method)

        if self._rate_limiter and not self._rate_limiter.allow():
            logger.warning(f"Rate limit reached locally, refusing {method} {clean_path}")
            raise RateLimitedError()

        envelope: Dict[str, Any] = {'path': clean_path, 'method': method}
        if body is not None and method in ('PATCH', 'POST'):
            envelope['body'] = body
        if query_params:
            envelope['queryParams'] = query_params

        headers = {
            'Authorization': f'Bearer {self._id_token}',
            'Content-Type': 'application/json',
        }

        try:
            logger.debug(f"Relay {method} {clean_path} params={query_params}")
            response = self._session.post(
                self._relay_url, json=envelope, headers=headers, timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Relay request failed: {method} {clean_path}: {e}")
            raise UpstreamError(None, str(e), message=f"Failed to reach the relay: {e}")

        payload = _parse_body(response)
        status = response.status_code
        if 200 <= status < 300:
            return payload

        logger.error(f"Relay answered {status} for {method} {clean_path}: {payload}")
        if status in (401, 403):
            raise AuthorizationError(_error_message(payload) or "Unauthorized")
        if status == 404:
            raise RecordNotFoundError(payload)
        if status == 429:
            raise RateLimitedError(payload)
        raise UpstreamError(status, payload)


def _parse_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        error = payload.get('error')
        if isinstance(error, dict):
            return error.get('message') or error.get('type')
        return error
    return None
