"""Freshness checks, HTTP conditional-request helpers and cache key utilities."""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, TypeVar

from plugincache.types import CacheValidator, ConditionalFetchResult

T = TypeVar("T")

# =========================================================================
# Timestamps and TTL windows
# =========================================================================


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as an ISO 8601 string in UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp.

    Accepts a trailing ``Z`` and treats naive timestamps as UTC.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))

    # Handle timezone-naive datetimes
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed


def is_expired(expires_at: str, now: Optional[datetime] = None) -> bool:
    """Check if an entry is past its TTL.

    Args:
        expires_at: ISO format expiry timestamp
        now: Reference time (defaults to the current time)

    Returns:
        True once ``now`` is strictly after ``expires_at``
    """
    now = now or utcnow()
    return now > parse_timestamp(expires_at)


def is_fully_expired(
    expires_at: str, stale_while_revalidate: float, now: Optional[datetime] = None
) -> bool:
    """Check if an entry is past its TTL and past the stale-while-revalidate window.

    Args:
        expires_at: ISO format expiry timestamp
        stale_while_revalidate: Grace period after expiry in seconds
        now: Reference time (defaults to the current time)
    """
    now = now or utcnow()
    swr_expires_at = parse_timestamp(expires_at) + timedelta(
        seconds=stale_while_revalidate
    )
    return now > swr_expires_at


# =========================================================================
# Conditional requests
# =========================================================================


def build_conditional_headers(validator: Optional[CacheValidator]) -> Dict[str, str]:
    """Build headers for a conditional HTTP request.

    Sending these lets the server answer ``304 Not Modified``.

    Examples:
        >>> build_conditional_headers(CacheValidator(etag='"abc"'))
        {'If-None-Match': '"abc"'}
    """
    headers: Dict[str, str] = {}
    if not validator:
        return headers

    if validator.etag:
        headers["If-None-Match"] = validator.etag
    if validator.last_modified:
        headers["If-Modified-Since"] = validator.last_modified

    return headers


def extract_validator(headers: Mapping[str, Any]) -> CacheValidator:
    """Extract ETag and Last-Modified from response headers.

    Header names are matched case-insensitively, so plain dicts as well as
    case-insensitive header containers work.
    """
    etag = None
    last_modified = None
    for name, value in headers.items():
        lowered = name.lower()
        if lowered == "etag" and value:
            etag = str(value)
        elif lowered == "last-modified" and value:
            last_modified = str(value)

    return CacheValidator(etag=etag, last_modified=last_modified)


def is_not_modified(status: int) -> bool:
    """Check if a response status is 304 Not Modified."""
    return status == 304


def conditional_fetch(
    validator: Optional[CacheValidator],
    fetcher: Callable[[Dict[str, str]], Tuple[int, T, Mapping[str, Any]]],
    cached_data: Optional[T],
) -> ConditionalFetchResult[T]:
    """Perform a conditional fetch around previously cached data.

    Args:
        validator: Stored validator for the cached data, if any
        fetcher: Called with the conditional headers; returns
            ``(status, data, response_headers)``
        cached_data: Data to return on ``304 Not Modified``

    Returns:
        The cached data when the server reports it unchanged, otherwise the
        fresh data together with the validator from the new response
    """
    status, data, response_headers = fetcher(build_conditional_headers(validator))

    if is_not_modified(status) and cached_data is not None:
        return ConditionalFetchResult(
            data=cached_data,
            not_modified=True,
            validator=validator or CacheValidator(),
        )

    return ConditionalFetchResult(
        data=data,
        not_modified=False,
        validator=extract_validator(response_headers),
    )


async def conditional_fetch_async(
    validator: Optional[CacheValidator],
    fetcher: Callable[[Dict[str, str]], Awaitable[Tuple[int, T, Mapping[str, Any]]]],
    cached_data: Optional[T],
) -> ConditionalFetchResult[T]:
    """Async variant of ``conditional_fetch`` for coroutine fetchers."""
    status, data, response_headers = await fetcher(
        build_conditional_headers(validator)
    )

    if is_not_modified(status) and cached_data is not None:
        return ConditionalFetchResult(
            data=cached_data,
            not_modified=True,
            validator=validator or CacheValidator(),
        )

    return ConditionalFetchResult(
        data=data,
        not_modified=False,
        validator=extract_validator(response_headers),
    )


# =========================================================================
# Cache keys
# =========================================================================


def _format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def create_cache_key(base_key: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Create a cache key from a base and optional parameters.

    Parameters are sorted by name and ``None`` values are dropped so that the
    same request always yields the same key.

    Examples:
        >>> create_cache_key("orders", {"status": "open", "limit": 10})
        'orders?limit=10&status=open'
    """
    if not params:
        return base_key

    query = "&".join(
        f"{name}={_format_param(value)}"
        for name, value in sorted(params.items())
        if value is not None
    )
    return f"{base_key}?{query}" if query else base_key


def parse_cache_key(key: str) -> Tuple[str, Dict[str, str]]:
    """Split a cache key back into its base and parameters.

    Examples:
        >>> parse_cache_key("orders?limit=10&status=open")
        ('orders', {'limit': '10', 'status': 'open'})
    """
    base, _, query = key.partition("?")
    params: Dict[str, str] = {}
    if query:
        for pair in query.split("&"):
            name, sep, value = pair.partition("=")
            if name and sep:
                params[name] = value
    return base, params
