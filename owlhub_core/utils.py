#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import base64
import hashlib
import hmac
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import Any
from urllib.parse import quote, unquote

# Characters left unescaped by RFC 3986.
_UNRESERVED = "-_.~"


def uri_escape(value: str) -> str:
    """Percent-encode everything except RFC 3986 unreserved characters."""
    return quote(value, safe=_UNRESERVED)


def uri_escape_path(path: str) -> str:
    """Percent-encode each segment of a path, preserving the ``/`` separators."""
    return "/".join(uri_escape(segment) for segment in path.split("/"))


def query_params_to_string(params: Mapping[str, Any]) -> str:
    """Serialize a mapping into a query string sorted by key.

    List values are emitted once per element in sorted order. A value of ``None`` emits
    the bare key.
    """
    items: list[str] = []
    for name in sorted(params):
        value = params[name]
        escaped_name = uri_escape(name)
        if value is None:
            items.append(escaped_name)
        elif isinstance(value, list | tuple):
            values = sorted(uri_escape(_stringify(v)) for v in value)
            items.extend(f"{escaped_name}={v}" for v in values)
        else:
            items.append(f"{escaped_name}={uri_escape(_stringify(value))}")
    return "&".join(items)


def query_string_parse(query: str) -> dict[str, str | list[str]]:
    """Parse a query string, collecting repeated keys into lists."""
    params: dict[str, str | list[str]] = {}
    if not query:
        return params
    for pair in query.split("&"):
        if not pair:
            continue
        name, _, value = pair.partition("=")
        name = unquote(name)
        value = unquote(value)
        existing = params.get(name)
        if existing is None:
            params[name] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            params[name] = [existing, value]
    return params


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def iso8601(date: datetime) -> str:
    """Format a datetime as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    return date.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def rfc822(date: datetime) -> str:
    """Format a datetime as an RFC 822 date, e.g. ``Sun, 10 May 2020 12:00:00 GMT``."""
    return format_datetime(date.astimezone(UTC), usegmt=True)


def parse_timestamp(value: datetime | str | int | float) -> datetime:
    """Parse a timestamp into a timezone-aware UTC datetime.

    Strings are read as ISO 8601, numbers as seconds since the epoch. Naive values are
    assumed to be in UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def hmac_digest(key: str | bytes, msg: str | bytes) -> bytes:
    if isinstance(key, str):
        key = key.encode("utf-8")
    if isinstance(msg, str):
        msg = msg.encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).digest()


def hmac_base64(key: str | bytes, msg: str | bytes) -> str:
    """HMAC-SHA256 of ``msg`` keyed by ``key``, base64 encoded."""
    return base64.b64encode(hmac_digest(key, msg)).decode("ascii")


def sha256_digest(data: str | bytes) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).digest()


def sha256_hex(data: str | bytes) -> str:
    return sha256_digest(data).hex()
