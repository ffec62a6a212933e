#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import platform
from collections import Counter, OrderedDict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from functools import cached_property
from typing import Any
from urllib.parse import urlparse, urlunparse

DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

PRESIGNED_EXPIRES_FIELD = "presigned-expires"
CONTENT_SHA256_FIELD = "X-Owlhub-Content-Sha256"


class Field:
    """A name-value pair representing a single header in an HTTP request or response.

    All field names are case insensitive and case-variance must be treated as
    equivalent. Names are preserved as supplied for accuracy during transmission and
    signing.
    """

    def __init__(self, *, name: str, values: Iterable[str] | None = None):
        self.name = name
        self.values: list[str] = list(values) if values is not None else []

    def add(self, value: str) -> None:
        """Append a value to a field."""
        self.values.append(value)

    def set(self, values: list[str]) -> None:
        """Overwrite existing field values."""
        self.values = values

    def as_string(self, delimiter: str = ",") -> str:
        """Get delimited string of all values.

        If the ``Field`` has zero values, the empty string is returned. If the ``Field``
        has exactly one value, the value is returned unmodified. Values of multi-valued
        fields that contain commas or double quotes are quoted and escaped.
        """
        value_count = len(self.values)
        if value_count == 0:
            return ""
        if value_count == 1:
            return self.values[0]
        return delimiter.join(quote_and_escape_field_value(val) for val in self.values)

    def as_tuples(self) -> list[tuple[str, str]]:
        """Get list of ``name``, ``value`` tuples where each tuple represents one
        value."""
        return [(self.name, val) for val in self.values]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return False
        return self.name == other.name and self.values == other.values

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, value={self.values!r})"


class Fields:
    def __init__(self, initial: Iterable[Field] | None = None):
        """Collection of header entries mapped by case-insensitive name.

        :param initial: Initial list of ``Field`` objects. ``Field``s can also be added
        and later removed.
        """
        init_fields = list(initial) if initial is not None else []
        init_field_names = [self._normalize_field_name(fld.name) for fld in init_fields]
        fname_counter = Counter(init_field_names)
        non_unique_names = [name for name, num in fname_counter.items() if num > 1]
        if non_unique_names:
            raise ValueError(
                "Field names of the initial list of fields must be unique. The "
                "following normalized field names appear more than once: "
                f"{', '.join(non_unique_names)}."
            )
        self.entries: OrderedDict[str, Field] = OrderedDict(
            zip(init_field_names, init_fields)
        )

    def set_field(self, field: Field) -> None:
        """Alias for __setitem__ to utilize the field.name for the entry key."""
        self.__setitem__(field.name, field)

    def __setitem__(self, name: str, field: Field) -> None:
        """Set or override entry for a Field name."""
        normalized_name = self._normalize_field_name(name)
        normalized_field_name = self._normalize_field_name(field.name)
        if normalized_name != normalized_field_name:
            raise ValueError(
                f"Supplied key {name} does not match Field.name "
                f"provided: {normalized_field_name}"
            )
        # Replacing an entry drops the old spelling of the name.
        self.entries.pop(normalized_name, None)
        self.entries[normalized_name] = field

    def get(self, key: str, default: Field | None = None) -> Field | None:
        return self[key] if key in self else default

    def get_value(self, key: str, default: str | None = None) -> str | None:
        """Get the single-line string value of a field, or ``default``."""
        field = self.get(key)
        return field.as_string() if field is not None else default

    def remove_field(self, name: str) -> None:
        """Remove an entry if present."""
        self.entries.pop(self._normalize_field_name(name), None)

    def __getitem__(self, name: str) -> Field:
        """Retrieve Field entry."""
        normalized_name = self._normalize_field_name(name)
        return self.entries[normalized_name]

    def __delitem__(self, name: str) -> None:
        """Delete entry from collection."""
        normalized_name = self._normalize_field_name(name)
        del self.entries[normalized_name]

    def _normalize_field_name(self, name: str) -> str:
        """Normalize field names.

        For use as key in ``entries``.
        """
        return name.lower()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fields):
            return False
        return self.entries == other.entries

    def __iter__(self) -> Iterator[Field]:
        yield from self.entries.values()

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"Fields({self.entries})"

    def __contains__(self, key: str) -> bool:
        return self._normalize_field_name(key) in self.entries


def tuples_to_fields(tuples: Iterable[tuple[str, str]]) -> Fields:
    """Build a ``Fields`` object from a list of ``(name, value)`` tuples."""
    fields = Fields()
    for name, value in tuples:
        if name in fields:
            fields[name].add(value)
        else:
            fields.set_field(Field(name=name, values=[value]))
    return fields


@dataclass(kw_only=True, frozen=True)
class URI:
    """Universal Resource Identifier of the endpoint a request targets."""

    scheme: str = "https"
    """For example ``http`` or ``https``."""

    host: str
    """The hostname, for example ``sts.owlhub.io``."""

    port: int | None = None
    """An explicit port number."""

    path: str | None = None
    """Path component of the URI."""

    query: str | None = None
    """Query component of the URI as string."""

    @property
    def netloc(self) -> str:
        """Construct netloc string in format ``{host}:{port}``.

        Default ports for the scheme are omitted.
        """
        return self._netloc

    # cached_property does NOT behave like property, it actually allows for setting.
    # Therefore we need a layer of indirection.
    @cached_property
    def _netloc(self) -> str:
        if self.port is not None and DEFAULT_PORTS.get(self.scheme) != self.port:
            return f"{self.host}:{self.port}"
        return self.host

    def build(self) -> str:
        """Construct URI string representation.

        Returns a string of the form ``{scheme}://{host}:{port}{path}?{query}``
        """
        components = (
            self.scheme,
            self.netloc,
            self.path or "",
            "",  # params
            self.query or "",
            "",  # fragment
        )
        return urlunparse(components)

    @classmethod
    def parse(cls, value: str) -> URI:
        """Parse an endpoint string, defaulting to ``https`` when no scheme is given."""
        if "://" not in value:
            value = f"https://{value}"
        parsed = urlparse(value)
        if not parsed.hostname:
            raise ValueError(f"Unable to parse hostname from provided URI: {value}")
        return cls(
            scheme=parsed.scheme,
            host=parsed.hostname,
            port=parsed.port,
            path=parsed.path or None,
            query=parsed.query or None,
        )


def _default_user_agent() -> str:
    from . import __version__

    return (
        f"owlhub-sdk-python/{__version__} "
        f"python/{platform.python_version()} {platform.system().lower()}"
    )


class HTTPRequest:
    """The mutable request context shared by every phase of one operation call.

    ``path`` carries the query string, if any, so that signers see exactly what is sent.
    """

    def __init__(
        self,
        *,
        endpoint: URI,
        region: str | None = None,
        method: str = "POST",
        path: str | None = None,
        fields: Fields | None = None,
        params: dict[str, Any] | None = None,
        body: str | bytes = "",
    ):
        self.endpoint = endpoint
        self.region = region
        self.method = method
        self.path = path or endpoint.path or "/"
        self.fields = fields if fields is not None else Fields()
        self.params: dict[str, Any] = params if params is not None else {}
        self.body: str | bytes = body
        if "User-Agent" not in self.fields:
            self.fields.set_field(
                Field(name="User-Agent", values=[_default_user_agent()])
            )

    def pathname(self) -> str:
        """The path without its query string."""
        return self.path.split("?", 1)[0]

    def search(self) -> str:
        """The query string of the path, without the leading ``?``."""
        _, _, query = self.path.partition("?")
        return query

    def update_endpoint(self, endpoint: str | URI) -> None:
        """Point the request at a new endpoint, keeping the current path."""
        if isinstance(endpoint, str):
            endpoint = URI.parse(endpoint)
        self.endpoint = replace(endpoint, path=None, query=None)
        if "Host" in self.fields:
            self.fields.set_field(Field(name="Host", values=[self.endpoint.netloc]))

    @property
    def is_presigned(self) -> bool:
        """Whether the request is being built into a presigned URL."""
        return PRESIGNED_EXPIRES_FIELD in self.fields

    def body_bytes(self) -> bytes:
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode("utf-8")

    def url(self) -> str:
        """The absolute URL the request is sent to."""
        return f"{self.endpoint.scheme}://{self.endpoint.netloc}{self.path}"

    def __repr__(self) -> str:
        return (
            f"HTTPRequest(method={self.method!r}, url={self.url()!r}, "
            f"fields={self.fields!r})"
        )


class HTTPResponse:
    """A response received from the transport."""

    def __init__(
        self,
        *,
        status_code: int,
        fields: Fields | None = None,
        body: bytes = b"",
        reason: str | None = None,
    ):
        self.status_code = status_code
        self.fields = fields if fields is not None else Fields()
        self.body = body
        self.reason = reason

    def __repr__(self) -> str:
        return (
            f"HTTPResponse(status_code={self.status_code!r}, fields={self.fields!r}, "
            f"reason={self.reason!r})"
        )


def quote_and_escape_field_value(value: str) -> str:
    """Escapes and quotes a single :class:`Field` value if necessary.

    See :func:`Field.as_string` for quoting and escaping logic.
    """
    chars_to_quote = (",", '"')
    if any(char in chars_to_quote for char in value):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    else:
        return value


__all__ = (
    "Field",
    "Fields",
    "HTTPRequest",
    "HTTPResponse",
    "URI",
    "tuples_to_fields",
)
