#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .._http import HTTPRequest, HTTPResponse


@runtime_checkable
class CredentialsProvider(Protocol):
    """A source of credentials that can be checked and refreshed.

    Every provider refreshes through the same single-flight contract: concurrent callers
    of :py:meth:`get` share one underlying :py:meth:`load`.
    """

    access_key_id: str | None
    secret_access_key: str | None
    session_token: str | None
    expired: bool
    expire_time: datetime | None

    def needs_refresh(self) -> bool:
        """Whether the current key material must be reloaded before use."""
        ...

    async def get(self) -> None:
        """Ensure the credentials are current, refreshing them only if needed."""
        ...

    async def refresh(self) -> None:
        """Unconditionally reload the credentials."""
        ...

    async def load(self) -> None:
        """Fetch fresh key material from the underlying source."""
        ...


class Transport(Protocol):
    """Sends a built request over the wire.

    Implementations raise an :py:class:`owlhub_core.exceptions.OwlhubError` with code
    ``TimeoutError`` or ``NetworkingError`` on transport failures.
    """

    async def send(
        self, request: "HTTPRequest", *, timeout: float | None = None
    ) -> "HTTPResponse":
        ...

    async def close(self) -> None:
        ...


class CredentialsResolver(Protocol):
    """Finds a usable credentials provider, for example by trying several in turn."""

    async def resolve(self) -> CredentialsProvider:
        ...
