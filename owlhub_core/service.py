#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, ClassVar, Final

from . import event_listeners
from ._http import URI, HTTPResponse
from .config import ClientConfig
from .endpoints import DOMAIN_SUFFIX, get_endpoint_cache
from .events import ListenerExecutor
from .exceptions import (
    EXPIRED_CREDENTIALS_ERROR_CODES,
    NETWORKING_ERROR,
    SERIALIZATION_ERROR,
    TIMEOUT_ERROR,
    OwlhubError,
)
from .http_client import AIOHTTPTransport
from .interfaces import CredentialsProvider, Transport
from .protocol import QueryProtocol
from .request import Request
from .signers import RequestSigner, get_signer_class
from .signers.presign import PresignCallback

logger: Final = logging.getLogger(__name__)

GLOBAL_SIGNING_REGION: Final = "us-east-1"


@dataclass(frozen=True, kw_only=True)
class ServiceApi:
    """Static description of a remote service."""

    service_id: str
    endpoint_prefix: str
    api_version: str
    signing_name: str | None = None
    """Name used in the signing scope. Defaults to the endpoint prefix."""

    signature_version: str = "v4"
    global_endpoint: bool = False
    """Whether the service is addressed by one endpoint for every region."""

    endpoint_discovery_operation: str | None = None
    endpoint_discovery_required: bool = False


class Service:
    """Base for service clients.

    Subclasses set :py:attr:`api` and may add listeners in
    :py:meth:`_register_listeners`. Listeners are composed once per client; every
    request runs on its own copy.
    """

    api: ClassVar[ServiceApi]

    def __init__(self, config: ClientConfig | None = None, **overrides: Any):
        """:param config: The client configuration. Keyword arguments override its
        constructor values, as :py:meth:`ClientConfig.merge` does."""
        config = config or ClientConfig()
        self.config = config.merge(**overrides) if overrides else config
        self.protocol = QueryProtocol()
        self._transport: Transport | None = None
        self.listeners = event_listeners.core_listeners()
        self._register_listeners(self.listeners)

    def _register_listeners(self, listeners: ListenerExecutor) -> None:
        pass

    @property
    def is_global_endpoint(self) -> bool:
        return self.api.global_endpoint and self.config.endpoint is None

    @property
    def endpoint(self) -> URI:
        endpoint = self.config.endpoint
        if isinstance(endpoint, URI):
            return endpoint
        if endpoint:
            return URI.parse(endpoint)
        region = self.config.region
        if self.is_global_endpoint or not region:
            return URI(host=f"{self.api.endpoint_prefix}{DOMAIN_SUFFIX}")
        return URI(host=f"{self.api.endpoint_prefix}.{region}{DOMAIN_SUFFIX}")

    @property
    def signing_region(self) -> str | None:
        if self.is_global_endpoint:
            return GLOBAL_SIGNING_REGION
        return self.config.region

    @property
    def signing_name(self) -> str:
        return self.api.signing_name or self.api.endpoint_prefix

    @property
    def transport(self) -> Transport:
        if self.config.transport is not None:
            return self.config.transport
        if self._transport is None:
            self._transport = AIOHTTPTransport()
        return self._transport

    def make_request(
        self,
        operation: str,
        params: dict[str, Any] | None = None,
        *,
        credentials: CredentialsProvider | None = None,
    ) -> Request:
        """Create a request for ``operation``.

        Parameters bound in the configuration are merged under ``params``.

        :param credentials: Credentials for this request only, in place of the
            configured ones.
        """
        merged = {**self.config.params, **(params or {})}
        logger.debug("Creating request for %s.%s", self.api.service_id, operation)
        return Request(self, operation, merged, credentials=credentials)

    def make_unauthenticated_request(
        self, operation: str, params: dict[str, Any] | None = None
    ) -> Request:
        """Create a request that is neither checked for credentials nor signed."""
        return self.make_request(operation, params).to_unauthenticated()

    def retryable_error(self, error: OwlhubError) -> bool:
        """Whether the service considers ``error`` worth retrying."""
        if error.code in (TIMEOUT_ERROR, NETWORKING_ERROR):
            return True
        if error.code in EXPIRED_CREDENTIALS_ERROR_CODES:
            return True
        if error.is_throttling_error:
            return True
        return error.status_code is not None and error.status_code >= 500

    def successful_response(self, http_response: HTTPResponse) -> bool:
        return 200 <= http_response.status_code < 300

    def get_signature_version(self, request: Request) -> str:
        return self.config.signature_version or self.api.signature_version

    def get_signer_class(self, request: Request) -> type[RequestSigner]:
        return get_signer_class(self.get_signature_version(request))

    def get_signing_date(self) -> datetime:
        return datetime.now(UTC)

    async def discover_endpoint(self, request: Request) -> str | None:
        """Find the endpoint for ``request``, consulting the endpoint cache first."""
        cache = get_endpoint_cache(self.config.endpoint_cache_size)
        credentials = request.credentials
        key = {
            "serviceId": self.api.service_id,
            "region": self.config.region,
            "accessKeyId": credentials.access_key_id if credentials else None,
        }
        records = cache.get(key)
        if records:
            return records[0]["Address"]

        operation = self.api.endpoint_discovery_operation
        assert operation is not None
        discovery = self.make_request(operation, credentials=credentials)
        discovery.listeners.remove_listener("sign", event_listeners.discover_endpoint)
        data = await discovery.send()
        endpoints = data.get("Endpoints") or []
        if not endpoints:
            return None
        for record in endpoints:
            if not (
                isinstance(record, dict)
                and isinstance(record.get("Address"), str)
                and isinstance(record.get("CachePeriodInMinutes"), int)
            ):
                raise OwlhubError(
                    f"Invalid endpoint record from {operation}: {record!r}",
                    code=SERIALIZATION_ERROR,
                )
        cache.put(key, endpoints)
        return endpoints[0]["Address"]

    async def get_signed_url(
        self,
        operation: str,
        params: dict[str, Any] | None = None,
        *,
        expires: int | None = None,
        callback: PresignCallback | None = None,
    ) -> str | None:
        """Presign ``operation`` into a URL that can be used without credentials.

        Without a callback, errors are raised directly.
        """
        return await self.make_request(operation, params).presign(expires, callback)

    async def close(self) -> None:
        """Close the transport this client created, if any."""
        if self._transport is not None:
            await self._transport.close()
            self._transport = None

    async def __aenter__(self) -> "Service":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
