#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
"""The listeners every request starts with.

Services compose these into their :py:class:`ListenerExecutor` once; each request
works on a copy, so a request may add or remove listeners without affecting others.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Final

from ._http import CONTENT_SHA256_FIELD, Field
from .events import ListenerExecutor
from .exceptions import (
    CONFIG_ERROR,
    ENDPOINT_DISCOVERY_ERROR,
    EXPIRED_CREDENTIALS_ERROR_CODES,
    REQUEST_ABORTED_ERROR,
    OwlhubError,
)
from .utils import sha256_hex

if TYPE_CHECKING:
    from .request import Request

logger: Final = logging.getLogger(__name__)

# Headers a previous signing attempt may have left on the request.
AUTH_FIELDS: Final = (
    "Authorization",
    "X-Owlhub-Authorization",
    "X-Owlhub-Date",
    "X-Owlhub-Security-Token",
)


async def validate_credentials(request: "Request") -> None:
    await request.get_credentials()


def validate_region(request: "Request") -> None:
    service = request.service
    if not service.config.region and not service.is_global_endpoint:
        raise OwlhubError("Missing region in config", code=CONFIG_ERROR)


def build(request: "Request") -> None:
    request.service.protocol.build(request)


def set_http_host(request: "Request") -> None:
    http_request = request.http_request
    http_request.fields.set_field(
        Field(name="Host", values=[http_request.endpoint.netloc])
    )


def set_content_length(request: "Request") -> None:
    body = request.http_request.body_bytes()
    if body:
        request.http_request.fields.set_field(
            Field(name="Content-Length", values=[str(len(body))])
        )


def compute_sha256(request: "Request") -> None:
    if request.service.get_signature_version(request) != "v4":
        return
    fields = request.http_request.fields
    if CONTENT_SHA256_FIELD not in fields:
        body_hash = sha256_hex(request.http_request.body_bytes())
        fields.set_field(Field(name=CONTENT_SHA256_FIELD, values=[body_hash]))


async def discover_endpoint(request: "Request") -> None:
    """Point the request at a discovered endpoint, when the service supports it."""
    service = request.service
    if not service.api.endpoint_discovery_operation:
        return
    required = service.api.endpoint_discovery_required
    if not (service.config.endpoint_discovery_enabled or required):
        return
    try:
        address = await service.discover_endpoint(request)
    except OwlhubError as e:
        if required:
            raise OwlhubError(
                f"Endpoint discovery failed: {e.message}",
                code=ENDPOINT_DISCOVERY_ERROR,
                status_code=e.status_code,
                request_id=e.request_id,
            ) from e
        logger.warning("Optional endpoint discovery failed: %s", e)
        return
    if address:
        request.http_request.update_endpoint(address)


async def sign(request: "Request") -> None:
    service = request.service
    credentials = await request.get_credentials()
    signer_class = service.get_signer_class(request)
    http_request = request.http_request
    for name in AUTH_FIELDS:
        http_request.fields.remove_field(name)

    signer = signer_class(http_request, service.signing_name)
    date = service.get_signing_date()
    signer.add_authorization(credentials, date)
    request.signed_at = date
    logger.debug("Signed %s with %s", request.operation, signer_class.__name__)


async def send(request: "Request") -> None:
    if request.aborted:
        raise OwlhubError("Request aborted by user", code=REQUEST_ABORTED_ERROR)
    service = request.service
    request.send_task = asyncio.ensure_future(
        service.transport.send(
            request.http_request, timeout=service.config.http_timeout
        )
    )
    try:
        request.response.http_response = await request.send_task
    except asyncio.CancelledError:
        if not request.aborted:
            raise
        raise OwlhubError(
            "Request aborted by user", code=REQUEST_ABORTED_ERROR
        ) from None
    finally:
        request.send_task = None


def validate_response(request: "Request") -> None:
    response = request.response
    http_response = response.http_response
    assert http_response is not None
    if not request.service.successful_response(http_response):
        response.error = OwlhubError(
            "Unsuccessful response",
            code="UnknownError",
            status_code=http_response.status_code,
        )


def extract_error(request: "Request") -> None:
    request.service.protocol.extract_error(request.response)


def extract_data(request: "Request") -> None:
    request.service.protocol.extract_data(request.response)


def check_retry(request: "Request", error: OwlhubError) -> None:
    """Classify a failed attempt and expire credentials the service rejected."""
    error.retryable = request.service.retryable_error(error)
    expired = error.code in EXPIRED_CREDENTIALS_ERROR_CODES
    if expired and request.credentials is not None:
        request.credentials.expired = True


def core_listeners() -> ListenerExecutor:
    """A new executor with the listeners every authenticated request uses."""
    listeners = ListenerExecutor()
    listeners.on("validate", validate_credentials)
    listeners.on("validate", validate_region)
    listeners.on("build", build)
    listeners.on("afterBuild", set_http_host)
    listeners.on("afterBuild", set_content_length)
    listeners.on("afterBuild", compute_sha256)
    listeners.on("sign", discover_endpoint)
    listeners.on("sign", sign)
    listeners.on("send", send)
    listeners.on("validateResponse", validate_response)
    listeners.on("extractError", extract_error)
    listeners.on("extractData", extract_data)
    listeners.on("retry", check_retry)
    return listeners
