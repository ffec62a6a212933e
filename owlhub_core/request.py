#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final

from . import event_listeners
from ._http import HTTPRequest, HTTPResponse
from .events import ListenerExecutor
from .exceptions import (
    CREDENTIALS_ERROR,
    REQUEST_ABORTED_ERROR,
    OwlhubError,
    RetryError,
)
from .interfaces import CredentialsProvider
from .signers.presign import Presign, PresignCallback

if TYPE_CHECKING:
    from .service import Service

logger: Final = logging.getLogger(__name__)


class Response:
    """The outcome of one operation call.

    ``retry_count`` is the number of retries made before the final attempt.
    """

    def __init__(self, request: "Request"):
        self.request = request
        self.http_response: HTTPResponse | None = None
        self.data: dict[str, Any] | None = None
        self.error: OwlhubError | None = None
        self.request_id: str | None = None
        self.retry_count = 0

    def reset(self) -> None:
        self.http_response = None
        self.data = None
        self.error = None
        self.request_id = None

    def __repr__(self) -> str:
        return (
            f"Response(operation={self.request.operation!r}, "
            f"retry_count={self.retry_count!r}, error={self.error!r})"
        )


class Request:
    """Drives a single operation call through its phases.

    The phases run as events on a copy of the service's listeners: ``validate``,
    ``build``, ``afterBuild`` and ``sign`` to build the request, then ``send``,
    ``validateResponse`` and ``extractError`` or ``extractData`` for every attempt, and
    ``retry`` after each failed attempt. Observers may also subscribe to ``success``,
    ``error`` and ``complete``.
    """

    def __init__(
        self,
        service: "Service",
        operation: str,
        params: dict[str, Any] | None = None,
        *,
        credentials: CredentialsProvider | None = None,
    ):
        self.service = service
        self.operation = operation
        self.params: dict[str, Any] = params if params is not None else {}
        self.credentials = credentials
        self.listeners: ListenerExecutor = service.listeners.copy()
        self.http_request = HTTPRequest(
            endpoint=service.endpoint, region=service.signing_region
        )
        self.response = Response(self)
        self.signed_at: datetime | None = None
        self.send_task: asyncio.Future[HTTPResponse] | None = None
        self.aborted = False
        self._built = False

    async def get_credentials(self) -> CredentialsProvider:
        """Current credentials for this request, refreshed if needed.

        Credentials passed to the request take precedence over the service's.
        """
        if self.credentials is None:
            self.credentials = await self.service.config.get_credentials()
            return self.credentials

        await self.credentials.get()
        credentials = self.credentials
        if not credentials.access_key_id or not credentials.secret_access_key:
            raise OwlhubError("Missing credentials in config", code=CREDENTIALS_ERROR)
        return self.credentials

    async def build(self) -> None:
        """Validate, build and sign the request without sending it.

        Errors raised here are never retried.
        """
        if self._built:
            return
        for event in ("validate", "build", "afterBuild", "sign"):
            logger.debug("%s: %s", self.operation, event)
            await self.listeners.emit(event, self)
        self._built = True

    async def send(self) -> dict[str, Any]:
        """Build and send the request, retrying as the retry strategy allows.

        :returns: The extracted response data.
        :raises OwlhubError: The terminal error of the call.
        """
        try:
            await self._run()
        except OwlhubError as error:
            self.response.error = error
            await self.listeners.emit("error", self.response)
            raise
        else:
            await self.listeners.emit("success", self.response)
        finally:
            await self.listeners.emit("complete", self.response)
        assert self.response.data is not None
        return self.response.data

    async def _run(self) -> None:
        await self.build()
        strategy = self.service.config.retry_strategy
        token = strategy.acquire_initial_retry_token(token_scope=self.operation)
        while True:
            try:
                await self._attempt()
            except OwlhubError as error:
                if error.code == REQUEST_ABORTED_ERROR:
                    raise
                await self.listeners.emit("retry", self, error)
                try:
                    token = strategy.refresh_retry_token_for_retry(
                        token_to_renew=token, error=error
                    )
                except RetryError as retry_error:
                    logger.debug("Not retrying %s: %s", self.operation, retry_error)
                    raise error
                logger.debug(
                    "Retrying %s (retry %s) after %.3fs: %s",
                    self.operation,
                    token.retry_count,
                    token.retry_delay,
                    error.code,
                )
            else:
                strategy.record_success(token=token)
                return

            await asyncio.sleep(token.retry_delay)
            self.response.reset()
            self.response.retry_count = token.retry_count
            await self.listeners.emit("sign", self)

    async def _attempt(self) -> None:
        await self.listeners.emit("send", self)
        await self.listeners.emit("validateResponse", self)
        if self.response.error is not None:
            await self.listeners.emit("extractError", self)
            raise self.response.error
        await self.listeners.emit("extractData", self)

    def abort(self) -> None:
        """Cancel the request.

        An in-flight send is cancelled and the call fails with ``RequestAbortedError``.
        """
        self.aborted = True
        if self.send_task is not None:
            self.send_task.cancel()

    async def presign(
        self, expires: int | None = None, callback: PresignCallback | None = None
    ) -> str | None:
        """Build this request into a presigned URL. See :py:class:`Presign`."""
        return await Presign().sign(self, expires, callback)

    def to_unauthenticated(self) -> "Request":
        """Stop this request from requiring or applying credentials."""
        self.listeners.remove_listener(
            "validate", event_listeners.validate_credentials
        )
        self.listeners.remove_listener("sign", event_listeners.sign)
        return self

    def __repr__(self) -> str:
        return (
            f"Request(operation={self.operation!r}, "
            f"http_request={self.http_request!r})"
        )
