#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import json
from collections import deque
from copy import deepcopy
from typing import Any

from ._http import HTTPRequest, HTTPResponse, tuples_to_fields
from .interfaces import Transport


class MockTransport(Transport):
    """Implementation of :py:class:`.interfaces.Transport` solely for testing purposes.

    Responses and errors are queued in FIFO order and requests are captured for
    inspection.
    """

    def __init__(self) -> None:
        self._response_queue: deque[HTTPResponse | Exception] = deque()
        self._captured_requests: list[HTTPRequest] = []
        self.closed = False

    def add_response(
        self,
        status: int = 200,
        headers: list[tuple[str, str]] | None = None,
        body: bytes | dict[str, Any] = b"",
    ) -> None:
        """Queue a response for the next request.

        :param status: HTTP status code.
        :param headers: HTTP response headers as list of (name, value) tuples.
        :param body: Response body as bytes, or a mapping to serialize as JSON.
        """
        if isinstance(body, dict):
            body = json.dumps(body).encode("utf-8")
        self._response_queue.append(
            HTTPResponse(
                status_code=status,
                fields=tuples_to_fields(headers or []),
                body=body,
            )
        )

    def add_error(self, error: Exception) -> None:
        """Queue an error to raise for the next request."""
        self._response_queue.append(error)

    async def send(
        self, request: HTTPRequest, *, timeout: float | None = None
    ) -> HTTPResponse:
        """Return the next queued response, or raise the next queued error.

        :raises MockTransportError: If nothing is queued.
        """
        self._captured_requests.append(deepcopy(request))

        if not self._response_queue:
            raise MockTransportError(
                "No responses queued in MockTransport. Use add_response() to queue "
                "responses."
            )
        queued = self._response_queue.popleft()
        if isinstance(queued, Exception):
            raise queued
        return queued

    async def close(self) -> None:
        self.closed = True

    @property
    def call_count(self) -> int:
        """The number of requests made to this transport."""
        return len(self._captured_requests)

    @property
    def captured_requests(self) -> list[HTTPRequest]:
        """Copies of every request sent, as they were when sent."""
        return self._captured_requests.copy()


class MockTransportError(Exception):
    """Exception raised by MockTransport for test setup issues."""
