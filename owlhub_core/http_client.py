#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from itertools import chain
from typing import Final

import aiohttp

from ._http import Field, Fields, HTTPRequest, HTTPResponse
from .exceptions import NETWORKING_ERROR, TIMEOUT_ERROR, OwlhubError
from .interfaces import Transport

logger: Final = logging.getLogger(__name__)


class AIOHTTPTransport(Transport):
    """Implementation of :py:class:`.interfaces.Transport` using aiohttp."""

    def __init__(self, *, _session: aiohttp.ClientSession | None = None) -> None:
        self._session = _session

    @property
    def session(self) -> aiohttp.ClientSession:
        # Created on first use so that it binds to the running event loop.
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def send(
        self, request: HTTPRequest, *, timeout: float | None = None
    ) -> HTTPResponse:
        """Send an HTTP request using aiohttp.

        :param request: The request including endpoint, path, fields and body.
        :param timeout: Total seconds allowed for the exchange.
        :raises OwlhubError: ``TimeoutError`` or ``NetworkingError`` on failure.
        """
        headers_list = list(
            chain.from_iterable(fld.as_tuples() for fld in request.fields)
        )
        url = request.url()
        logger.debug("Sending %s %s", request.method, url)
        try:
            async with self.session.request(
                method=request.method,
                url=url,
                headers=headers_list,
                data=request.body_bytes(),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                return await self._marshal_response(resp)
        except TimeoutError as e:
            raise OwlhubError(
                f"Connection timed out after {timeout} seconds",
                code=TIMEOUT_ERROR,
                retryable=True,
            ) from e
        except aiohttp.ClientError as e:
            raise OwlhubError(str(e), code=NETWORKING_ERROR, retryable=True) from e

    async def _marshal_response(
        self, aiohttp_resp: aiohttp.ClientResponse
    ) -> HTTPResponse:
        """Convert a ``aiohttp.ClientResponse`` to an :py:class:`HTTPResponse`."""
        headers = Fields()
        for header_name, header_val in aiohttp_resp.headers.items():
            try:
                headers[header_name].add(header_val)
            except KeyError:
                headers[header_name] = Field(name=header_name, values=[header_val])

        return HTTPResponse(
            status_code=aiohttp_resp.status,
            fields=headers,
            body=await aiohttp_resp.read(),
            reason=aiohttp_resp.reason,
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
