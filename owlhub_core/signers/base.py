#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from datetime import datetime

from .._http import HTTPRequest
from ..interfaces import CredentialsProvider


class RequestSigner:
    """Base for signers that add authentication material to a request in place."""

    def __init__(
        self,
        request: HTTPRequest,
        service_name: str | None = None,
        *,
        signature_cache: bool = True,
    ):
        self.request = request
        self.service_name = service_name
        self.signature_cache = signature_cache

    def add_authorization(
        self, credentials: CredentialsProvider, date: datetime
    ) -> None:
        raise NotImplementedError()
