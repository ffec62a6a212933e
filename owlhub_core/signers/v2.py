#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from datetime import datetime

from .._http import Field
from ..interfaces import CredentialsProvider
from ..utils import hmac_base64, iso8601, query_params_to_string
from .base import RequestSigner


class V2Signer(RequestSigner):
    """Signs query-style requests by adding a signature to the request parameters.

    The request body is replaced with the full, signed parameter set.
    """

    def add_authorization(
        self, credentials: CredentialsProvider, date: datetime
    ) -> None:
        params = self.request.params
        params["Timestamp"] = iso8601(date)
        params["SignatureVersion"] = "2"
        params["SignatureMethod"] = "HmacSHA256"
        params["OWLHUBAccessKeyId"] = credentials.access_key_id
        params.pop("SecurityToken", None)
        if credentials.session_token:
            params["SecurityToken"] = credentials.session_token

        # Drop any signature left over from a previous attempt before re-signing.
        params.pop("Signature", None)
        params["Signature"] = self.signature(credentials)

        self.request.body = query_params_to_string(params)
        self.request.fields.set_field(
            Field(name="Content-Length", values=[str(len(self.request.body_bytes()))])
        )

    def signature(self, credentials: CredentialsProvider) -> str:
        assert credentials.secret_access_key is not None
        return hmac_base64(credentials.secret_access_key, self.string_to_sign())

    def string_to_sign(self) -> str:
        return "\n".join(
            (
                self.request.method,
                self.request.endpoint.host.lower(),
                self.request.pathname(),
                query_params_to_string(self.request.params),
            )
        )
