#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import re
from datetime import datetime

from .._http import Field
from ..interfaces import CredentialsProvider
from ..utils import hmac_base64, rfc822, sha256_digest
from .base import RequestSigner

SERVICE_HEADER_PATTERN = re.compile(r"^X-Owlhub", re.IGNORECASE)


class V3Signer(RequestSigner):
    """Signs the method, selected headers and body of a request."""

    algorithm = "OWLHUB3"

    def add_authorization(
        self, credentials: CredentialsProvider, date: datetime
    ) -> None:
        fields = self.request.fields
        fields.set_field(Field(name="X-Owlhub-Date", values=[rfc822(date)]))
        if credentials.session_token:
            fields.set_field(
                Field(
                    name="x-owlhub-security-token", values=[credentials.session_token]
                )
            )
        fields.set_field(
            Field(
                name="X-Owlhub-Authorization",
                values=[self.authorization(credentials)],
            )
        )

    def authorization(self, credentials: CredentialsProvider) -> str:
        return (
            f"{self.algorithm} "
            f"OWLHUBAccessKeyId={credentials.access_key_id},"
            "Algorithm=HmacSHA256,"
            f"SignedHeaders={self.signed_headers()},"
            f"Signature={self.signature(credentials)}"
        )

    def signed_headers(self) -> str:
        return ";".join(sorted(name.lower() for name in self.headers_to_sign()))

    def canonical_headers(self) -> str:
        fields = self.request.fields
        parts = [
            f"{name.lower().strip()}:{fields[name].as_string().strip()}"
            for name in self.headers_to_sign()
        ]
        return "\n".join(sorted(parts)) + "\n"

    def headers_to_sign(self) -> list[str]:
        return [
            field.name
            for field in self.request.fields
            if field.name.lower() in ("host", "content-encoding")
            or SERVICE_HEADER_PATTERN.match(field.name)
        ]

    def signature(self, credentials: CredentialsProvider) -> str:
        assert credentials.secret_access_key is not None
        return hmac_base64(credentials.secret_access_key, self.string_to_sign())

    def string_to_sign(self) -> str | bytes:
        body = self.request.body
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        parts = (self.request.method, "/", "", self.canonical_headers(), body)
        return sha256_digest("\n".join(parts))
