#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from ..interfaces import CredentialsProvider
from .v3 import V3Signer


class V3HttpsSigner(V3Signer):
    """V3 variant for channels that are already authenticated by TLS.

    Only the date header is signed.
    """

    algorithm = "OWLHUB3-HTTPS"

    def authorization(self, credentials: CredentialsProvider) -> str:
        return (
            f"{self.algorithm} "
            f"OWLHUBAccessKeyId={credentials.access_key_id},"
            "Algorithm=HmacSHA256,"
            f"Signature={self.signature(credentials)}"
        )

    def string_to_sign(self) -> str:
        return self.request.fields.get_value("X-Owlhub-Date", "") or ""
