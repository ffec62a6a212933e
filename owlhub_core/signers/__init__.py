#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from ..exceptions import CONFIG_ERROR, OwlhubError
from .base import RequestSigner
from .presign import Presign
from .v2 import V2Signer
from .v3 import V3Signer
from .v3https import V3HttpsSigner
from .v4 import V4Signer

SIGNERS: dict[str, type[RequestSigner]] = {
    "v2": V2Signer,
    "v3": V3Signer,
    "v3https": V3HttpsSigner,
    "v4": V4Signer,
}


def get_signer_class(version: str) -> type[RequestSigner]:
    """Look up the signer for a signature version name."""
    try:
        return SIGNERS[version]
    except KeyError:
        raise OwlhubError(
            f"Unknown signing version {version}", code=CONFIG_ERROR
        ) from None


__all__ = (
    "Presign",
    "RequestSigner",
    "V2Signer",
    "V3HttpsSigner",
    "V3Signer",
    "V4Signer",
    "get_signer_class",
)
