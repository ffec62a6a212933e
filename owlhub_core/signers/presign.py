#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Final

from .. import event_listeners
from .._http import PRESIGNED_EXPIRES_FIELD, Field
from ..exceptions import INVALID_EXPIRY_TIME, UNSUPPORTED_SIGNER, OwlhubError
from ..utils import query_params_to_string, query_string_parse
from .v4 import V4Signer

if TYPE_CHECKING:
    from ..request import Request

logger: Final = logging.getLogger(__name__)

DEFAULT_EXPIRES: Final = 3600
MAX_V4_EXPIRES: Final = 604800

_SIGNATURE_PATTERN = re.compile(r"Signature=(.*?)(?:,|\s|\r?\n|$)")

type PresignCallback = Callable[[OwlhubError | None, str | None], None]


def signed_url_builder(request: "Request") -> None:
    """Validate the presign request once it has been built.

    Runs on ``build``, after the protocol has serialized the request.
    """
    fields = request.http_request.fields
    expires = int(fields.get_value(PRESIGNED_EXPIRES_FIELD, "0") or 0)
    signer_class = request.service.get_signer_class(request)

    fields.remove_field("User-Agent")
    fields.remove_field("X-Owlhub-User-Agent")

    if not issubclass(signer_class, V4Signer):
        raise OwlhubError(
            "Presigning only supports SigV4 signing.",
            code=UNSUPPORTED_SIGNER,
        )
    if expires > MAX_V4_EXPIRES:
        raise OwlhubError(
            "Presigning does not support expiry time greater than a week with "
            "SigV4 signing.",
            code=INVALID_EXPIRY_TIME,
        )
    fields.set_field(Field(name=PRESIGNED_EXPIRES_FIELD, values=[str(expires)]))


def signed_url_signer(request: "Request") -> None:
    """Move the signature from the headers into the query string.

    Runs on ``sign``, after the signer.
    """
    http_request = request.http_request
    fields = http_request.fields
    query_params = query_string_parse(http_request.search())

    scheme, _, rest = (fields.get_value("Authorization") or "").partition(" ")
    if scheme == "OWLHUB":
        access_key_id, _, signature = rest.partition(":")
        query_params["OWLHUBAccessKeyId"] = access_key_id
        query_params["Signature"] = signature
        for field in fields:
            key = field.name
            if key == PRESIGNED_EXPIRES_FIELD:
                key = "Expires"
            if key.lower().startswith("x-owlhub-meta-"):
                # Drop any earlier, differently cased copy of the key.
                query_params.pop(key, None)
                key = key.lower()
            query_params[key] = field.as_string()
        fields.remove_field(PRESIGNED_EXPIRES_FIELD)
        query_params.pop("Authorization", None)
        query_params.pop("Host", None)
    elif scheme == "OWLHUB4-HMAC-SHA256":
        match = _SIGNATURE_PATTERN.search(rest)
        if match is not None:
            query_params["X-Owlhub-Signature"] = match.group(1)
        query_params.pop("Expires", None)

    http_request.path = http_request.pathname()
    query = query_params_to_string(query_params)
    if query:
        http_request.path += "?" + query


class Presign:
    """Builds a request into a presigned URL without sending it."""

    async def sign(
        self,
        request: "Request",
        expires: int | None = None,
        callback: PresignCallback | None = None,
    ) -> str | None:
        """Build and sign ``request`` and return its URL.

        :param expires: Seconds the URL stays valid. Defaults to one hour.
        :param callback: Called with ``(error, url)`` instead of raising. When it is
            given, the URL is passed to it and ``None`` is returned.
        """
        request.http_request.fields.set_field(
            Field(
                name=PRESIGNED_EXPIRES_FIELD, values=[str(expires or DEFAULT_EXPIRES)]
            )
        )
        listeners = request.listeners
        listeners.on("build", signed_url_builder)
        listeners.on("sign", signed_url_signer)
        listeners.remove_listener("afterBuild", event_listeners.set_content_length)
        listeners.remove_listener("afterBuild", event_listeners.compute_sha256)

        await listeners.emit("beforePresign", request)

        try:
            await request.build()
        except OwlhubError as error:
            if callback is None:
                raise
            callback(error, None)
            return None

        url = request.http_request.url()
        logger.debug("Presigned %s", request.operation)
        if callback is not None:
            callback(None, url)
            return None
        return url
