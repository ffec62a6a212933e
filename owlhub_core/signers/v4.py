#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import re
from collections import OrderedDict
from datetime import UTC, datetime
from typing import Final

from .._http import CONTENT_SHA256_FIELD, PRESIGNED_EXPIRES_FIELD, Field
from ..interfaces import CredentialsProvider
from ..utils import (
    hmac_digest,
    query_params_to_string,
    query_string_parse,
    sha256_hex,
    uri_escape_path,
)
from .base import RequestSigner

ALGORITHM: Final = "OWLHUB4-HMAC-SHA256"
SCOPE_TERMINATOR: Final = "owlhub4_request"
SIGV4_TIMESTAMP_FORMAT: Final = "%Y%m%dT%H%M%SZ"

HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = (
    "authorization",
    "content-type",
    "content-length",
    "user-agent",
    PRESIGNED_EXPIRES_FIELD,
    "expect",
    "x-owlhub-trace-id",
)

MAX_CACHE_ENTRIES: Final = 50

_signing_key_cache: OrderedDict[str, bytes] = OrderedDict()


def clear_signing_key_cache() -> None:
    _signing_key_cache.clear()


def _whitespace_collapsed(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


class V4Signer(RequestSigner):
    """Scope-bound signing keyed by a date, region and service derived signing key.

    When the request is being presigned, the authentication parameters are added to the
    query string instead of the headers.
    """

    def add_authorization(
        self, credentials: CredentialsProvider, date: datetime
    ) -> None:
        timestamp = date.astimezone(UTC).strftime(SIGV4_TIMESTAMP_FORMAT)
        if self.request.is_presigned:
            self._update_for_presigned(credentials, timestamp)
        else:
            self._add_headers(credentials, timestamp)
        self.request.fields.set_field(
            Field(
                name="Authorization",
                values=[self.authorization(credentials, timestamp)],
            )
        )

    def _add_headers(self, credentials: CredentialsProvider, timestamp: str) -> None:
        self.request.fields.set_field(Field(name="X-Owlhub-Date", values=[timestamp]))
        if credentials.session_token:
            self.request.fields.set_field(
                Field(
                    name="x-owlhub-security-token", values=[credentials.session_token]
                )
            )

    def _update_for_presigned(
        self, credentials: CredentialsProvider, timestamp: str
    ) -> None:
        fields = self.request.fields
        query: dict[str, str] = {
            "X-Owlhub-Date": timestamp,
            "X-Owlhub-Algorithm": ALGORITHM,
            "X-Owlhub-Credential": (
                f"{credentials.access_key_id}/{self.credential_scope(timestamp)}"
            ),
            "X-Owlhub-Expires": fields.get_value(PRESIGNED_EXPIRES_FIELD, "") or "",
            "X-Owlhub-SignedHeaders": self.signed_headers(),
        }
        if credentials.session_token:
            query["X-Owlhub-Security-Token"] = credentials.session_token
        for name in ("Content-Type", "Content-MD5"):
            if name in fields:
                query[name] = fields[name].as_string()
        for field in fields:
            lowered = field.name.lower()
            if (
                lowered.startswith("x-owlhub-")
                and lowered != CONTENT_SHA256_FIELD.lower()
            ):
                query[lowered] = field.as_string()

        separator = "&" if "?" in self.request.path else "?"
        self.request.path += separator + query_params_to_string(query)

    def authorization(self, credentials: CredentialsProvider, timestamp: str) -> str:
        return (
            f"{ALGORITHM} "
            f"Credential={credentials.access_key_id}/"
            f"{self.credential_scope(timestamp)}, "
            f"SignedHeaders={self.signed_headers()}, "
            f"Signature={self.signature(credentials, timestamp)}"
        )

    def signature(self, credentials: CredentialsProvider, timestamp: str) -> str:
        signing_key = self._signing_key(credentials, timestamp[0:8])
        return hmac_digest(signing_key, self.string_to_sign(timestamp)).hex()

    def _signing_key(self, credentials: CredentialsProvider, short_date: str) -> bytes:
        assert credentials.secret_access_key is not None
        assert credentials.access_key_id is not None
        region = self.request.region or ""
        service = self.service_name or ""
        key_id = hmac_digest(credentials.secret_access_key, credentials.access_key_id)
        cache_key = "_".join(
            (
                key_id.hex(),
                short_date,
                region,
                service,
            )
        )
        if self.signature_cache and cache_key in _signing_key_cache:
            _signing_key_cache.move_to_end(cache_key)
            return _signing_key_cache[cache_key]

        # SigningKey = HMAC(HMAC(HMAC(HMAC("OWLHUB4" + secret, date), region), service),
        #                   "owlhub4_request")
        k_date = hmac_digest(f"OWLHUB4{credentials.secret_access_key}", short_date)
        k_region = hmac_digest(k_date, region)
        k_service = hmac_digest(k_region, service)
        k_signing = hmac_digest(k_service, SCOPE_TERMINATOR)

        if self.signature_cache:
            _signing_key_cache[cache_key] = k_signing
            while len(_signing_key_cache) > MAX_CACHE_ENTRIES:
                _signing_key_cache.popitem(last=False)
        return k_signing

    def string_to_sign(self, timestamp: str) -> str:
        return "\n".join(
            (
                ALGORITHM,
                timestamp,
                self.credential_scope(timestamp),
                sha256_hex(self.canonical_string()),
            )
        )

    def canonical_string(self) -> str:
        """The canonical request.

        .. code-block:: text

            <HTTPMethod>\\n
            <CanonicalURI>\\n
            <CanonicalQueryString>\\n
            <CanonicalHeaders>\\n
            <SignedHeaders>\\n
            <HashedPayload>
        """
        return "\n".join(
            (
                self.request.method,
                uri_escape_path(self.request.pathname()),
                self._canonical_query(),
                self.canonical_headers() + "\n",
                self.signed_headers(),
                self.hexencoded_body_hash(),
            )
        )

    def _canonical_query(self) -> str:
        return query_params_to_string(query_string_parse(self.request.search()))

    def _signable_fields(self) -> list[Field]:
        return sorted(
            (
                field
                for field in self.request.fields
                if field.name.lower() not in HEADERS_EXCLUDED_FROM_SIGNING
            ),
            key=lambda field: field.name.lower(),
        )

    def canonical_headers(self) -> str:
        return "\n".join(
            f"{field.name.lower()}:{_whitespace_collapsed(field.as_string())}"
            for field in self._signable_fields()
        )

    def signed_headers(self) -> str:
        return ";".join(field.name.lower() for field in self._signable_fields())

    def credential_scope(self, timestamp: str) -> str:
        return "/".join(
            (
                timestamp[0:8],
                self.request.region or "",
                self.service_name or "",
                SCOPE_TERMINATOR,
            )
        )

    def hexencoded_body_hash(self) -> str:
        content_sha256 = self.request.fields.get_value(CONTENT_SHA256_FIELD)
        if content_sha256:
            return content_sha256
        return sha256_hex(self.request.body_bytes())
