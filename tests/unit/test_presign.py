#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import re
from collections.abc import Callable
from urllib.parse import parse_qs, urlparse

import pytest

from owlhub_core.config import ClientConfig
from owlhub_core.credentials import Credentials
from owlhub_core.exceptions import INVALID_EXPIRY_TIME, UNSUPPORTED_SIGNER, OwlhubError
from owlhub_core.services.sts import STS
from owlhub_core.testing import MockTransport


@pytest.fixture
def sts(
    make_config: Callable[..., ClientConfig], static_credentials: Credentials
) -> STS:
    return STS(make_config(credentials=static_credentials))


@pytest.mark.asyncio
async def test_presigned_url_carries_signature_in_query(
    sts: STS, transport: MockTransport
) -> None:
    url = await sts.get_signed_url("GetCallerIdentity", expires=300)

    assert url is not None
    parsed = urlparse(url)
    assert parsed.scheme == "https"
    assert parsed.netloc == "sts.owlhub.io"
    query = parse_qs(parsed.query)
    assert query["Action"] == ["GetCallerIdentity"]
    assert query["X-Owlhub-Algorithm"] == ["OWLHUB4-HMAC-SHA256"]
    date = query["X-Owlhub-Date"][0]
    assert re.fullmatch(r"\d{8}T\d{6}Z", date)
    assert query["X-Owlhub-Credential"] == [
        f"AKID/{date[:8]}/us-east-1/sts/owlhub4_request"
    ]
    assert query["X-Owlhub-Expires"] == ["300"]
    assert query["X-Owlhub-Security-Token"] == ["TOKEN"]
    assert query["X-Owlhub-SignedHeaders"] == ["host"]
    assert len(query["X-Owlhub-Signature"][0]) == 64
    assert "Authorization" not in url
    assert "presigned-expires" not in url
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_presign_defaults_to_one_hour(sts: STS) -> None:
    url = await sts.get_signed_url("GetCallerIdentity")
    assert url is not None
    assert parse_qs(urlparse(url).query)["X-Owlhub-Expires"] == ["3600"]


@pytest.mark.asyncio
async def test_presign_rejects_expiry_over_one_week(sts: STS) -> None:
    with pytest.raises(OwlhubError) as e:
        await sts.get_signed_url("GetCallerIdentity", expires=604801)
    assert e.value.code == INVALID_EXPIRY_TIME


@pytest.mark.asyncio
async def test_presign_accepts_one_week(sts: STS) -> None:
    url = await sts.get_signed_url("GetCallerIdentity", expires=604800)
    assert url is not None


@pytest.mark.asyncio
async def test_presign_rejects_non_v4_signers(
    make_config: Callable[..., ClientConfig], static_credentials: Credentials
) -> None:
    sts = STS(make_config(credentials=static_credentials, signature_version="v2"))
    with pytest.raises(OwlhubError) as e:
        await sts.get_signed_url("GetCallerIdentity", expires=300)
    assert e.value.code == UNSUPPORTED_SIGNER


@pytest.mark.asyncio
async def test_presign_reports_to_callback(sts: STS) -> None:
    results: list[tuple[OwlhubError | None, str | None]] = []

    assert (
        await sts.get_signed_url(
            "GetCallerIdentity",
            expires=604801,
            callback=lambda error, url: results.append((error, url)),
        )
        is None
    )
    assert (
        await sts.get_signed_url(
            "GetCallerIdentity",
            expires=60,
            callback=lambda error, url: results.append((error, url)),
        )
        is None
    )

    (error, url), (no_error, signed_url) = results
    assert error is not None and error.code == INVALID_EXPIRY_TIME
    assert url is None
    assert no_error is None
    assert signed_url is not None and "X-Owlhub-Signature=" in signed_url


@pytest.mark.asyncio
async def test_before_presign_listeners_run(sts: STS) -> None:
    seen: list[str] = []
    sts.listeners.on("beforePresign", lambda request: seen.append(request.operation))

    await sts.get_signed_url("GetCallerIdentity")

    assert seen == ["GetCallerIdentity"]
