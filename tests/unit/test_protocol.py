#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from owlhub_core._http import HTTPResponse, tuples_to_fields
from owlhub_core.exceptions import SERIALIZATION_ERROR, OwlhubError
from owlhub_core.protocol import QueryProtocol, flatten_params
from owlhub_core.request import Response


def _response(
    status: int = 200, body: bytes = b"", headers: list[tuple[str, str]] | None = None
) -> Response:
    response = Response(MagicMock())
    response.http_response = HTTPResponse(
        status_code=status, fields=tuples_to_fields(headers or []), body=body
    )
    return response


def test_flatten_params() -> None:
    flat = flatten_params(
        {
            "Name": "thing",
            "Tags": [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "2"}],
            "Ids": ["x", "y"],
            "Attributes": {"Color": "red"},
            "Since": datetime(2020, 1, 1, tzinfo=UTC),
            "Skipped": None,
        }
    )

    assert flat == {
        "Name": "thing",
        "Tags.member.1.Key": "a",
        "Tags.member.1.Value": "1",
        "Tags.member.2.Key": "b",
        "Tags.member.2.Value": "2",
        "Ids.member.1": "x",
        "Ids.member.2": "y",
        "Attributes.Color": "red",
        "Since": "2020-01-01T00:00:00Z",
    }


def test_extract_data() -> None:
    response = _response(
        body=b'{"Value": 1, "ResponseMetadata": {"RequestId": "req-body"}}',
        headers=[("X-Owlhub-Request-Id", "req-header")],
    )
    QueryProtocol().extract_data(response)

    assert response.data == {"Value": 1}
    assert response.request_id == "req-body"


def test_extract_data_empty_body() -> None:
    response = _response(headers=[("X-Owlhub-Request-Id", "req-header")])
    QueryProtocol().extract_data(response)

    assert response.data == {}
    assert response.request_id == "req-header"


@pytest.mark.parametrize("body", [b"{not json", b"[1, 2]", b"\xff"])
def test_extract_data_malformed_body(body: bytes) -> None:
    with pytest.raises(OwlhubError) as e:
        QueryProtocol().extract_data(_response(body=body))
    assert e.value.code == SERIALIZATION_ERROR
    assert e.value.retryable is False


def test_extract_error_from_body() -> None:
    response = _response(
        status=400,
        body=b'{"Error": {"Code": "InvalidInput", "Message": "No"}, "RequestId": "r"}',
        headers=[("Retry-After", "3")],
    )
    QueryProtocol().extract_error(response)

    error = response.error
    assert error is not None
    assert error.code == "InvalidInput"
    assert error.message == "No"
    assert error.status_code == 400
    assert error.request_id == "r"
    assert error.retry_after == 3.0


@pytest.mark.parametrize(
    "status, body, code",
    [
        (503, b"", "ServiceUnavailable"),
        (500, b"<html>oops</html>", "InternalServerError"),
        (304, b"", "NotModified"),
        (404, b'{"Error": {}}', "NotFound"),
        (599, b"", "UnknownError"),
    ],
)
def test_extract_error_from_status(status: int, body: bytes, code: str) -> None:
    response = _response(status=status, body=body)
    QueryProtocol().extract_error(response)

    assert response.error is not None
    assert response.error.code == code
    assert response.error.message == code
