#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import json
import logging
from collections.abc import Mapping
from datetime import datetime
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Final

from ._http import Field, HTTPResponse
from .exceptions import SERIALIZATION_ERROR, OwlhubError
from .utils import iso8601, query_params_to_string

if TYPE_CHECKING:
    from .request import Request, Response

logger: Final = logging.getLogger(__name__)

CONTENT_TYPE: Final = "application/x-www-form-urlencoded; charset=utf-8"
REQUEST_ID_FIELD: Final = "X-Owlhub-Request-Id"


def flatten_params(params: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested operation parameters into query-style names.

    Lists become ``Name.member.N`` (counting from 1) and mappings become ``Name.Key``.
    ``None`` values are dropped.
    """
    flat: dict[str, Any] = {}
    for name, value in params.items():
        key = f"{prefix}{name}"
        if value is None:
            continue
        if isinstance(value, Mapping):
            flat.update(flatten_params(value, f"{key}."))
        elif isinstance(value, list | tuple):
            for index, member in enumerate(value, start=1):
                member_key = f"{key}.member.{index}"
                if isinstance(member, Mapping):
                    flat.update(flatten_params(member, f"{member_key}."))
                else:
                    flat[member_key] = _serialize_scalar(member)
        else:
            flat[key] = _serialize_scalar(value)
    return flat


def _serialize_scalar(value: Any) -> Any:
    if isinstance(value, datetime):
        return iso8601(value)
    return value


def _status_code_name(status_code: int) -> str:
    if status_code == 304:
        return "NotModified"
    try:
        return HTTPStatus(status_code).phrase.replace(" ", "")
    except ValueError:
        return "UnknownError"


def _load_json(body: bytes) -> Any:
    return json.loads(body.decode("utf-8"))


class QueryProtocol:
    """Form-encoded requests with JSON responses.

    Presigned requests carry their parameters in the query string of a ``GET``.
    """

    def build(self, request: "Request") -> None:
        http_request = request.http_request
        params: dict[str, Any] = {
            "Action": request.operation,
            "Version": request.service.api.api_version,
        }
        params.update(flatten_params(request.params))
        http_request.params = params

        if http_request.is_presigned:
            http_request.method = "GET"
            query = query_params_to_string(params)
            http_request.path = f"{http_request.pathname()}?{query}"
            http_request.body = ""
        else:
            http_request.method = "POST"
            http_request.fields.set_field(
                Field(name="Content-Type", values=[CONTENT_TYPE])
            )
            http_request.body = query_params_to_string(params)

    def extract_data(self, response: "Response") -> None:
        http_response = response.http_response
        assert http_response is not None
        response.request_id = http_response.fields.get_value(REQUEST_ID_FIELD)
        if not http_response.body:
            response.data = {}
            return
        try:
            data = _load_json(http_response.body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise OwlhubError(
                "Unable to parse response body",
                code=SERIALIZATION_ERROR,
                status_code=http_response.status_code,
                request_id=response.request_id,
            ) from e
        if not isinstance(data, dict):
            raise OwlhubError(
                "Expected a JSON object in the response body",
                code=SERIALIZATION_ERROR,
                status_code=http_response.status_code,
                request_id=response.request_id,
            )
        response.request_id = (
            data.pop("ResponseMetadata", {}).get("RequestId") or response.request_id
        )
        response.data = data

    def extract_error(self, response: "Response") -> None:
        http_response = response.http_response
        assert http_response is not None
        request_id = http_response.fields.get_value(REQUEST_ID_FIELD)
        code = _status_code_name(http_response.status_code)
        message: str | None = None

        try:
            body = _load_json(http_response.body) if http_response.body else None
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.debug("Unable to parse error body of a %s response", code)
            body = None
        if isinstance(body, dict):
            error = body.get("Error")
            if isinstance(error, dict):
                code = error.get("Code") or code
                message = error.get("Message")
            request_id = body.get("RequestId") or request_id

        response.request_id = request_id
        response.error = OwlhubError(
            message or code,
            code=code,
            status_code=http_response.status_code,
            request_id=request_id,
            retry_after=_retry_after(http_response),
        )


def _retry_after(http_response: HTTPResponse) -> float | None:
    value = http_response.fields.get_value("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
