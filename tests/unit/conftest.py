#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from owlhub_core.config import ClientConfig
from owlhub_core.credentials import Credentials
from owlhub_core.retries import ExponentialRetryBackoffStrategy, SimpleRetryStrategy
from owlhub_core.shared_ini import IniLoader
from owlhub_core.signers.v4 import clear_signing_key_cache
from owlhub_core.testing import MockTransport


@pytest.fixture
def home(tmp_path: Path) -> Path:
    (tmp_path / ".owlhub").mkdir()
    return tmp_path


@pytest.fixture
def environ(home: Path) -> dict[str, str]:
    return {"HOME": str(home)}


@pytest.fixture
def ini_loader(environ: dict[str, str]) -> IniLoader:
    return IniLoader(environ=environ)


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def make_config(
    environ: dict[str, str], ini_loader: IniLoader, transport: MockTransport
) -> Callable[..., ClientConfig]:
    def _make_config(**kwargs: Any) -> ClientConfig:
        kwargs.setdefault("transport", transport)
        kwargs.setdefault("region", "us-west-2")
        kwargs.setdefault(
            "retry_strategy",
            SimpleRetryStrategy(
                backoff_strategy=ExponentialRetryBackoffStrategy(backoff_scale_value=0),
                max_attempts=kwargs.get("max_retries", 3) + 1,
            ),
        )
        return ClientConfig(environ=environ, ini_loader=ini_loader, **kwargs)

    return _make_config


@pytest.fixture
def static_credentials() -> Credentials:
    return Credentials("AKID", "SECRET", "TOKEN")


@pytest.fixture(autouse=True)
def _clear_signing_key_cache() -> None:
    clear_signing_key_cache()


def _sts_credentials_body(
    access_key_id: str = "ASIA1",
    secret_access_key: str = "SECRET1",
    session_token: str = "TOKEN1",
    expiration: str = "2100-01-01T00:00:00Z",
) -> dict[str, Any]:
    return {
        "Credentials": {
            "AccessKeyId": access_key_id,
            "SecretAccessKey": secret_access_key,
            "SessionToken": session_token,
            "Expiration": expiration,
        }
    }


@pytest.fixture
def sts_credentials_body() -> Callable[..., dict[str, Any]]:
    """Build the body of an STS response carrying credentials."""
    return _sts_credentials_body
