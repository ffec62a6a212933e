#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import os
from collections.abc import Mapping

from ..exceptions import CREDENTIALS_ERROR, OwlhubError
from ..utils import parse_timestamp
from . import Credentials


class EnvironmentCredentials(Credentials):
    """Reads credentials from ``{prefix}_ACCESS_KEY_ID`` and related variables.

    ``{prefix}_SESSION_TOKEN`` and ``{prefix}_CREDENTIAL_EXPIRATION`` are optional.
    """

    def __init__(
        self, prefix: str = "OWLHUB", *, environ: Mapping[str, str] | None = None
    ):
        super().__init__()
        self.expired = True
        self.env_prefix = prefix
        self._environ = os.environ if environ is None else environ

    async def load(self) -> None:
        values: dict[str, str | None] = {}
        for name in ("ACCESS_KEY_ID", "SECRET_ACCESS_KEY", "SESSION_TOKEN"):
            variable = f"{self.env_prefix}_{name}"
            value = self._environ.get(variable)
            if value is None and name != "SESSION_TOKEN":
                raise OwlhubError(
                    f"Variable {variable} not set.", code=CREDENTIALS_ERROR
                )
            values[name] = value

        expiration = self._environ.get(f"{self.env_prefix}_CREDENTIAL_EXPIRATION")
        self.access_key_id = values["ACCESS_KEY_ID"]
        self.secret_access_key = values["SECRET_ACCESS_KEY"]
        self.session_token = values["SESSION_TOKEN"]
        self.expire_time = parse_timestamp(expiration) if expiration else None
        self.expired = False
