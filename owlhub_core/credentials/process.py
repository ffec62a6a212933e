#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
import configparser
import json
import logging
import os
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

from ..exceptions import PROCESS_CREDENTIALS_FAILURE, OwlhubError
from ..shared_ini import (
    IniLoader,
    get_default_ini_loader,
    get_profile_name,
    get_profiles_from_shared_config,
)
from ..utils import parse_timestamp
from . import Credentials

logger: Final = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


def _failure(message: str) -> OwlhubError:
    return OwlhubError(message, code=PROCESS_CREDENTIALS_FAILURE)


class ProcessCredentials(Credentials):
    """Credentials printed as JSON by the ``credential_process`` of a profile.

    The command's output must be an object with ``Version`` 1, ``AccessKeyId``,
    ``SecretAccessKey`` and optionally ``SessionToken`` and ``Expiration``.
    """

    def __init__(
        self,
        *,
        profile: str | None = None,
        filename: str | Path | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        environ: Mapping[str, str] | None = None,
        ini_loader: IniLoader | None = None,
    ):
        """
        :param profile: The profile to read. Defaults to ``OWLHUB_PROFILE``, then
            ``default``.
        :param filename: The shared credentials file to read the profile from.
        :param timeout: Seconds the command may run before it is considered failed.
        """
        super().__init__()
        self.expired = True
        self._environ = os.environ if environ is None else environ
        self.profile = get_profile_name(profile, self._environ)
        self.filename = filename
        self.timeout = timeout
        self._ini_loader = ini_loader or get_default_ini_loader()

    async def load(self) -> None:
        try:
            profiles = get_profiles_from_shared_config(self._ini_loader, self.filename)
        except (OSError, ValueError, configparser.Error) as e:
            raise _failure(f"Unable to read shared config: {e}") from e
        profile = profiles.get(self.profile)
        if not profile:
            raise _failure(f"Profile {self.profile} not found")
        command = profile.get("credential_process")
        if not command:
            raise _failure(
                f"Profile {self.profile} did not include credential process"
            )

        payload = await self._run(command)
        self.access_key_id = payload["AccessKeyId"]
        self.secret_access_key = payload["SecretAccessKey"]
        self.session_token = payload.get("SessionToken")
        expiration = payload.get("Expiration")
        self.expire_time = parse_timestamp(expiration) if expiration else None
        self.expired = False

    async def _run(self, command: str) -> dict[str, Any]:
        logger.debug("Running credential process for profile %s", self.profile)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(self._environ),
            )
        except OSError as e:
            raise _failure(f"credential_process could not be started: {e}") from e
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except TimeoutError as e:
            process.kill()
            raise _failure(
                f"credential_process timed out after {self.timeout} seconds"
            ) from e

        if process.returncode != 0:
            raise _failure(
                "credential_process failed with non-zero exit code: "
                f"{stderr.decode('utf-8', errors='replace')}"
            )
        try:
            payload = json.loads(stdout.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise _failure(f"credential_process returned invalid JSON: {e}") from e

        return self._validate(payload)

    def _validate(self, payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise _failure("credential_process did not return a JSON object")
        if payload.get("Version") != 1:
            raise _failure("credential_process does not return Version == 1")
        if not payload.get("AccessKeyId") or not payload.get("SecretAccessKey"):
            raise _failure(
                "credential_process did not return AccessKeyId and SecretAccessKey"
            )
        expiration = payload.get("Expiration")
        if expiration:
            try:
                expire_time = parse_timestamp(expiration)
            except (TypeError, ValueError) as e:
                raise _failure(
                    f"credential_process returned invalid Expiration: {e}"
                ) from e
            if expire_time < datetime.now(UTC):
                raise _failure("credential_process returned expired credentials")
        return payload

    async def refresh(self) -> None:
        """Reload the credentials, re-reading the shared files first."""
        self._ini_loader.clear_cached_files()
        await self.coalesce_refresh()
