#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import configparser
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from ..config import ClientConfig
from ..exceptions import WEB_IDENTITY_CREDENTIALS_FAILURE, OwlhubError
from ..services.sts import STS
from ..shared_ini import (
    IniLoader,
    Profiles,
    get_default_ini_loader,
    get_profile_name,
    get_profiles_from_shared_config,
)
from . import Credentials

logger: Final = logging.getLogger(__name__)

ENV_TOKEN_FILE: Final = "OWLHUB_WEB_IDENTITY_TOKEN_FILE"
ENV_ROLE_ORN: Final = "OWLHUB_ROLE_ORN"
ENV_ROLE_SESSION_NAME: Final = "OWLHUB_ROLE_SESSION_NAME"
DEFAULT_ROLE_SESSION_NAME: Final = "token-file-web-identity"

_IDENTITY_PROVIDER_RETRYABLE_CODES: Final = frozenset(
    {"IDPCommunicationErrorException", "InvalidIdentityToken"}
)


def _failure(message: str) -> OwlhubError:
    return OwlhubError(message, code=WEB_IDENTITY_CREDENTIALS_FAILURE)


@dataclass(kw_only=True)
class RoleHop:
    """One role assumption in a web identity role chain."""

    role_orn: str | None
    role_session_name: str | None = None
    token_file: str | None = None
    """Only set on the first hop, which exchanges the token itself."""

    def operation_params(self) -> dict[str, Any]:
        return {
            "RoleOrn": self.role_orn,
            "RoleSessionName": self.role_session_name or DEFAULT_ROLE_SESSION_NAME,
        }


class _WebIdentityTokenSTS(STS):
    def retryable_error(self, error: OwlhubError) -> bool:
        if error.code in _IDENTITY_PROVIDER_RETRYABLE_CODES:
            return True
        return super().retryable_error(error)


class TokenFileWebIdentityCredentials(Credentials):
    """Credentials obtained by exchanging an OIDC token read from a file.

    The token file and role come from ``OWLHUB_WEB_IDENTITY_TOKEN_FILE`` and
    ``OWLHUB_ROLE_ORN`` when both are set. Otherwise the active profile is read from
    the shared config. A profile without ``web_identity_token_file`` may name a
    ``source_profile``, and its ``role_orn`` is then assumed with the credentials of
    that source profile, so roles can be chained back to the profile holding the
    token file.
    """

    def __init__(
        self,
        *,
        client_config: ClientConfig | None = None,
        environ: Mapping[str, str] | None = None,
        ini_loader: IniLoader | None = None,
        profile: str | None = None,
    ):
        """
        :param client_config: Configuration for the underlying STS client.
        :param profile: The profile to start from. Defaults to ``OWLHUB_PROFILE``,
            then ``default``.
        """
        super().__init__()
        self.expired = True
        self.client_config = client_config
        self._environ = os.environ if environ is None else environ
        self._ini_loader = ini_loader or get_default_ini_loader()
        self.profile = get_profile_name(profile, self._environ)
        self.service: STS | None = None

    def get_hops_from_env(self) -> list[RoleHop] | None:
        token_file = self._environ.get(ENV_TOKEN_FILE)
        role_orn = self._environ.get(ENV_ROLE_ORN)
        if not (token_file and role_orn):
            return None
        return [
            RoleHop(
                token_file=token_file,
                role_orn=role_orn,
                role_session_name=self._environ.get(ENV_ROLE_SESSION_NAME),
            )
        ]

    def get_hops_from_shared_config(self) -> list[RoleHop]:
        """Walk ``source_profile`` links back to the profile holding the token file.

        The hops are returned root first, in the order they must be assumed.
        """
        try:
            profiles: Profiles = get_profiles_from_shared_config(self._ini_loader)
        except (OSError, ValueError, configparser.Error) as e:
            raise _failure(f"Unable to read shared config: {e}") from e

        name = self.profile
        profile = profiles.get(name)
        if not profile:
            raise _failure(f"Profile {name} not found")

        hops: list[RoleHop] = []
        visited = {name}
        while not profile.get("web_identity_token_file") and profile.get(
            "source_profile"
        ):
            hops.insert(
                0,
                RoleHop(
                    role_orn=profile.get("role_orn"),
                    role_session_name=profile.get("role_session_name"),
                ),
            )
            name = profile["source_profile"]
            if name in visited:
                raise _failure(f"Circular source_profile reference at profile {name}")
            visited.add(name)
            source = profiles.get(name)
            if not source:
                raise _failure(f"Source profile {name} not found")
            profile = source

        token_file = profile.get("web_identity_token_file")
        if not token_file:
            raise _failure(f"Profile {name} did not include web_identity_token_file")
        hops.insert(
            0,
            RoleHop(
                token_file=token_file,
                role_orn=profile.get("role_orn"),
                role_session_name=profile.get("role_session_name"),
            ),
        )
        return hops

    def create_clients(self) -> STS:
        if self.service is None:
            config = self.client_config or ClientConfig(
                environ=self._environ, ini_loader=self._ini_loader
            )
            self.service = _WebIdentityTokenSTS(config)
        return self.service

    async def load(self) -> None:
        hops = self.get_hops_from_env() or self.get_hops_from_shared_config()
        first, *chain = hops
        token = self._read_token(first.token_file)
        service = self.create_clients()

        logger.debug("Exchanging web identity token for role %s", first.role_orn)
        data = await service.assume_role_with_web_identity(
            {"WebIdentityToken": token, **first.operation_params()}
        )
        for hop in chain:
            logger.debug("Assuming chained role %s", hop.role_orn)
            data = await service.assume_role(
                hop.operation_params(), credentials=service.credentials_from(data)
            )
        service.credentials_from(data, self)

    @staticmethod
    def _read_token(token_file: str | None) -> str:
        if not token_file:
            raise _failure("No web identity token file configured")
        try:
            return Path(token_file).read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as e:
            raise _failure(f"Unable to read web identity token file: {e}") from e
