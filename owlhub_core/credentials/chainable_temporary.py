#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from collections.abc import Awaitable, Callable
from inspect import isawaitable
from typing import Any, Final

from ..config import ClientConfig
from ..exceptions import CHAINABLE_TEMPORARY_CREDENTIALS_FAILURE, OwlhubError
from ..interfaces import CredentialsProvider
from ..services.sts import STS
from . import Credentials
from .temporary import DEFAULT_ROLE_SESSION_NAME

logger: Final = logging.getLogger(__name__)

type TokenCodeFn = Callable[[str], str | Awaitable[str]]


class ChainableTemporaryCredentials(Credentials):
    """Temporary credentials that can be refreshed through a chain of roles.

    The STS client is created here and holds the master credentials provider itself,
    so every refresh authenticates with whatever the master currently holds. A role
    assumed from another :py:class:`ChainableTemporaryCredentials` therefore keeps
    working after the intermediate role's credentials are refreshed.

    For example, to use role A, which can only be assumed from role B::

        credentials = ChainableTemporaryCredentials(
            params={"RoleOrn": "RoleA"},
            master_credentials=ChainableTemporaryCredentials(
                params={"RoleOrn": "RoleB"},
            ),
        )
    """

    def __init__(
        self,
        *,
        params: dict[str, Any] | None = None,
        master_credentials: CredentialsProvider | None = None,
        token_code_fn: TokenCodeFn | None = None,
        sts_config: ClientConfig | None = None,
    ):
        """
        :param params: Parameters for ``AssumeRole``, or for ``GetSessionToken`` if no
            ``RoleOrn`` is given.
        :param master_credentials: The credentials that authenticate the STS calls.
            Defaults to the credentials of ``sts_config``.
        :param token_code_fn: Called with the ``SerialNumber`` parameter to obtain an
            MFA ``TokenCode``. Required when ``params`` includes ``SerialNumber``. May
            return the code or an awaitable of it.
        :param sts_config: Configuration for the underlying STS client.
        """
        super().__init__()
        self.expired = True
        params = dict(params or {})
        if params.get("RoleOrn"):
            params.setdefault("RoleSessionName", DEFAULT_ROLE_SESSION_NAME)
        self.token_code_fn: TokenCodeFn | None = None
        if params.get("SerialNumber"):
            if not callable(token_code_fn):
                raise OwlhubError(
                    "token_code_fn must be a function when params.SerialNumber is set",
                    code=CHAINABLE_TEMPORARY_CREDENTIALS_FAILURE,
                )
            self.token_code_fn = token_code_fn

        overrides: dict[str, Any] = {"params": params}
        if master_credentials is not None:
            overrides["credentials"] = master_credentials
        self.service = STS(sts_config, **overrides)

    async def load(self) -> None:
        params = self.service.config.params
        token_code = await self._get_token_code()
        call_params = {"TokenCode": token_code} if token_code else {}
        if params.get("RoleOrn"):
            data = await self.service.assume_role(call_params)
        else:
            data = await self.service.get_session_token(call_params)
        self.service.credentials_from(data, self)
        logger.debug("Loaded chainable temporary credentials")

    async def _get_token_code(self) -> str | None:
        if self.token_code_fn is None:
            return None
        try:
            token_code = self.token_code_fn(self.service.config.params["SerialNumber"])
            if isawaitable(token_code):
                token_code = await token_code
        except Exception as e:
            raise OwlhubError(
                f"Error fetching MFA token: {e}",
                code=CHAINABLE_TEMPORARY_CREDENTIALS_FAILURE,
            ) from e
        return token_code
