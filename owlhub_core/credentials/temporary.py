#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from typing import Any, Final

from ..config import ClientConfig
from ..interfaces import CredentialsProvider
from ..services.sts import STS
from . import Credentials

logger: Final = logging.getLogger(__name__)

DEFAULT_ROLE_SESSION_NAME: Final = "temporary-credentials"


class TemporaryCredentials(Credentials):
    """Temporary credentials from ``AssumeRole`` or ``GetSessionToken``.

    ``AssumeRole`` is used when ``params`` names a ``RoleOrn``.

    The master credentials are followed to the root of any chain of temporary
    credentials when this object is created, and the root is what authenticates every
    refresh. Use :py:class:`ChainableTemporaryCredentials` to refresh through
    intermediate roles.
    """

    def __init__(
        self,
        params: dict[str, Any] | None = None,
        master_credentials: CredentialsProvider | None = None,
        *,
        config: ClientConfig | None = None,
    ):
        """
        :param params: Parameters for the operation that mints the credentials.
        :param master_credentials: The credentials that authenticate that operation.
            Defaults to the credentials of ``config``.
        :param config: Configuration for the underlying STS client.
        """
        super().__init__()
        self.expired = True
        self.params: dict[str, Any] = params if params is not None else {}
        if self.params.get("RoleOrn"):
            self.params.setdefault("RoleSessionName", DEFAULT_ROLE_SESSION_NAME)
        self.master_credentials = self._root_of(master_credentials)
        self._config = config
        self.service: STS | None = None

    @staticmethod
    def _root_of(
        credentials: CredentialsProvider | None,
    ) -> CredentialsProvider | None:
        while isinstance(getattr(credentials, "master_credentials", None), Credentials):
            credentials = credentials.master_credentials  # type: ignore[union-attr]
        return credentials

    def create_clients(self) -> STS:
        if self.service is None:
            self.service = STS(self._config, params=self.params)
        return self.service

    async def load(self) -> None:
        service = self.create_clients()
        master = self.master_credentials
        if master is None:
            master = await service.config.get_credentials()
        else:
            await master.get()

        if self.params.get("RoleOrn"):
            data = await service.assume_role(credentials=master)
        else:
            data = await service.get_session_token(credentials=master)
        service.credentials_from(data, self)
        logger.debug("Loaded temporary credentials")
