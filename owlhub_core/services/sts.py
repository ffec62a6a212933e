#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from typing import TYPE_CHECKING, Any, Final

from ..credentials import Credentials
from ..endpoints import regional_endpoint_for
from ..events import ListenerExecutor
from ..interfaces import CredentialsProvider
from ..service import Service, ServiceApi
from ..utils import parse_timestamp

if TYPE_CHECKING:
    from ..request import Request

logger: Final = logging.getLogger(__name__)


def opt_in_regional_endpoint(request: "Request") -> None:
    """Use the regional endpoint when ``sts_regional_endpoints`` asks for it."""
    service = request.service
    config = service.config
    if config.sts_regional_endpoints != "regional" or not service.is_global_endpoint:
        return
    regional = regional_endpoint_for(service.endpoint.netloc, config.region)
    logger.debug("Using regional endpoint %s", regional)
    request.http_request.update_endpoint(
        f"{service.endpoint.scheme}://{regional}"
    )
    request.http_request.region = config.region


class STS(Service):
    """Client for the security token service, the source of temporary credentials.

    Every operation returns the parsed response, whose ``Credentials`` entry holds
    ``AccessKeyId``, ``SecretAccessKey``, ``SessionToken`` and ``Expiration``.
    """

    api = ServiceApi(
        service_id="STS",
        endpoint_prefix="sts",
        api_version="2011-06-15",
        global_endpoint=True,
    )

    def _register_listeners(self, listeners: ListenerExecutor) -> None:
        listeners.on("validate", opt_in_regional_endpoint, prepend=True)

    async def get_session_token(
        self,
        params: dict[str, Any] | None = None,
        *,
        credentials: CredentialsProvider | None = None,
    ) -> dict[str, Any]:
        return await self.make_request(
            "GetSessionToken", params, credentials=credentials
        ).send()

    async def assume_role(
        self,
        params: dict[str, Any] | None = None,
        *,
        credentials: CredentialsProvider | None = None,
    ) -> dict[str, Any]:
        return await self.make_request(
            "AssumeRole", params, credentials=credentials
        ).send()

    async def assume_role_with_web_identity(
        self, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Exchange a web identity token for credentials.

        The request is not signed: the token is the proof of identity.
        """
        return await self.make_unauthenticated_request(
            "AssumeRoleWithWebIdentity", params
        ).send()

    def credentials_from(
        self, data: dict[str, Any] | None, credentials: Credentials | None = None
    ) -> Credentials | None:
        """Copy the credentials of an operation response into ``credentials``.

        A new :py:class:`Credentials` is created when none is given.
        """
        if not data:
            return None
        if credentials is None:
            credentials = Credentials()
        fields = data["Credentials"]
        credentials.expired = False
        credentials.access_key_id = fields["AccessKeyId"]
        credentials.secret_access_key = fields["SecretAccessKey"]
        credentials.session_token = fields.get("SessionToken")
        expiration = fields.get("Expiration")
        credentials.expire_time = (
            parse_timestamp(expiration) if expiration is not None else None
        )
        return credentials
