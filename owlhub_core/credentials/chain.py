#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Final

from ..exceptions import CREDENTIALS_ERROR, OwlhubError
from ..interfaces import CredentialsProvider, CredentialsResolver
from ..shared_ini import IniLoader
from .process import ProcessCredentials
from .static import EnvironmentCredentials
from .web_identity import TokenFileWebIdentityCredentials

logger: Final = logging.getLogger(__name__)

type ProviderSource = CredentialsProvider | Callable[[], CredentialsProvider]


class CredentialProviderChain(CredentialsResolver):
    """Resolves credentials by trying a sequence of providers in order.

    Entries may be providers or factories that create one. The first provider that
    loads both keys is returned, and returned again by later calls. Concurrent callers
    share a single pass over the chain.
    """

    def __init__(self, providers: Sequence[ProviderSource]) -> None:
        self.providers = list(providers)
        self._resolved: CredentialsProvider | None = None
        self._lock = asyncio.Lock()

    async def resolve(self) -> CredentialsProvider:
        async with self._lock:
            if self._resolved is None:
                self._resolved = await self._resolve_first()
            return self._resolved

    async def _resolve_first(self) -> CredentialsProvider:
        logger.debug("Attempting to resolve credentials from provider chain.")
        for source in self.providers:
            provider = source() if callable(source) else source
            try:
                logger.debug("Resolving credentials from %s.", type(provider))
                await provider.get()
            except OwlhubError as e:
                logger.debug(
                    "Failed to resolve credentials from %s: %s", type(provider), e
                )
                continue
            if provider.access_key_id and provider.secret_access_key:
                return provider

        raise OwlhubError(
            "Could not load credentials from any providers",
            code=CREDENTIALS_ERROR,
        )


def create_default_chain(
    *,
    static: CredentialsProvider | None = None,
    environ: Mapping[str, str] | None = None,
    ini_loader: IniLoader | None = None,
) -> CredentialProviderChain:
    """Creates the default credential provider chain.

    :param static: Credentials to try before any other source.
    """
    providers: list[ProviderSource] = []
    if static is not None:
        providers.append(static)
    providers.extend(
        (
            lambda: EnvironmentCredentials("OWLHUB", environ=environ),
            lambda: TokenFileWebIdentityCredentials(
                environ=environ, ini_loader=ini_loader
            ),
            lambda: ProcessCredentials(environ=environ, ini_loader=ini_loader),
        )
    )
    return CredentialProviderChain(providers)
