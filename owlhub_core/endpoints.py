#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, Final, TypedDict

from cachetools import TLRUCache

from .exceptions import CONFIG_ERROR, OwlhubError

logger: Final = logging.getLogger(__name__)

DOMAIN_SUFFIX: Final = ".owlhub.io"
REGIONAL_ENDPOINT_VALUES: Final = ("legacy", "regional")
DEFAULT_REGIONAL_ENDPOINTS_FLAG: Final = "legacy"
DEFAULT_ENDPOINT_CACHE_SIZE: Final = 1000


def validate_regional_endpoints_flag(value: Any, description: str) -> str | None:
    """Normalize a flag value, rejecting anything other than legacy or regional."""
    if not isinstance(value, str):
        return None
    if value.lower() in REGIONAL_ENDPOINT_VALUES:
        return value.lower()
    raise OwlhubError(
        f'Invalid {description}. Expect "legacy" or "regional". Got "{value}".',
        code=CONFIG_ERROR,
    )


def resolve_regional_endpoints_flag(
    client_value: str | None,
    *,
    env_var: str,
    config_key: str,
    environ: Mapping[str, str],
    profile: Mapping[str, str] | None = None,
) -> str:
    """Resolve whether a global service should use its regional endpoint.

    Precedence is the client configuration, then the environment variable, then the
    active shared config profile, then ``legacy``.
    """
    if client_value:
        resolved = validate_regional_endpoints_flag(
            client_value, f'"{config_key}" configuration'
        )
        if resolved:
            return resolved
    if env_var in environ:
        resolved = validate_regional_endpoints_flag(
            environ[env_var], f"environment variable {env_var}"
        )
        if resolved:
            return resolved
    if profile is not None and config_key in profile:
        resolved = validate_regional_endpoints_flag(
            profile[config_key], f'"{config_key}" in shared config'
        )
        if resolved:
            return resolved
    return DEFAULT_REGIONAL_ENDPOINTS_FLAG


def regional_endpoint_for(endpoint: str, region: str | None) -> str:
    """Insert ``region`` into a global endpoint just before the domain suffix.

    :raises OwlhubError: With code ``ConfigError`` if no region is given.
    """
    if not region:
        raise OwlhubError("Missing region in config", code=CONFIG_ERROR)
    insert_point = endpoint.find(DOMAIN_SUFFIX)
    if insert_point < 0:
        return endpoint
    return f"{endpoint[:insert_point]}.{region}{endpoint[insert_point:]}"


class EndpointRecord(TypedDict):
    Address: str
    CachePeriodInMinutes: int


def _expiry(key: str, value: list[EndpointRecord], now: float) -> float:
    period = min((record["CachePeriodInMinutes"] for record in value), default=0)
    return now + period * 60


class EndpointCache:
    """A bounded cache of discovered endpoints.

    Entries expire after the shortest ``CachePeriodInMinutes`` of their records. Once
    full, the least recently used entry is evicted.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_ENDPOINT_CACHE_SIZE,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._cache: TLRUCache[str, list[EndpointRecord]] = TLRUCache(
            maxsize=maxsize, ttu=_expiry, timer=timer
        )

    @property
    def maxsize(self) -> int:
        return int(self._cache.maxsize)

    @staticmethod
    def get_key_string(key: Mapping[str, str | None]) -> str:
        """Join the defined values of ``key`` in the order of their sorted names."""
        return " ".join(
            str(key[name]) for name in sorted(key) if key[name] is not None
        )

    def get(self, key: Mapping[str, str | None] | str) -> list[EndpointRecord] | None:
        key_string = key if isinstance(key, str) else self.get_key_string(key)
        records = self._cache.get(key_string)
        logger.debug(
            "Endpoint cache %s for %r",
            "hit" if records is not None else "miss",
            key_string,
        )
        return records

    def put(
        self, key: Mapping[str, str | None] | str, value: list[EndpointRecord]
    ) -> None:
        key_string = key if isinstance(key, str) else self.get_key_string(key)
        self._cache[key_string] = value

    def remove(self, key: Mapping[str, str | None] | str) -> None:
        key_string = key if isinstance(key, str) else self.get_key_string(key)
        self._cache.pop(key_string, None)

    def empty(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


_ENDPOINT_CACHE: EndpointCache | None = None


def get_endpoint_cache(size: int = DEFAULT_ENDPOINT_CACHE_SIZE) -> EndpointCache:
    """The process-wide endpoint cache, created on first access with ``size`` slots."""
    global _ENDPOINT_CACHE
    if _ENDPOINT_CACHE is None:
        _ENDPOINT_CACHE = EndpointCache(maxsize=size)
    return _ENDPOINT_CACHE
