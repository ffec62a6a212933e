#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
import os
from collections.abc import Mapping
from typing import Any, ClassVar, Final, Literal

from ._http import URI
from .credentials import Credentials
from .endpoints import (
    DEFAULT_ENDPOINT_CACHE_SIZE,
    resolve_regional_endpoints_flag,
)
from .exceptions import CONFIG_ERROR, CREDENTIALS_ERROR, OwlhubError
from .interfaces import CredentialsProvider, CredentialsResolver, Transport
from .interfaces.retries import RetryStrategy
from .retries import SimpleRetryStrategy
from .shared_ini import (
    DEFAULT_PROFILE,
    IniLoader,
    get_default_ini_loader,
    get_profile_name,
)

logger: Final = logging.getLogger(__name__)

SOURCE_CONSTRUCTOR = "constructor"
SOURCE_ENVIRONMENT = "environment"
SOURCE_CREDENTIALS_FILE = "credentials_file"
SOURCE_CONFIG_FILE = "config_file"
SOURCE_DEFAULT = "default"
SOURCE_IN_CODE_UPDATE = "in_code_update"

SourceType = Literal[
    "constructor",
    "environment",
    "credentials_file",
    "config_file",
    "default",
    "in_code_update",
]

ENV_STS_REGIONAL_ENDPOINTS: Final = "OWLHUB_STS_REGIONAL_ENDPOINTS"
CONFIG_STS_REGIONAL_ENDPOINTS: Final = "sts_regional_endpoints"


class ConfigValue:
    """Configuration value with metadata about its source"""

    def __init__(self, value: Any, source: SourceType):
        self.value = value
        self.source = source

    def __repr__(self) -> str:
        return f"ConfigValue({self.value!r}, {self.source!r})"


class ClientConfig:
    """Client configuration with precedence-based resolution.

    Each field is resolved from, in order: the constructor, the environment, the active
    profile of the shared config file, the same profile of the shared credentials file,
    and finally the field's default. The source of every value is kept and can be
    inspected with :py:meth:`get_config_value_object`.

    The constructor uses the sentinel value (...) so that "not provided" can be told
    apart from "explicitly set to None".

    HOW TO ADD A NEW CONFIG FIELD:

    1. Add the parameter to ``__init__`` with the sentinel default.

    2. Add it to ``CONFIG_FIELDS`` with a ``default`` and a ``type``, and optionally an
       ``env_var``, a ``config_key`` and a ``validator`` method name. Fields that need
       custom resolution define ``_resolve_<field_name>`` instead.

    3. Add a property getter and setter. The setter records ``in_code_update``.
    """

    CONFIG_FIELDS: ClassVar[dict[str, dict[str, Any]]] = {
        "profile": {
            "default": None,
            "type": str | None,
        },
        "region": {
            "env_var": "OWLHUB_REGION",
            "config_key": "region",
            "default": None,
            "type": str | None,
        },
        "endpoint": {
            "env_var": "OWLHUB_ENDPOINT_URL",
            "config_key": "endpoint_url",
            "default": None,
            "validator": "_validate_endpoint",
        },
        "access_key_id": {
            "env_var": "OWLHUB_ACCESS_KEY_ID",
            "config_key": "owlhub_access_key_id",
            "default": None,
            "type": str | None,
        },
        "secret_access_key": {
            "env_var": "OWLHUB_SECRET_ACCESS_KEY",
            "config_key": "owlhub_secret_access_key",
            "default": None,
            "type": str | None,
        },
        "session_token": {
            "env_var": "OWLHUB_SESSION_TOKEN",
            "config_key": "owlhub_session_token",
            "default": None,
            "type": str | None,
        },
        "credentials": {
            "default": None,
            "type": CredentialsProvider | None,
        },
        "credential_provider": {
            "default": None,
            "type": CredentialsResolver | None,
        },
        "sts_regional_endpoints": {
            "default": "legacy",
            "type": str,
        },
        "signature_version": {
            "default": None,
            "type": str | None,
        },
        "max_retries": {
            "default": 3,
            "type": int,
        },
        "retry_strategy": {
            "default": None,
            "type": RetryStrategy,
        },
        "http_timeout": {
            "default": 120.0,
            "type": int | float | None,
        },
        "transport": {
            "default": None,
            "type": Transport | None,
        },
        "params": {
            "default": None,
            "validator": "_validate_params",
        },
        "endpoint_discovery_enabled": {
            "env_var": "OWLHUB_ENABLE_ENDPOINT_DISCOVERY",
            "config_key": "endpoint_discovery_enabled",
            "default": False,
            "validator": "_validate_bool",
        },
        "endpoint_cache_size": {
            "default": DEFAULT_ENDPOINT_CACHE_SIZE,
            "type": int,
        },
    }

    def __init__(
        self,
        *,
        profile: str | None = ...,  # type: ignore[assignment]
        region: str | None = ...,  # type: ignore[assignment]
        endpoint: str | URI | None = ...,  # type: ignore[assignment]
        access_key_id: str | None = ...,  # type: ignore[assignment]
        secret_access_key: str | None = ...,  # type: ignore[assignment]
        session_token: str | None = ...,  # type: ignore[assignment]
        credentials: CredentialsProvider | None = ...,  # type: ignore[assignment]
        credential_provider: CredentialsResolver | None = ...,  # type: ignore
        sts_regional_endpoints: str | None = ...,  # type: ignore[assignment]
        signature_version: str | None = ...,  # type: ignore[assignment]
        max_retries: int = ...,  # type: ignore[assignment]
        retry_strategy: RetryStrategy = ...,  # type: ignore[assignment]
        http_timeout: float | None = ...,  # type: ignore[assignment]
        transport: Transport | None = ...,  # type: ignore[assignment]
        params: dict[str, Any] | None = ...,  # type: ignore[assignment]
        endpoint_discovery_enabled: bool = ...,  # type: ignore[assignment]
        endpoint_cache_size: int = ...,  # type: ignore[assignment]
        environ: Mapping[str, str] | None = None,
        ini_loader: IniLoader | None = None,
    ):
        """Resolve every field of the configuration.

        :param environ: The environment to read. Defaults to ``os.environ``.
        :param ini_loader: The loader for the shared config and credentials files.
            Defaults to the process-wide loader.
        """
        self._constructor_values = {
            k: v
            for k, v in locals().items()
            if k not in ("self", "environ", "ini_loader") and v is not ...
        }
        self._environ = os.environ if environ is None else environ
        self._ini_loader = ini_loader or get_default_ini_loader()

        profile_name = get_profile_name(
            self._constructor_values.get("profile"), self._environ
        )
        config_file_values = self._ini_loader.load_from(is_config=True).get(
            profile_name, {}
        )
        credentials_file_values = self._ini_loader.load_from().get(profile_name, {})

        for field_name, field_info in self.CONFIG_FIELDS.items():
            resolved_value = self._resolve_field(
                field_name,
                self._constructor_values,
                self._environ,
                config_file_values,
                credentials_file_values,
                field_info["default"],
                field_info.get("validator"),
            )
            setattr(self, f"_{field_name}", resolved_value)

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ

    @property
    def ini_loader(self) -> IniLoader:
        return self._ini_loader

    def _resolve_field(
        self,
        field_name: str,
        constructor_values: dict[str, Any],
        env_values: Mapping[str, Any],
        config_file_values: Mapping[str, Any],
        credentials_file_values: Mapping[str, Any],
        default_value: Any,
        validator: str | None,
    ) -> ConfigValue:
        custom_resolver = getattr(self, f"_resolve_{field_name}", None)
        if custom_resolver:
            return custom_resolver(
                constructor_values,
                env_values,
                config_file_values,
                credentials_file_values,
                default_value,
                validator,
            )

        field_config = self.CONFIG_FIELDS.get(field_name, {})
        env_var = field_config.get("env_var")
        config_key = field_config.get("config_key")

        if field_name in constructor_values:
            value = constructor_values[field_name]
            source = SOURCE_CONSTRUCTOR
        elif env_var and env_var in env_values:
            value = env_values[env_var]
            source = SOURCE_ENVIRONMENT
        elif config_key and config_key in config_file_values:
            value = config_file_values[config_key]
            source = SOURCE_CONFIG_FILE
        elif config_key and config_key in credentials_file_values:
            value = credentials_file_values[config_key]
            source = SOURCE_CREDENTIALS_FILE
        else:
            value = default_value
            source = SOURCE_DEFAULT

        if validator:
            value = getattr(self, validator)(value, field_name)
        else:
            self._check_type(value, field_name, field_config["type"])

        return ConfigValue(value, source)

    def _check_type(self, value: Any, field_name: str, expected_type: Any) -> None:
        # Protocol types can't be runtime checked.
        if self._is_protocol_type(expected_type):
            return
        if not isinstance(value, expected_type):
            actual_name = type(value).__name__
            expected_name = getattr(expected_type, "__name__", str(expected_type))
            raise TypeError(f"{field_name} must be {expected_name}, got {actual_name}")

    def _is_protocol_type(self, type_hint: Any) -> bool:
        """Check if a type hint contains protocol types that can't be runtime checked"""
        if hasattr(type_hint, "__args__"):
            return any(self._is_protocol_type(arg) for arg in type_hint.__args__)
        return getattr(type_hint, "_is_protocol", False)

    def _validate_endpoint(self, value: Any, field_name: str) -> Any:
        if value is not None and not isinstance(value, str | URI):
            raise TypeError(f"{field_name} must be a string or URI")
        return value

    def _validate_params(self, value: Any, field_name: str) -> dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise TypeError(f"{field_name} must be a mapping")
        return dict(value)

    def _validate_bool(self, value: Any, field_name: str) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise OwlhubError(
            f'Invalid {field_name}: expected "true" or "false", got {value!r}',
            code=CONFIG_ERROR,
        )

    def _resolve_profile(
        self,
        constructor_values: dict[str, Any],
        env_values: Mapping[str, Any],
        config_file_values: Mapping[str, Any],
        credentials_file_values: Mapping[str, Any],
        default_value: Any,
        validator: str | None,
    ) -> ConfigValue:
        if constructor_values.get("profile"):
            return ConfigValue(constructor_values["profile"], SOURCE_CONSTRUCTOR)
        if env_values.get("OWLHUB_PROFILE"):
            return ConfigValue(env_values["OWLHUB_PROFILE"], SOURCE_ENVIRONMENT)
        return ConfigValue(DEFAULT_PROFILE, SOURCE_DEFAULT)

    def _resolve_credentials(
        self,
        constructor_values: dict[str, Any],
        env_values: Mapping[str, Any],
        config_file_values: Mapping[str, Any],
        credentials_file_values: Mapping[str, Any],
        default_value: Any,
        validator: str | None,
    ) -> ConfigValue:
        if "credentials" in constructor_values:
            return ConfigValue(constructor_values["credentials"], SOURCE_CONSTRUCTOR)
        # Static keys resolved from any source become static credentials.
        if self.access_key_id and self.secret_access_key:
            return ConfigValue(
                Credentials(
                    self.access_key_id, self.secret_access_key, self.session_token
                ),
                self._access_key_id.source,
            )
        return ConfigValue(default_value, SOURCE_DEFAULT)

    def _resolve_sts_regional_endpoints(
        self,
        constructor_values: dict[str, Any],
        env_values: Mapping[str, Any],
        config_file_values: Mapping[str, Any],
        credentials_file_values: Mapping[str, Any],
        default_value: Any,
        validator: str | None,
    ) -> ConfigValue:
        client_value = constructor_values.get("sts_regional_endpoints")
        value = resolve_regional_endpoints_flag(
            client_value,
            env_var=ENV_STS_REGIONAL_ENDPOINTS,
            config_key=CONFIG_STS_REGIONAL_ENDPOINTS,
            environ=env_values,
            profile=config_file_values,
        )
        if client_value:
            source = SOURCE_CONSTRUCTOR
        elif ENV_STS_REGIONAL_ENDPOINTS in env_values:
            source = SOURCE_ENVIRONMENT
        elif CONFIG_STS_REGIONAL_ENDPOINTS in config_file_values:
            source = SOURCE_CONFIG_FILE
        else:
            source = SOURCE_DEFAULT
        return ConfigValue(value, source)

    def _resolve_retry_strategy(
        self,
        constructor_values: dict[str, Any],
        env_values: Mapping[str, Any],
        config_file_values: Mapping[str, Any],
        credentials_file_values: Mapping[str, Any],
        default_value: Any,
        validator: str | None,
    ) -> ConfigValue:
        if constructor_values.get("retry_strategy") is not None:
            return ConfigValue(constructor_values["retry_strategy"], SOURCE_CONSTRUCTOR)
        return ConfigValue(
            SimpleRetryStrategy(max_attempts=self.max_retries + 1), SOURCE_DEFAULT
        )

    def get_config_value_object(self, field_name: str) -> ConfigValue:
        """Get the raw ConfigValue object for a field"""
        return getattr(self, f"_{field_name}")

    def merge(self, **overrides: Any) -> "ClientConfig":
        """Create a new config from this one's constructor values and ``overrides``.

        The new config shares this config's environment and ini loader.
        """
        return ClientConfig(
            **{**self._constructor_values, **overrides},
            environ=self._environ,
            ini_loader=self._ini_loader,
        )

    async def get_credentials(self) -> CredentialsProvider:
        """Return current credentials, resolving them through the provider if unset.

        :raises OwlhubError: If no credentials with both keys can be found.
        """
        if self.credentials is None:
            if self.credential_provider is None:
                # Imported here: the default chain's providers build service clients
                # that themselves depend on this module.
                from .credentials.chain import create_default_chain

                self._credential_provider = ConfigValue(
                    create_default_chain(
                        environ=self._environ, ini_loader=self._ini_loader
                    ),
                    SOURCE_DEFAULT,
                )
            credentials = await self.credential_provider.resolve()
            self._credentials = ConfigValue(credentials, SOURCE_DEFAULT)

        credentials = self.credentials
        await credentials.get()
        if not credentials.access_key_id or not credentials.secret_access_key:
            raise OwlhubError("Missing credentials in config", code=CREDENTIALS_ERROR)
        return credentials

    @property
    def profile(self) -> str:
        return self._profile.value

    @profile.setter
    def profile(self, value: str) -> None:
        self._profile = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def region(self) -> str | None:
        return self._region.value

    @region.setter
    def region(self, value: str | None) -> None:
        self._region = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def endpoint(self) -> str | URI | None:
        return self._endpoint.value

    @endpoint.setter
    def endpoint(self, value: str | URI | None) -> None:
        self._endpoint = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def access_key_id(self) -> str | None:
        return self._access_key_id.value

    @access_key_id.setter
    def access_key_id(self, value: str | None) -> None:
        self._access_key_id = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def secret_access_key(self) -> str | None:
        return self._secret_access_key.value

    @secret_access_key.setter
    def secret_access_key(self, value: str | None) -> None:
        self._secret_access_key = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def session_token(self) -> str | None:
        return self._session_token.value

    @session_token.setter
    def session_token(self, value: str | None) -> None:
        self._session_token = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def credentials(self) -> CredentialsProvider | None:
        return self._credentials.value

    @credentials.setter
    def credentials(self, value: CredentialsProvider | None) -> None:
        self._credentials = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def credential_provider(self) -> CredentialsResolver | None:
        return self._credential_provider.value

    @credential_provider.setter
    def credential_provider(self, value: CredentialsResolver | None) -> None:
        self._credential_provider = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def sts_regional_endpoints(self) -> str:
        return self._sts_regional_endpoints.value

    @sts_regional_endpoints.setter
    def sts_regional_endpoints(self, value: str) -> None:
        self._sts_regional_endpoints = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def signature_version(self) -> str | None:
        return self._signature_version.value

    @signature_version.setter
    def signature_version(self, value: str | None) -> None:
        self._signature_version = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def max_retries(self) -> int:
        return self._max_retries.value

    @max_retries.setter
    def max_retries(self, value: int) -> None:
        self._max_retries = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def retry_strategy(self) -> RetryStrategy:
        return self._retry_strategy.value

    @retry_strategy.setter
    def retry_strategy(self, value: RetryStrategy) -> None:
        self._retry_strategy = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def http_timeout(self) -> float | None:
        return self._http_timeout.value

    @http_timeout.setter
    def http_timeout(self, value: float | None) -> None:
        self._http_timeout = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def transport(self) -> Transport | None:
        return self._transport.value

    @transport.setter
    def transport(self, value: Transport | None) -> None:
        self._transport = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def params(self) -> dict[str, Any]:
        return self._params.value

    @params.setter
    def params(self, value: dict[str, Any]) -> None:
        self._params = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def endpoint_discovery_enabled(self) -> bool:
        return self._endpoint_discovery_enabled.value

    @endpoint_discovery_enabled.setter
    def endpoint_discovery_enabled(self, value: bool) -> None:
        self._endpoint_discovery_enabled = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def endpoint_cache_size(self) -> int:
        return self._endpoint_cache_size.value

    @endpoint_cache_size.setter
    def endpoint_cache_size(self, value: int) -> None:
        self._endpoint_cache_size = ConfigValue(value, SOURCE_IN_CODE_UPDATE)
