#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from dataclasses import dataclass, field

PROCESS_CREDENTIALS_FAILURE = "ProcessCredentialsProviderFailure"
CHAINABLE_TEMPORARY_CREDENTIALS_FAILURE = "ChainableTemporaryCredentialsProviderFailure"
WEB_IDENTITY_CREDENTIALS_FAILURE = "TokenFileWebIdentityCredentialsProviderFailure"
CREDENTIALS_ERROR = "CredentialsError"
CONFIG_ERROR = "ConfigError"
INVALID_EXPIRY_TIME = "InvalidExpiryTime"
UNSUPPORTED_SIGNER = "UnsupportedSigner"
TIMEOUT_ERROR = "TimeoutError"
NETWORKING_ERROR = "NetworkingError"
REQUEST_ABORTED_ERROR = "RequestAbortedError"
SERIALIZATION_ERROR = "SerializationError"
ENDPOINT_DISCOVERY_ERROR = "EndpointDiscoveryError"


@dataclass(kw_only=True)
class OwlhubError(Exception):
    """Base exception type for all exceptions raised by owlhub-core.

    Errors are identified by their ``code`` rather than by their type. Codes raised by
    this package are the module-level constants in :py:mod:`owlhub_core.exceptions`;
    codes returned by a remote service are passed through unchanged.
    """

    message: str = field(default="", kw_only=False)
    """The message of the error."""

    code: str = "OwlhubError"
    """A stable string identifying the kind of error."""

    retryable: bool = False
    """Whether the request that produced this error may be retried.

    Set by the service's retry classification once the error reaches the retry decision.
    """

    status_code: int | None = None
    """The HTTP status code of the response that produced the error, if any."""

    request_id: str | None = None
    """The request id reported by the service, if any."""

    retry_after: float | None = None
    """The amount of time in seconds that should pass before a retry.

    Retry strategies MAY choose to wait longer.
    """

    def __post_init__(self):
        super().__init__(self.message)

    @property
    def is_retry_safe(self) -> bool:
        return self.retryable

    @property
    def is_throttling_error(self) -> bool:
        return self.code in THROTTLING_ERROR_CODES


@dataclass(kw_only=True)
class RetryError(OwlhubError):
    """Raised by a retry strategy when no further attempt is allowed."""

    code: str = "RetryError"


THROTTLING_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestThrottledException",
        "TooManyRequestsException",
        "ProvisionedThroughputExceededException",
        "TransactionInProgressException",
        "RequestLimitExceeded",
        "BandwidthLimitExceeded",
        "LimitExceededException",
        "RequestThrottled",
        "SlowDown",
        "PriorRequestNotComplete",
        "EC2ThrottledException",
    }
)

EXPIRED_CREDENTIALS_ERROR_CODES = frozenset(
    {
        "ExpiredToken",
        "ExpiredTokenException",
        "RequestExpired",
    }
)
