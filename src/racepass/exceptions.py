"""Error taxonomy for wallet pass generation.

Configuration and certificate errors are fatal and never retried: running the
same input again fails the same way. Asset fetch and upstream patch failures
are the only categories that are logged and swallowed by the pipeline.
"""


class WalletPassError(Exception):
    """Base exception for wallet pass generation."""

    pass


class ConfigError(WalletPassError):
    """Raised when required configuration is missing or malformed.

    Attributes:
        field: The configuration key or secret at fault, if known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class RunnerNotFoundError(WalletPassError):
    """Raised when the datastore has no runner for the requested ID."""

    pass


class CertificateError(ConfigError):
    """Base class for unusable certificate material."""

    pass


class CertParseError(CertificateError):
    """Raised when a certificate cannot be parsed by any strategy.

    Attributes:
        primary_error: Message from the direct PEM parse.
        fallback_error: Message from the DER/ASN.1 fallback parse.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        primary_error: str | None = None,
        fallback_error: str | None = None,
    ) -> None:
        super().__init__(message, field=field)
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class CertValidationError(CertificateError):
    """Raised when a parsed certificate fails Apple's chain requirements.

    Attributes:
        remediation: What the operator should do to fix it.
    """

    def __init__(self, message: str, field: str | None = None, remediation: str | None = None) -> None:
        super().__init__(message, field=field)
        self.remediation = remediation


class ValidationError(WalletPassError):
    """Raised when resolved pass content violates a pass format invariant.

    Attributes:
        field: The descriptor field or field group at fault, if known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class AssetFetchError(WalletPassError):
    """Raised by the image fetcher for a single failed fetch.

    Never escapes the fetcher: callers see the image as absent.
    """

    pass


class SigningError(WalletPassError):
    """Raised when the PKCS#7 manifest signature cannot be produced."""

    pass


class PackagingError(WalletPassError):
    """Raised when the pass archive cannot be assembled."""

    pass


class UpstreamPatchError(WalletPassError):
    """Raised when a Google Wallet REST call fails.

    Attributes:
        status_code: HTTP status code from the API, if a response was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
