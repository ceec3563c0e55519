"""Wallet pass configuration.

Certificates and keys are PEM text supplied through the environment or a
``.env`` file. Secret stores often flatten line breaks into literal ``\\n``
sequences or wrap the value in quotes; the PEM normalizer repairs both.

See: https://developer.apple.com/documentation/walletpasses
"""

from decouple import config

# Apple Wallet signing material
APPLE_WALLET_SIGNER_CERT: str = config("APPLE_WALLET_SIGNER_CERT", default="")
APPLE_WALLET_SIGNER_KEY: str = config("APPLE_WALLET_SIGNER_KEY", default="")
APPLE_WALLET_SIGNER_KEY_PASSWORD: str = config("APPLE_WALLET_SIGNER_KEY_PASSWORD", default="")
APPLE_WALLET_WWDR_CERT: str = config("APPLE_WALLET_WWDR_CERT", default="")

# Render a solid icon when neither icon nor logo could be fetched
APPLE_WALLET_FALLBACK_ICON: bool = config("APPLE_WALLET_FALLBACK_ICON", default=True, cast=bool)

# Remote image fetching
WALLET_IMAGE_FETCH_TIMEOUT: float = config("WALLET_IMAGE_FETCH_TIMEOUT", default=5.0, cast=float)
WALLET_IMAGE_FETCH_RETRIES: int = config("WALLET_IMAGE_FETCH_RETRIES", default=1, cast=int)

# Google Wallet
GOOGLE_WALLET_SERVICE_ACCOUNT_CREDENTIALS: str = config("GOOGLE_WALLET_SERVICE_ACCOUNT_CREDENTIALS", default="")
GOOGLE_WALLET_API_BASE_URL: str = config(
    "GOOGLE_WALLET_API_BASE_URL", default="https://walletobjects.googleapis.com/walletobjects/v1"
)
GOOGLE_OAUTH_TOKEN_URL: str = config("GOOGLE_OAUTH_TOKEN_URL", default="https://oauth2.googleapis.com/token")
GOOGLE_WALLET_SAVE_URL: str = config("GOOGLE_WALLET_SAVE_URL", default="https://pay.google.com/gp/v/save")
GOOGLE_WALLET_HTTP_TIMEOUT: float = config("GOOGLE_WALLET_HTTP_TIMEOUT", default=10.0, cast=float)

# Logging
SERVICE_NAME: str = config("SERVICE_NAME", default="racepass")
DEPLOYMENT_ENVIRONMENT: str = config("DEPLOYMENT_ENVIRONMENT", default="production")
LOG_LEVEL: str = config("LOG_LEVEL", default="INFO")
LOG_JSON: bool = config("LOG_JSON", default=True, cast=bool)
