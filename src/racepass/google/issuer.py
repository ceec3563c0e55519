"""Google Wallet "save to wallet" links and REST updates.

The save link embeds the generic object (and its class, when a card layout
is configured) in a JWT signed with the issuer's service-account key.
Reissuing a link does not update a pass that is already in someone's wallet,
so updates also PATCH the object through the Wallet REST API. REST failures
never prevent the link from being returned.

See: https://developers.google.com/wallet/generic/web
"""

import json
import time
import typing as t
from dataclasses import dataclass
from urllib.parse import quote

import httpx
import jwt
import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from racepass import settings
from racepass.apple.pem import normalize_pem
from racepass.exceptions import ConfigError, UpstreamPatchError
from racepass.google.objects import GenericPass, build_generic_object
from racepass.records import RunnerRecord
from racepass.schemas import GoogleWalletConfig

logger = structlog.get_logger(__name__)

WALLET_SCOPE = "https://www.googleapis.com/auth/wallet_object.issuer"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
SERVICE_ACCOUNT_KEY_LABEL = "service account private key"


@dataclass(frozen=True)
class GoogleServiceAccount:
    """The issuer's service account: its email and RSA signing key."""

    client_email: str
    private_key: rsa.RSAPrivateKey

    @classmethod
    def from_json(cls, raw: str) -> "GoogleServiceAccount":
        """Parse service-account credentials JSON.

        The value may itself be a JSON string containing the JSON object,
        which is how some secret stores hand it over.

        Raises:
            ConfigError: If the JSON, the email or the key is unusable.
        """
        try:
            data: t.Any = json.loads(raw)
            if isinstance(data, str):
                data = json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            raise ConfigError(f"Service account credentials are not valid JSON: {e}", field="credentials") from e
        if not isinstance(data, dict):
            raise ConfigError("Service account credentials must be a JSON object", field="credentials")

        client_email = data.get("client_email")
        if not client_email:
            raise ConfigError("Service account credentials have no client_email", field="client_email")

        pem = normalize_pem(data.get("private_key"), SERVICE_ACCOUNT_KEY_LABEL)
        try:
            key = serialization.load_pem_private_key(pem.encode("ascii"), password=None)
        except (ValueError, TypeError) as e:
            raise ConfigError(f"{SERVICE_ACCOUNT_KEY_LABEL}: failed to load: {e}", field="private_key") from e
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ConfigError(f"{SERVICE_ACCOUNT_KEY_LABEL}: must be an RSA key", field="private_key")

        return cls(client_email=client_email, private_key=key)

    @classmethod
    def from_settings(cls) -> "GoogleServiceAccount":
        """Load the account from GOOGLE_WALLET_SERVICE_ACCOUNT_CREDENTIALS.

        Raises:
            ConfigError: If the setting is empty or unusable.
        """
        raw = settings.GOOGLE_WALLET_SERVICE_ACCOUNT_CREDENTIALS
        if not raw:
            raise ConfigError(
                "Google Wallet is not configured. Set GOOGLE_WALLET_SERVICE_ACCOUNT_CREDENTIALS.",
                field="GOOGLE_WALLET_SERVICE_ACCOUNT_CREDENTIALS",
            )
        return cls.from_json(raw)


@dataclass(frozen=True)
class GoogleSaveLink:
    """Result of issuing a Google Wallet pass."""

    save_url: str
    object_id: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "saveToGoogleWalletLink": self.save_url,
            "objectId": self.object_id,
            "message": self.message,
        }


class GoogleWalletIssuer:
    """Issues save links and keeps issued Google Wallet objects current."""

    def __init__(self, account: GoogleServiceAccount, client: httpx.Client | None = None) -> None:
        """Initialize the issuer.

        Args:
            account: The service account used for signing and API access.
            client: HTTP client for the OAuth and Wallet APIs. If not
                provided, one is created per REST exchange.
        """
        self.account = account
        self._client = client

    def _sign(self, claims: dict[str, t.Any]) -> str:
        return jwt.encode(claims, self.account.private_key, algorithm="RS256")

    def _request(self, method: str, url: str, **kwargs: t.Any) -> httpx.Response:
        try:
            if self._client is not None:
                response = self._client.request(method, url, **kwargs)
            else:
                with httpx.Client(timeout=settings.GOOGLE_WALLET_HTTP_TIMEOUT) as client:
                    response = client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamPatchError(f"{method} {url} failed: {e}") from e

        if not response.is_success:
            raise UpstreamPatchError(
                f"{method} {url} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def fetch_access_token(self) -> str:
        """Obtain an OAuth2 access token with a signed JWT-bearer assertion.

        Raises:
            UpstreamPatchError: If the token endpoint rejects the assertion.
        """
        now = int(time.time())
        assertion = self._sign(
            {
                "iss": self.account.client_email,
                "scope": WALLET_SCOPE,
                "aud": settings.GOOGLE_OAUTH_TOKEN_URL,
                "iat": now,
                "exp": now + ASSERTION_LIFETIME_SECONDS,
            }
        )
        response = self._request(
            "POST",
            settings.GOOGLE_OAUTH_TOKEN_URL,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
        )
        try:
            token = response.json()["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamPatchError(f"Token response has no access_token: {e}") from e
        return str(token)

    def upsert_class(self, access_token: str, generic_class: dict[str, t.Any]) -> None:
        """Create or replace the generic class so its card layout is current."""
        url = f"{settings.GOOGLE_WALLET_API_BASE_URL}/genericClass/{quote(generic_class['id'], safe='')}"
        self._request("PUT", url, json=generic_class, headers={"Authorization": f"Bearer {access_token}"})
        logger.info("google_class_upserted", class_id=generic_class["id"])

    def patch_object(self, access_token: str, object_id: str, generic_object: dict[str, t.Any]) -> None:
        """Update an already issued object in place."""
        url = f"{settings.GOOGLE_WALLET_API_BASE_URL}/genericObject/{quote(object_id, safe='')}"
        self._request("PATCH", url, json=generic_object, headers={"Authorization": f"Bearer {access_token}"})
        logger.info("google_object_patched", object_id=object_id)

    def create_save_jwt(self, generic_pass: GenericPass) -> str:
        """Sign the "save to wallet" JWT embedding the object and class."""
        payload: dict[str, t.Any] = {"genericObjects": [generic_pass.generic_object]}
        generic_class = generic_pass.generic_class()
        if generic_class is not None:
            payload["genericClasses"] = [generic_class]

        return self._sign(
            {
                "iss": self.account.client_email,
                "aud": "google",
                "origins": [],
                "typ": "savetowallet",
                "iat": int(time.time()),
                "payload": payload,
            }
        )

    def _sync_upstream(self, generic_pass: GenericPass, update_pass: bool) -> None:
        generic_class = generic_pass.generic_class()
        if generic_class is None and not update_pass:
            return

        try:
            access_token = self.fetch_access_token()
        except UpstreamPatchError as e:
            logger.warning("google_access_token_failed", error=str(e), status_code=e.status_code)
            return

        if generic_class is not None:
            try:
                self.upsert_class(access_token, generic_class)
            except UpstreamPatchError as e:
                logger.warning("google_class_upsert_failed", class_id=generic_pass.class_id, error=str(e))

        if update_pass:
            try:
                self.patch_object(access_token, generic_pass.object_id, generic_pass.generic_object)
            except UpstreamPatchError as e:
                logger.warning("google_object_patch_failed", object_id=generic_pass.object_id, error=str(e))

    def issue(self, config: GoogleWalletConfig, record: RunnerRecord, update_pass: bool = False) -> GoogleSaveLink:
        """Build the object for a runner and return its save link.

        Args:
            config: The event's Google Wallet configuration.
            record: The runner record.
            update_pass: Also PATCH the existing object through the REST API.

        Raises:
            ValidationError: If the configuration or runner lacks an ID part.
        """
        generic_pass = build_generic_object(config, record)
        self._sync_upstream(generic_pass, update_pass)

        token = self.create_save_jwt(generic_pass)
        logger.info("google_pass_issued", object_id=generic_pass.object_id, update_pass=update_pass)
        return GoogleSaveLink(
            save_url=f"{settings.GOOGLE_WALLET_SAVE_URL}/{token}",
            object_id=generic_pass.object_id,
            message="Pass updated" if update_pass else "Pass created",
        )
