"""Wallet service for pass generation.

This module provides the service layer for wallet pass operations: it loads
the runner and the event configuration from the injected datastore and runs
the Apple or Google pipeline.
"""

import re
import time
import typing as t
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from racepass.apple.certificates import AppleSigningCredentials
from racepass.apple.generator import ApplePassGenerator
from racepass.apple.images import ImageFetcher
from racepass.exceptions import ConfigError, RunnerNotFoundError
from racepass.google.issuer import GoogleSaveLink, GoogleServiceAccount, GoogleWalletIssuer
from racepass.protocols import WalletDataStore
from racepass.records import RunnerRecord
from racepass.schemas import GoogleWalletConfig, WalletVisualConfig

logger = structlog.get_logger(__name__)

APPLE_CONFIG_COLUMN = "apple_wallet_config"
UNSAFE_FILENAME_CHARS_RE = re.compile(r"[^A-Za-z0-9_-]")


@dataclass(frozen=True)
class PassResponse:
    """A generated pass file ready to be sent as an HTTP response body."""

    content: bytes
    content_type: str
    filename: str

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'


def pkpass_filename(runner_id: str) -> str:
    """Build a download filename like ``pass_<runnerId>_<epochMillis>.pkpass``."""
    safe_id = UNSAFE_FILENAME_CHARS_RE.sub("_", runner_id) or "runner"
    return f"pass_{safe_id}_{int(time.time() * 1000)}.{ApplePassGenerator.FILE_EXTENSION}"


class WalletService:
    """Service for issuing wallet passes.

    Credentials are loaded once, on first use, and shared read-only across
    requests. Every request reads the runner and configuration afresh.
    """

    def __init__(
        self,
        store: WalletDataStore,
        apple_credentials: AppleSigningCredentials | None = None,
        google_account: GoogleServiceAccount | None = None,
        image_fetcher: ImageFetcher | None = None,
        google_issuer: GoogleWalletIssuer | None = None,
    ) -> None:
        """Initialize the wallet service.

        Args:
            store: The datastore to read runners and configuration from.
            apple_credentials: Signing bundle. Loaded from settings if not provided.
            google_account: Service account. Loaded from settings if not provided.
            image_fetcher: Fetcher for pass images. A default one is created if not provided.
            google_issuer: Issuer for Google passes. Built from the account if not provided.
        """
        self.store = store
        self._apple_credentials = apple_credentials
        self._google_account = google_account
        self._image_fetcher = image_fetcher
        self._apple_generator: ApplePassGenerator | None = None
        self._google_issuer = google_issuer

    @property
    def apple_generator(self) -> ApplePassGenerator:
        """Get the Apple pass generator, creating if needed."""
        if self._apple_generator is None:
            if self._apple_credentials is None:
                self._apple_credentials = AppleSigningCredentials.from_settings()
            self._apple_generator = ApplePassGenerator(self._apple_credentials, fetcher=self._image_fetcher)
        return self._apple_generator

    @property
    def google_issuer(self) -> GoogleWalletIssuer:
        """Get the Google Wallet issuer, creating if needed."""
        if self._google_issuer is None:
            if self._google_account is None:
                self._google_account = GoogleServiceAccount.from_settings()
            self._google_issuer = GoogleWalletIssuer(self._google_account)
        return self._google_issuer

    def _load_runner(self, runner_id: str) -> RunnerRecord:
        if not runner_id or not str(runner_id).strip():
            raise RunnerNotFoundError("Missing runner ID")
        fields = self.store.get_runner(runner_id)
        if not fields:
            raise RunnerNotFoundError(f"Could not find runner with ID {runner_id}")
        return RunnerRecord(fields)

    def _load_config_row(self) -> Mapping[str, t.Any]:
        row = self.store.get_wallet_config()
        if not row:
            raise ConfigError("Wallet configuration not found", field="wallet_config")
        return row

    # -------------------------------------------------------------------------
    # Pass Generation
    # -------------------------------------------------------------------------

    def generate_apple_pass(self, runner_id: str) -> PassResponse:
        """Generate an Apple Wallet pass for a runner.

        Raises:
            RunnerNotFoundError: If the runner does not exist.
            ConfigError: If the configuration or signing bundle is unusable.
            ValidationError: If the configuration yields an invalid pass.
            SigningError: If the manifest cannot be signed.
            PackagingError: If the archive cannot be assembled.
        """
        row = self._load_config_row()
        apple_config = row.get(APPLE_CONFIG_COLUMN)
        if not apple_config:
            raise ConfigError("Apple Wallet is not configured for this event", field=APPLE_CONFIG_COLUMN)
        config = WalletVisualConfig.from_raw(apple_config)
        runner = self._load_runner(runner_id)

        log = logger.bind(runner_id=runner.row_id)
        content = self.apple_generator.generate_pass(config, runner)
        response = PassResponse(
            content=content,
            content_type=ApplePassGenerator.CONTENT_TYPE,
            filename=pkpass_filename(runner.row_id or str(runner_id)),
        )
        log.info("apple_pass_response_ready", filename=response.filename, size=len(content))
        return response

    def generate_google_pass(self, runner_id: str, update_pass: bool = False) -> GoogleSaveLink:
        """Issue a Google Wallet save link for a runner.

        Args:
            runner_id: The runner's datastore ID.
            update_pass: Also update the already issued object server-side.

        Raises:
            RunnerNotFoundError: If the runner does not exist.
            ConfigError: If the configuration or service account is unusable.
            ValidationError: If the configuration or runner lacks an ID part.
        """
        config = GoogleWalletConfig.from_raw(self._load_config_row())
        runner = self._load_runner(runner_id)
        return self.google_issuer.issue(config, runner, update_pass=update_pass)
