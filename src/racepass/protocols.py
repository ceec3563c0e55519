"""Protocol definitions for the collaborators the wallet pipeline depends on.

The datastore is supplied by the caller (a database client, an HTTP API
wrapper, a fixture in tests); the core never constructs one itself.
"""

import typing as t
from collections.abc import Mapping
from typing import Protocol


class WalletDataStore(Protocol):
    """Read access to runners and the event's wallet configuration."""

    def get_runner(self, runner_id: str) -> Mapping[str, t.Any] | None:
        """Fetch one runner row by ID.

        Args:
            runner_id: The runner's datastore ID.

        Returns:
            The runner's fields, or None if there is no such runner.
        """
        ...

    def get_wallet_config(self) -> Mapping[str, t.Any] | None:
        """Fetch the event's wallet configuration row.

        Returns:
            The row with the Google Wallet columns at top level and the Apple
            configuration under ``apple_wallet_config``, or None if the
            event has no wallet configuration.
        """
        ...
