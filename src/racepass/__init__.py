"""Wallet passes for race participants: signed Apple PKPass bundles and Google Wallet save links."""

__version__ = "1.0.0"
