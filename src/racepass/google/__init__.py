"""Google Wallet pass issuing components."""

from racepass.google.issuer import GoogleSaveLink, GoogleServiceAccount, GoogleWalletIssuer
from racepass.google.objects import GenericPass, build_generic_object

__all__ = [
    "GenericPass",
    "GoogleSaveLink",
    "GoogleServiceAccount",
    "GoogleWalletIssuer",
    "build_generic_object",
]
