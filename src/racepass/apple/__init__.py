"""Apple Wallet pass generation components."""

from racepass.apple.certificates import AppleSigningCredentials
from racepass.apple.generator import ApplePassGenerator, build_apple_pass
from racepass.apple.signer import ApplePassSigner

__all__ = [
    "AppleSigningCredentials",
    "ApplePassGenerator",
    "ApplePassSigner",
    "build_apple_pass",
]
