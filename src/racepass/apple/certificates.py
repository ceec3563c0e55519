"""Signing certificate loading and Apple chain validation.

A pass is signed with the Pass Type ID certificate and its private key, and
the signature carries Apple's WWDR intermediate. Apple Wallet only accepts
the RSA "G4" generation of the intermediate; the newer ECC generations look
similar in the developer portal and are a common misconfiguration.

See: https://www.apple.com/certificateauthority/
"""

import base64
import binascii
import typing as t
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from racepass import settings
from racepass.apple.pem import PEM_FOOTER_RE, PEM_HEADER_RE, WHITESPACE_RE, normalize_pem
from racepass.exceptions import CertParseError, CertValidationError, ConfigError

logger = structlog.get_logger(__name__)

SIGNER_CERT_LABEL = "signer certificate"
SIGNER_KEY_LABEL = "signer private key"
WWDR_CERT_LABEL = "WWDR certificate"

WWDR_COMMON_NAME_MARKER = "Worldwide Developer Relations"
WWDR_GENERATION_MARKER = "G4"
WWDR_EXPECTED_EXPIRY_YEAR = 2030
WWDR_REMEDIATION = (
    'Download "Worldwide Developer Relations - G4" (RSA, expiring 2030) '
    "from https://www.apple.com/certificateauthority/ and use it as the WWDR certificate."
)


# --- Two-stage certificate parsing ---


@dataclass(frozen=True)
class Parsed:
    """The certificate parsed directly from PEM."""

    certificate: x509.Certificate


@dataclass(frozen=True)
class FallbackParsed:
    """The certificate parsed only after re-encoding its DER through asn1crypto."""

    certificate: x509.Certificate
    primary_error: str


@dataclass(frozen=True)
class ParseFailed:
    """Neither strategy produced a certificate."""

    primary_error: str
    fallback_error: str


CertParseResult = Parsed | FallbackParsed | ParseFailed


def _parse_via_der(pem: str) -> x509.Certificate:
    body = WHITESPACE_RE.sub("", PEM_FOOTER_RE.sub("", PEM_HEADER_RE.sub("", pem)))
    if not body:
        raise ValueError("empty base64 content after stripping PEM headers")
    der = base64.b64decode(body, validate=True)
    # Re-encoding canonicalises BER quirks the strict parser rejects.
    canonical = asn1_x509.Certificate.load(der).dump(force=True)
    return x509.load_der_x509_certificate(canonical)


def parse_certificate(pem: str) -> CertParseResult:
    """Parse a PEM certificate, falling back to a DER/ASN.1 round trip.

    Never raises; the result tells which strategy succeeded.
    """
    try:
        return Parsed(x509.load_pem_x509_certificate(pem.encode("ascii")))
    except (ValueError, UnicodeEncodeError) as e:
        primary_error = str(e)

    try:
        return FallbackParsed(_parse_via_der(pem), primary_error=primary_error)
    except (ValueError, TypeError, binascii.Error) as e:
        return ParseFailed(primary_error=primary_error, fallback_error=str(e))


def load_certificate(raw_pem: str, label: str) -> x509.Certificate:
    """Normalize and parse one certificate of the signing bundle.

    Raises:
        ConfigError: If the PEM text cannot be repaired.
        CertParseError: If neither parse strategy succeeds.
    """
    result = parse_certificate(normalize_pem(raw_pem, label))

    if isinstance(result, Parsed):
        return result.certificate
    if isinstance(result, FallbackParsed):
        logger.info("certificate_parsed_via_fallback", member=label, primary_error=result.primary_error)
        return result.certificate

    raise CertParseError(
        f"{label}: failed to parse. Primary error: {result.primary_error}. Fallback error: {result.fallback_error}",
        field=label,
        primary_error=result.primary_error,
        fallback_error=result.fallback_error,
    )


def load_private_key(raw_pem: str, password: str | None = None) -> rsa.RSAPrivateKey:
    """Normalize and load the signer's private key.

    Raises:
        ConfigError: If the key cannot be loaded.
        CertValidationError: If the key is not RSA.
    """
    pem = normalize_pem(raw_pem, SIGNER_KEY_LABEL)
    try:
        key = serialization.load_pem_private_key(pem.encode("ascii"), password=password.encode() if password else None)
    except (ValueError, TypeError) as e:
        raise ConfigError(f"{SIGNER_KEY_LABEL}: failed to load: {e}", field=SIGNER_KEY_LABEL) from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertValidationError(
            f"{SIGNER_KEY_LABEL}: must be an RSA key, got {type(key).__name__}",
            field=SIGNER_KEY_LABEL,
            remediation="Export the private key that was used to request the Pass Type ID certificate.",
        )
    return key


# --- Validation ---


def _name_values(name: x509.Name, oid: x509.ObjectIdentifier) -> str:
    return ", ".join(str(attribute.value) for attribute in name.get_attributes_for_oid(oid))


def validate_wwdr_certificate(certificate: x509.Certificate) -> None:
    """Check that the intermediate is Apple's RSA WWDR G4 certificate.

    Raises:
        CertValidationError: If the subject or key algorithm is wrong.
    """
    common_name = _name_values(certificate.subject, NameOID.COMMON_NAME)
    org_unit = _name_values(certificate.subject, NameOID.ORGANIZATIONAL_UNIT_NAME)

    if WWDR_COMMON_NAME_MARKER not in common_name:
        raise CertValidationError(
            f"{WWDR_CERT_LABEL}: common name must contain '{WWDR_COMMON_NAME_MARKER}', got '{common_name}'",
            field=WWDR_CERT_LABEL,
            remediation=WWDR_REMEDIATION,
        )

    if WWDR_GENERATION_MARKER not in org_unit and WWDR_GENERATION_MARKER not in common_name:
        raise CertValidationError(
            f"{WWDR_CERT_LABEL}: not the {WWDR_GENERATION_MARKER} generation (OU: '{org_unit}', CN: '{common_name}')",
            field=WWDR_CERT_LABEL,
            remediation=WWDR_REMEDIATION,
        )

    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise CertValidationError(
            f"{WWDR_CERT_LABEL}: public key must be RSA, got {type(public_key).__name__}. "
            "This usually means a G5/G6 (ECC) certificate was downloaded.",
            field=WWDR_CERT_LABEL,
            remediation=WWDR_REMEDIATION,
        )

    expires = certificate.not_valid_after_utc
    if expires.year != WWDR_EXPECTED_EXPIRY_YEAR:
        logger.warning(
            "wwdr_unexpected_expiry_year",
            expiry_year=expires.year,
            expected_year=WWDR_EXPECTED_EXPIRY_YEAR,
        )
    logger.debug("wwdr_certificate_validated", key_size=public_key.key_size, expires=expires.isoformat())


def validate_signer(certificate: x509.Certificate, private_key: rsa.RSAPrivateKey) -> None:
    """Check that the private key belongs to the signer certificate.

    Raises:
        CertValidationError: If the certificate is not RSA or the key does not match.
    """
    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise CertValidationError(
            f"{SIGNER_CERT_LABEL}: public key must be RSA, got {type(public_key).__name__}",
            field=SIGNER_CERT_LABEL,
            remediation="Request a Pass Type ID certificate with an RSA key pair.",
        )

    if public_key.public_numbers() != private_key.public_key().public_numbers():
        raise CertValidationError(
            f"{SIGNER_KEY_LABEL}: does not match the {SIGNER_CERT_LABEL}",
            field=SIGNER_KEY_LABEL,
            remediation="Supply the private key that was used to request this Pass Type ID certificate.",
        )

    if certificate.not_valid_after_utc < datetime.now(timezone.utc):
        logger.warning("signer_certificate_expired", expired_at=certificate.not_valid_after_utc.isoformat())


@dataclass(frozen=True)
class AppleSigningCredentials:
    """The validated certificate bundle used to sign passes.

    Loaded once per process and shared read-only between requests.
    """

    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey
    wwdr_certificate: x509.Certificate

    @classmethod
    def from_pem(
        cls,
        signer_cert: str,
        signer_key: str,
        wwdr_cert: str,
        key_password: str | None = None,
    ) -> "AppleSigningCredentials":
        """Parse and validate the three PEM members of the bundle.

        Raises:
            ConfigError: If any member is malformed or fails validation.
        """
        certificate = load_certificate(signer_cert, SIGNER_CERT_LABEL)
        private_key = load_private_key(signer_key, key_password)
        wwdr_certificate = load_certificate(wwdr_cert, WWDR_CERT_LABEL)

        validate_wwdr_certificate(wwdr_certificate)
        validate_signer(certificate, private_key)

        logger.info(
            "apple_signing_credentials_loaded",
            signer_subject=certificate.subject.rfc4514_string(),
            wwdr_subject=wwdr_certificate.subject.rfc4514_string(),
        )
        return cls(certificate=certificate, private_key=private_key, wwdr_certificate=wwdr_certificate)

    @classmethod
    def from_settings(cls) -> "AppleSigningCredentials":
        """Load the bundle from the APPLE_WALLET_* settings.

        Raises:
            ConfigError: If a setting is empty or its content is unusable.
        """
        required: dict[str, t.Any] = {
            "APPLE_WALLET_SIGNER_CERT": settings.APPLE_WALLET_SIGNER_CERT,
            "APPLE_WALLET_SIGNER_KEY": settings.APPLE_WALLET_SIGNER_KEY,
            "APPLE_WALLET_WWDR_CERT": settings.APPLE_WALLET_WWDR_CERT,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigError(
                f"Apple Wallet is not configured. Set {', '.join(missing)}.",
                field=missing[0],
            )

        return cls.from_pem(
            settings.APPLE_WALLET_SIGNER_CERT,
            settings.APPLE_WALLET_SIGNER_KEY,
            settings.APPLE_WALLET_WWDR_CERT,
            key_password=settings.APPLE_WALLET_SIGNER_KEY_PASSWORD or None,
        )
