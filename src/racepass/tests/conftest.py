"""Test fixtures for racepass tests.

Certificates and keys are generated on the fly with cryptography: a Pass
Type ID certificate issued by an RSA "G4" WWDR intermediate, and an
ECC look-alike of the kind Apple issues for newer generations. Remote images
are served by an httpx.MockTransport.
"""

import typing as t
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from racepass.apple.certificates import AppleSigningCredentials
from racepass.apple.images import ImageFetcher
from racepass.records import RunnerRecord
from racepass.tests.helpers import FakeWalletStore, make_image

WWDR_COMMON_NAME = "Apple Worldwide Developer Relations Certification Authority"

Handler = Callable[[httpx.Request], httpx.Response]


def _build_certificate(
    subject: list[x509.NameAttribute],
    public_key: t.Any,
    signing_key: t.Any,
    not_valid_after: datetime,
    issuer: x509.Name | None = None,
) -> x509.Certificate:
    name = x509.Name(subject)
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(issuer or name)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(not_valid_after)
        .sign(signing_key, hashes.SHA256())
    )


# --- Certificate Fixtures ---


@pytest.fixture(scope="session")
def signer_private_key() -> rsa.RSAPrivateKey:
    """RSA key of the Pass Type ID certificate."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signer_certificate(
    signer_private_key: rsa.RSAPrivateKey,
    wwdr_private_key: rsa.RSAPrivateKey,
    wwdr_certificate: x509.Certificate,
) -> x509.Certificate:
    """A Pass Type ID certificate issued by the mock WWDR intermediate."""
    return _build_certificate(
        [
            x509.NameAttribute(NameOID.USER_ID, "pass.com.example.race"),
            x509.NameAttribute(NameOID.COMMON_NAME, "Pass Type ID: pass.com.example.race"),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "ABCDE12345"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Race Co."),
            x509.NameAttribute(NameOID.COUNTRY_NAME, "TH"),
        ],
        signer_private_key.public_key(),
        wwdr_private_key,
        datetime.now(timezone.utc) + timedelta(days=365),
        issuer=wwdr_certificate.subject,
    )


@pytest.fixture(scope="session")
def wwdr_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def wwdr_certificate(wwdr_private_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """A mock Apple WWDR G4 intermediate (RSA, expiring 2030)."""
    return _build_certificate(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, WWDR_COMMON_NAME),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "G4"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Apple Inc."),
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        ],
        wwdr_private_key.public_key(),
        wwdr_private_key,
        datetime(2030, 12, 10, tzinfo=timezone.utc),
    )


@pytest.fixture(scope="session")
def ecc_wwdr_certificate() -> x509.Certificate:
    """A WWDR look-alike with an elliptic-curve key but G4 in its subject."""
    key = ec.generate_private_key(ec.SECP256R1())
    return _build_certificate(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, WWDR_COMMON_NAME),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "G4"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Apple Inc."),
        ],
        key.public_key(),
        key,
        datetime(2030, 12, 10, tzinfo=timezone.utc),
    )


@pytest.fixture(scope="session")
def g3_wwdr_certificate(wwdr_private_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """An older-generation WWDR intermediate."""
    return _build_certificate(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, WWDR_COMMON_NAME),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "G3"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Apple Inc."),
        ],
        wwdr_private_key.public_key(),
        wwdr_private_key,
        datetime(2030, 2, 20, tzinfo=timezone.utc),
    )


@pytest.fixture
def signing_credentials(
    signer_certificate: x509.Certificate,
    signer_private_key: rsa.RSAPrivateKey,
    wwdr_certificate: x509.Certificate,
) -> AppleSigningCredentials:
    """A valid, already parsed signing bundle."""
    return AppleSigningCredentials(
        certificate=signer_certificate,
        private_key=signer_private_key,
        wwdr_certificate=wwdr_certificate,
    )


# --- Image Fixtures ---


@pytest.fixture
def png_bytes() -> bytes:
    """A small red PNG."""
    return make_image()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small blue JPEG."""
    return make_image((12, 12), (0, 0, 255), image_format="JPEG")


@pytest.fixture
def image_fetcher_factory() -> Iterator[Callable[..., ImageFetcher]]:
    """Build ImageFetchers whose requests are answered by a handler."""
    clients: list[httpx.Client] = []

    def _factory(handler: Handler, retries: int = 1) -> ImageFetcher:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return ImageFetcher(client=client, timeout=1.0, retries=retries)

    yield _factory

    for client in clients:
        client.close()


@pytest.fixture
def image_host(png_bytes: bytes) -> Handler:
    """Serve PNGs from images.example.com; every other host is unreachable."""

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.host != "images.example.com":
            raise httpx.ConnectError("Name or service not known", request=request)
        if request.url.path.endswith("missing.png"):
            return httpx.Response(404)
        return httpx.Response(200, content=png_bytes, headers={"Content-Type": "image/png"})

    return _handler


@pytest.fixture
def image_fetcher(image_fetcher_factory: Callable[..., ImageFetcher], image_host: Handler) -> ImageFetcher:
    return image_fetcher_factory(image_host)


# --- Runner and Configuration Fixtures ---


@pytest.fixture
def vip_runner() -> RunnerRecord:
    """A VIP-cohort runner."""
    return RunnerRecord(
        {
            "id": 42,
            "access_key": "ak-7f3c9e",
            "bib": "1024",
            "block": "B",
            "first_name": "Somchai",
            "last_name": "Jaidee",
            "colour_sign": "VIP",
            "shirt_size": "L",
            "pass_generated": False,
        }
    )


@pytest.fixture
def apple_config_data() -> dict[str, t.Any]:
    """An Apple Wallet configuration as stored in the datastore."""
    return {
        "passTypeId": "pass.com.example.race",
        "teamId": "ABCDE12345",
        "organizationName": "Example Race Co. ",
        "description": "Race Bib Pass",
        "backgroundColor": "rgb(20, 20, 20)",
        "foregroundColor": "rgb(255, 255, 255)",
        "labelColor": "rgb(200, 200, 200)",
        "iconUri": "https://images.example.com/icon.png",
        "logoUri": "https://images.example.com/logo.png",
        "stripImageUri": "https://images.example.com/strip.png",
        "barcodeFormat": "PKBarcodeFormatQR",
        "barcodeValueSource": "bib",
        "cohortField": "colour_sign",
        "cohortBackgroundColors": {"VIP": "#70a8a7", "1 วัน": "#8c8e90"},
        "field_mappings": {
            "primaryFields": [{"key": "bib", "label": "BIB", "valueTemplate": "{bib}"}],
            "secondaryFields": [{"key": "name", "label": "NAME", "valueTemplate": "{first_name} {last_name}"}],
            "auxiliaryFields": [{"key": "block", "label": "BLOCK", "valueTemplate": "{block}"}],
        },
    }


@pytest.fixture
def google_config_data() -> dict[str, t.Any]:
    """A Google Wallet configuration row (snake_case columns)."""
    return {
        "issuer_id": "3388000000012345678",
        "class_suffix": "bangkok-run-2026",
        "hex_background_color": "#1a1a1a",
        "logo_uri": "https://images.example.com/logo.png",
        "card_title": "Bangkok Run 2026",
        "hero_image_uri": "https://images.example.com/hero.png",
        "official_website_uri": "https://run.example.com",
        "cohort_background_colors": {"VIP": "#70a8a7"},
        "cohort_hero_images": {"VIP": "https://images.example.com/hero-vip.png"},
        "field_mappings": {
            "header": {"enabled": True, "template": "{first_name} {last_name}"},
            "subheader": {"enabled": True, "template": "Block {block}"},
            "barcodeValue": {"enabled": True, "sourceColumn": "bib"},
            "textModules": [{"id": "shirt", "header": "Shirt", "bodyTemplate": "{shirt_size}"}],
            "informationRows": [
                {
                    "left": {"label": "BIB", "value": "{bib}"},
                    "middle": {"label": "BLOCK", "value": "{block}"},
                    "right": {"label": "SHIRT", "value": "{shirt_size}"},
                }
            ],
        },
    }


@pytest.fixture
def wallet_store(
    vip_runner: RunnerRecord,
    apple_config_data: dict[str, t.Any],
    google_config_data: dict[str, t.Any],
) -> FakeWalletStore:
    """A store holding the VIP runner and both wallet configurations."""
    return FakeWalletStore(
        runners={"42": dict(vip_runner)},
        config={**google_config_data, "apple_wallet_config": apple_config_data},
    )
