"""Helpers shared by the racepass tests."""

import io
import typing as t
import zipfile

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from PIL import Image


def cert_pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


def key_pem(private_key: t.Any, password: bytes | None = None) -> str:
    encryption: serialization.KeySerializationEncryption = (
        serialization.BestAvailableEncryption(password) if password else serialization.NoEncryption()
    )
    return private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        encryption,
    ).decode("ascii")


def make_image(
    size: tuple[int, int] = (10, 10),
    color: tuple[int, int, int] = (255, 0, 0),
    image_format: str = "PNG",
) -> bytes:
    img = Image.new("RGB", size, color)
    buffer = io.BytesIO()
    img.save(buffer, format=image_format)
    return buffer.getvalue()


def read_pkpass(content: bytes) -> dict[str, bytes]:
    """Unzip a .pkpass into filename to content."""
    with zipfile.ZipFile(io.BytesIO(content)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


class FakeWalletStore:
    """In-memory datastore keyed by runner ID."""

    def __init__(self, runners: dict[str, dict[str, t.Any]], config: dict[str, t.Any] | None) -> None:
        self.runners = runners
        self.config = config

    def get_runner(self, runner_id: str) -> dict[str, t.Any] | None:
        return self.runners.get(runner_id)

    def get_wallet_config(self) -> dict[str, t.Any] | None:
        return self.config
