"""Tests for Apple Wallet pass signing."""

import hashlib
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from asn1crypto import cms
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from racepass.apple.certificates import AppleSigningCredentials
from racepass.apple.signer import ApplePassSigner, OrderedCertificateSet, verify_manifest_signature
from racepass.exceptions import SigningError


class TestApplePassSigner:
    """Tests for ApplePassSigner."""

    @pytest.fixture
    def signer(self, signing_credentials: AppleSigningCredentials) -> ApplePassSigner:
        return ApplePassSigner(signing_credentials)

    def test_create_manifest(self, signer: ApplePassSigner) -> None:
        """Should create a manifest with SHA-1 hashes of every file."""
        files = {
            "pass.json": b'{"test": "data"}',
            "icon.png": b"fake image data",
        }

        manifest = json.loads(signer.create_manifest(files))

        assert manifest == {
            "icon.png": hashlib.sha1(b"fake image data").hexdigest(),
            "pass.json": hashlib.sha1(b'{"test": "data"}').hexdigest(),
        }

    def test_create_manifest_excludes_signature_files(self, signer: ApplePassSigner) -> None:
        """Should never list manifest.json or signature in the manifest."""
        files = {"pass.json": b"{}", "manifest.json": b"old", "signature": b"old"}

        manifest = json.loads(signer.create_manifest(files))

        assert list(manifest) == ["pass.json"]

    def test_create_manifest_is_deterministic(self, signer: ApplePassSigner) -> None:
        """Should produce the same bytes regardless of input order."""
        a = signer.create_manifest({"b.png": b"b", "a.png": b"a"})
        b = signer.create_manifest({"a.png": b"a", "b.png": b"b"})

        assert a == b

    def test_signature_structure(
        self,
        signer: ApplePassSigner,
        signer_certificate: x509.Certificate,
        wwdr_certificate: x509.Certificate,
    ) -> None:
        """Should produce a detached SHA-1 SignedData carrying both certificates."""
        manifest = signer.create_manifest({"pass.json": b"{}"})
        signing_time = datetime(2026, 11, 1, 6, 0, tzinfo=timezone.utc)

        signature = signer.sign_manifest(manifest, signing_time=signing_time)

        content_info = cms.ContentInfo.load(signature)
        assert content_info["content_type"].native == "signed_data"
        signed_data = content_info["content"]
        assert signed_data["encap_content_info"]["content"].native is None
        assert [a["algorithm"].native for a in signed_data["digest_algorithms"]] == ["sha1"]

        serials = [c.chosen["tbs_certificate"]["serial_number"].native for c in signed_data["certificates"]]
        assert serials == [signer_certificate.serial_number, wwdr_certificate.serial_number]

        signer_info = signed_data["signer_infos"][0]
        assert signer_info["digest_algorithm"]["algorithm"].native == "sha1"
        assert signer_info["sid"].chosen["serial_number"].native == signer_certificate.serial_number

        attributes = {a["type"].native: a["values"][0].native for a in signer_info["signed_attrs"]}
        assert attributes["content_type"] == "data"
        assert attributes["message_digest"] == hashlib.sha1(manifest).digest()
        assert attributes["signing_time"] == signing_time

    def test_signature_verifies(self, signer: ApplePassSigner, signer_certificate: x509.Certificate) -> None:
        """Should produce a signature that verifies against the manifest."""
        manifest = signer.create_manifest({"pass.json": b'{"serialNumber": "ak-1"}'})

        signature = signer.sign_manifest(manifest)

        assert verify_manifest_signature(signature, manifest, signer_certificate) is True

    def test_tampered_manifest_does_not_verify(
        self, signer: ApplePassSigner, signer_certificate: x509.Certificate
    ) -> None:
        """Should fail verification when the manifest changed after signing."""
        manifest = signer.create_manifest({"pass.json": b"{}"})
        signature = signer.sign_manifest(manifest)

        tampered = signer.create_manifest({"pass.json": b'{"x": 1}'})

        assert verify_manifest_signature(signature, tampered, signer_certificate) is False

    def test_wrong_certificate_does_not_verify(
        self, signer: ApplePassSigner, wwdr_certificate: x509.Certificate
    ) -> None:
        """Should fail verification against another certificate's key."""
        manifest = signer.create_manifest({"pass.json": b"{}"})

        signature = signer.sign_manifest(manifest)

        assert verify_manifest_signature(signature, manifest, wwdr_certificate) is False

    def test_garbage_signature_does_not_verify(self, signer_certificate: x509.Certificate) -> None:
        """Should report an unreadable signature as invalid."""
        assert verify_manifest_signature(b"\x00\x01garbage", b"{}", signer_certificate) is False

    def test_signing_failure(
        self, signer_certificate: x509.Certificate, wwdr_certificate: x509.Certificate
    ) -> None:
        """Should wrap a failing RSA operation in SigningError."""
        private_key = MagicMock()
        private_key.sign.side_effect = ValueError("key unusable")
        signer = ApplePassSigner(
            AppleSigningCredentials(
                certificate=signer_certificate,
                private_key=private_key,
                wwdr_certificate=wwdr_certificate,
            )
        )

        with pytest.raises(SigningError, match="key unusable"):
            signer.sign_manifest(b"{}")


class TestOrderedCertificateSet:
    """Tests for OrderedCertificateSet."""

    @pytest.mark.parametrize("reverse", [False, True])
    def test_keeps_insertion_order(
        self, signer_certificate: x509.Certificate, wwdr_certificate: x509.Certificate, reverse: bool
    ) -> None:
        """Should encode the certificates in the order they were given."""
        certificates = [signer_certificate, wwdr_certificate]
        if reverse:
            certificates.reverse()
        choices = [
            cms.CertificateChoices(
                {"certificate": asn1_x509.Certificate.load(c.public_bytes(serialization.Encoding.DER))}
            )
            for c in certificates
        ]

        encoded = OrderedCertificateSet(choices).dump()

        serials = [c.chosen["tbs_certificate"]["serial_number"].native for c in cms.CertificateSet.load(encoded)]
        assert serials == [c.serial_number for c in certificates]
