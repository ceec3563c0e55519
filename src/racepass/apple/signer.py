"""Apple Wallet pass signing using PKCS#7.

A .pkpass file requires a PKCS#7 detached signature of the manifest.json
file, signed with the Pass Type ID certificate and including the Apple
WWDR (Worldwide Developer Relations) intermediate certificate.

NOTE: Apple Wallet requires SHA-1 for PKCS#7 signatures. The cryptography
PKCS#7 builder refuses SHA-1, so the SignedData structure is assembled with
asn1crypto and only the RSA operation is done by cryptography.
"""

import hashlib
import json
from datetime import datetime, timezone

import structlog
from asn1crypto import algos, cms, core
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from racepass.apple.certificates import AppleSigningCredentials
from racepass.exceptions import SigningError

logger = structlog.get_logger(__name__)

MANIFEST_FILENAME = "manifest.json"
SIGNATURE_FILENAME = "signature"

# DER tag of a SET OF; signed attributes are hashed with this tag, not the [0] IMPLICIT one.
_SET_OF_TAG = b"\x31"


def _to_asn1(certificate: x509.Certificate) -> asn1_x509.Certificate:
    return asn1_x509.Certificate.load(certificate.public_bytes(serialization.Encoding.DER))


class OrderedCertificateSet(cms.CertificateSet):
    """A CertificateSet that encodes its members in insertion order.

    asn1crypto sorts SET OF members by their encoding; the pass signature
    must list the signer certificate before the WWDR intermediate.
    """

    def _set_contents(self, force: bool = False) -> None:
        core.SequenceOf._set_contents(self, force=force)


class ApplePassSigner:
    """Signs Apple Wallet passes using PKCS#7.

    This class creates manifests and generates the detached PKCS#7
    signature required for .pkpass files.
    """

    def __init__(self, credentials: AppleSigningCredentials) -> None:
        """Initialize the signer.

        Args:
            credentials: The validated signer certificate, key and WWDR intermediate.
        """
        self.credentials = credentials

    def create_manifest(self, files: dict[str, bytes]) -> bytes:
        """Create the manifest.json content for a pass.

        The manifest contains SHA-1 hashes of all files in the pass package,
        keyed by filename in sorted order.

        Args:
            files: Dictionary mapping filenames to their content bytes.

        Returns:
            The manifest.json content as bytes.
        """
        manifest: dict[str, str] = {}

        for filename, content in files.items():
            if filename in (MANIFEST_FILENAME, SIGNATURE_FILENAME):
                continue
            manifest[filename] = hashlib.sha1(content).hexdigest()

        return json.dumps(manifest, indent=2, sort_keys=True).encode("utf-8")

    def sign_manifest(self, manifest_data: bytes, signing_time: datetime | None = None) -> bytes:
        """Create a PKCS#7 detached signature of the manifest.

        Args:
            manifest_data: The manifest.json content to sign.
            signing_time: Value of the signing-time attribute. Defaults to now.

        Returns:
            The PKCS#7 ContentInfo in DER format.

        Raises:
            SigningError: If signing fails.
        """
        signing_time = signing_time or datetime.now(timezone.utc)
        try:
            signer_certificate = _to_asn1(self.credentials.certificate)
            wwdr_certificate = _to_asn1(self.credentials.wwdr_certificate)

            attributes = [
                cms.CMSAttribute({"type": "content_type", "values": ["data"]}),
                cms.CMSAttribute(
                    {"type": "signing_time", "values": [cms.Time({"utc_time": core.UTCTime(signing_time)})]}
                ),
                cms.CMSAttribute({"type": "message_digest", "values": [hashlib.sha1(manifest_data).digest()]}),
            ]
            signed_attrs = cms.CMSAttributes(sorted(attributes, key=lambda attribute: attribute.dump()))
            signature = self.credentials.private_key.sign(signed_attrs.dump(), padding.PKCS1v15(), hashes.SHA1())

            signer_info = cms.SignerInfo(
                {
                    "version": "v1",
                    "sid": cms.SignerIdentifier(
                        {
                            "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                                {
                                    "issuer": signer_certificate.issuer,
                                    "serial_number": signer_certificate.serial_number,
                                }
                            )
                        }
                    ),
                    "digest_algorithm": algos.DigestAlgorithm({"algorithm": "sha1"}),
                    "signed_attrs": signed_attrs,
                    "signature_algorithm": algos.SignedDigestAlgorithm({"algorithm": "rsassa_pkcs1v15"}),
                    "signature": signature,
                }
            )

            signed_data = cms.SignedData(
                {
                    "version": "v1",
                    "digest_algorithms": cms.DigestAlgorithms([algos.DigestAlgorithm({"algorithm": "sha1"})]),
                    "encap_content_info": cms.ContentInfo({"content_type": "data"}),
                    "certificates": OrderedCertificateSet(
                        [
                            cms.CertificateChoices({"certificate": signer_certificate}),
                            cms.CertificateChoices({"certificate": wwdr_certificate}),
                        ]
                    ),
                    "signer_infos": cms.SignerInfos([signer_info]),
                }
            )

            der = cms.ContentInfo({"content_type": "signed_data", "content": signed_data}).dump()

        except (ValueError, TypeError) as e:
            logger.error("manifest_signing_failed", error=str(e))
            raise SigningError(f"Failed to sign manifest: {e}") from e

        logger.debug("manifest_signed", manifest_size=len(manifest_data), signature_size=len(der))
        return der


def verify_manifest_signature(signature: bytes, manifest_data: bytes, certificate: x509.Certificate) -> bool:
    """Verify a detached PKCS#7 signature against manifest bytes.

    Checks the message-digest attribute against the SHA-1 of the manifest and
    the RSA signature over the signed attributes.

    Returns:
        True if the signature is valid for this manifest and certificate.
    """
    try:
        signed_data = cms.ContentInfo.load(signature)["content"]
        signer_info = signed_data["signer_infos"][0]
        signed_attrs = signer_info["signed_attrs"]

        digest = None
        for attribute in signed_attrs:
            if attribute["type"].native == "message_digest":
                digest = attribute["values"][0].native
        attrs_der = _SET_OF_TAG + signed_attrs.dump()[1:]
        raw_signature = signer_info["signature"].native
    except (ValueError, TypeError, KeyError, IndexError) as e:
        logger.warning("signature_unreadable", error=str(e))
        return False

    if digest != hashlib.sha1(manifest_data).digest():
        return False

    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False
    try:
        public_key.verify(raw_signature, attrs_der, padding.PKCS1v15(), hashes.SHA1())
    except InvalidSignature:
        return False
    return True
