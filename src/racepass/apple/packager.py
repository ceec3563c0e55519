"""Assembly of the signed .pkpass archive.

A .pkpass file is a ZIP archive containing:
- pass.json: The pass definition
- Images: icon, logo, strip and thumbnail variants
- manifest.json: SHA-1 hashes of all files above
- signature: PKCS#7 detached signature of the manifest
"""

import io
import json
import zipfile

import structlog

from racepass import settings
from racepass.apple.formatting import PassColors
from racepass.apple.images import ICON_SIZES, PassImages, generate_colored_icon, parse_rgb_color
from racepass.apple.signer import MANIFEST_FILENAME, SIGNATURE_FILENAME, ApplePassSigner
from racepass.exceptions import PackagingError

logger = structlog.get_logger(__name__)

PASS_JSON_FILENAME = "pass.json"
COMPRESSION_LEVEL = 6

RESOLUTION_SUFFIXES = ("", "@2x", "@3x")


def _variants(base_name: str, content: bytes) -> dict[str, bytes]:
    # Same bytes under every suffix; no actual rescaling.
    return {f"{base_name}{suffix}.png": content for suffix in RESOLUTION_SUFFIXES}


def build_bundle_files(
    pass_json: bytes,
    images: PassImages,
    colors: PassColors,
    fallback_icon: bool | None = None,
) -> dict[str, bytes]:
    """Lay out every file of the pass except manifest and signature.

    Some Wallet versions require icon.png even when logoText is set, so a
    missing icon is replaced by the logo, or by a solid icon in the
    background color. Generic passes are displayed with either strip or
    thumbnail depending on the Wallet version, so the strip image is
    written under both names.

    Args:
        pass_json: The serialized pass descriptor.
        images: The fetched images.
        colors: Pass colors, used for the generated icon.
        fallback_icon: Generate a solid icon when no icon or logo exists.
            Defaults to the APPLE_WALLET_FALLBACK_ICON setting.

    Returns:
        Dictionary mapping filename to content bytes.
    """
    if fallback_icon is None:
        fallback_icon = settings.APPLE_WALLET_FALLBACK_ICON

    files: dict[str, bytes] = {PASS_JSON_FILENAME: pass_json}

    if images.icon:
        files.update(_variants("icon", images.icon))
    elif images.logo:
        logger.info("icon_missing_using_logo")
        files.update(_variants("icon", images.logo))
    elif fallback_icon:
        logger.info("icon_missing_generating", color=colors.background)
        icon_color = parse_rgb_color(colors.background)
        for filename, size in ICON_SIZES.items():
            files[filename] = generate_colored_icon(size, icon_color)
    else:
        logger.warning("icon_missing")

    if images.logo:
        files["logo.png"] = images.logo

    if images.strip:
        files.update(_variants("strip", images.strip))
        files.update(_variants("thumbnail", images.strip))

    return files


def create_pkpass_archive(files: dict[str, bytes]) -> bytes:
    """Create the .pkpass ZIP archive.

    Args:
        files: Dictionary mapping filename to content.

    Returns:
        ZIP archive as bytes.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL) as zf:
        for filename, content in files.items():
            zf.writestr(filename, content)
    return buffer.getvalue()


class PassPackager:
    """Hashes, signs and zips the files of a pass."""

    def __init__(self, signer: ApplePassSigner) -> None:
        self.signer = signer

    def package(self, files: dict[str, bytes]) -> bytes:
        """Add manifest and signature to the pass files and zip them.

        Nothing is returned unless the manifest was signed successfully.

        Raises:
            PackagingError: If pass.json is missing or the archive cannot be written.
            SigningError: If the manifest cannot be signed.
        """
        manifest = self.signer.create_manifest(files)
        listed = json.loads(manifest)
        if PASS_JSON_FILENAME not in listed:
            raise PackagingError(f"{PASS_JSON_FILENAME} is missing from the manifest")

        signature = self.signer.sign_manifest(manifest)

        archive_files = {**files, MANIFEST_FILENAME: manifest, SIGNATURE_FILENAME: signature}
        try:
            archive = create_pkpass_archive(archive_files)
        except (zipfile.BadZipFile, ValueError, OSError) as e:
            raise PackagingError(f"Failed to write pass archive: {e}") from e

        logger.debug("pass_packaged", files=sorted(listed), size=len(archive))
        return archive
