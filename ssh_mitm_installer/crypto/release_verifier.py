# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/crypto/release_verifier.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Downloads OpenSSH release key, sources and signature and verifies them against the trust pins

"""
Release Verifier: Chain-of-trust gate for the upstream OpenSSH sources.

Verification Order (MANDATORY, each step gates the next):
1. Download release key, source archive, detached signature
2. Import release key into a dedicated keyring
3. Release key fingerprint MUST equal the pinned fingerprint
   (checked BEFORE any signature verification)
4. Detached signature MUST be valid, made by the pinned key, carry the
   pinned signer identity, and gpg MUST exit 0
5. SHA-256 of the archive MUST match the pinned checksum
6. ONLY THEN: the archive is trusted and handed to the build stage

FAIL-CLOSED: Any trust failure deletes the archive before aborting, so a
re-run always re-fetches instead of reusing unverified data.
"""

import hashlib
import hmac
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

import gnupg
import requests

from ..context import ProvisioningContext, normalize_fingerprint
from ..errors import AcquisitionError, HostEnvironmentError, ProvisioningError, StageResult, TrustError

logger = logging.getLogger(__name__)

STAGE_NAME = "verification_gate"

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class VerifiedArtifact:
    """A source archive that passed every trust gate."""
    archive: Path
    sha256: str
    signer_fingerprint: str
    signer_identity: str


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ReleaseVerifier:
    """Downloads OpenSSH and verifies its sources."""

    def download(self, url: str, destination: Path, timeout: int) -> None:
        """
        Stream a single file to disk.

        Raises:
            AcquisitionError: On any network or HTTP failure (not retried)
        """
        logger.info(f"Downloading {url}")
        try:
            with requests.get(url, stream=True, timeout=timeout) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
        except requests.RequestException as e:
            destination.unlink(missing_ok=True)
            raise AcquisitionError(
                f"Failed to download {url}",
                output=str(e),
                remediation="Check network connectivity to the OpenSSH mirror, then re-run the installer.",
            )
        except OSError as e:
            raise HostEnvironmentError(f"Failed to write {destination}: {e}")

    def fetch_downloads(self, ctx: ProvisioningContext) -> None:
        print("\nGetting OpenSSH release key...")
        self.download(ctx.upstream.release_key_url, ctx.release_key_path, ctx.upstream.timeout)

        print("Getting OpenSSH sources...")
        self.download(ctx.upstream.portable_url(ctx.artifact.source_archive), ctx.archive_path,
                      ctx.upstream.timeout)

        print("Getting OpenSSH signature...")
        self.download(ctx.upstream.portable_url(ctx.artifact.signature_file), ctx.signature_path,
                      ctx.upstream.timeout)

    def open_keyring(self, ctx: ProvisioningContext) -> gnupg.GPG:
        ctx.keyring_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        os.chmod(ctx.keyring_dir, 0o700)
        try:
            return gnupg.GPG(gnupghome=str(ctx.keyring_dir))
        except (OSError, ValueError) as e:
            raise HostEnvironmentError(
                f"Unable to run gpg for release verification: {e}",
                remediation="Install GnuPG with: apt install gnupg",
            )

    def import_release_key(self, gpg: gnupg.GPG, ctx: ProvisioningContext) -> List[str]:
        """
        Import the release key.

        Returns:
            Normalized fingerprints of every imported key
        """
        print("\nImporting OpenSSH release key...")
        key_data = ctx.release_key_path.read_bytes()
        result = gpg.import_keys(key_data)
        fingerprints = [normalize_fingerprint(fp) for fp in (result.fingerprints or []) if fp]
        if not fingerprints:
            raise TrustError(
                "OpenSSH release key could not be imported!",
                output=getattr(result, "stderr", None),
            )
        return fingerprints

    def check_fingerprint(self, imported: List[str], ctx: ProvisioningContext) -> str:
        expected = ctx.pin.normalized_fingerprint
        if expected not in imported:
            raise TrustError(
                "OpenSSH release key fingerprint does not match expected value!\n"
                f"\tExpected: {ctx.pin.expected_fingerprint}\n"
                f"\tActual: {', '.join(imported)}",
                remediation="The download channel may be compromised. Do NOT build these sources.",
            )
        print("✓ OpenSSH release key matches expected value.")
        return expected

    def verify_signature(self, gpg: gnupg.GPG, ctx: ProvisioningContext) -> None:
        with open(ctx.signature_path, "rb") as f:
            verified = gpg.verify_file(f, data_filename=str(ctx.archive_path))

        problems = []
        if not verified.valid:
            problems.append(f"signature not valid (status: {verified.status})")
        if verified.returncode != 0:
            problems.append(f"verification returned code: {verified.returncode}")
        signer = normalize_fingerprint(verified.pubkey_fingerprint or "")
        if signer != ctx.pin.normalized_fingerprint:
            problems.append(f"signed by unexpected key: {verified.pubkey_fingerprint}")
        if verified.username != ctx.pin.signer_identity:
            problems.append(
                f"signer identity {verified.username!r} is not {ctx.pin.signer_identity!r}"
            )

        if problems:
            raise TrustError(
                "OpenSSH signature invalid!  " + "; ".join(problems),
                output=verified.stderr,
            )
        print("✓ Signature on OpenSSH sources verified.")

    def verify_checksum(self, ctx: ProvisioningContext) -> str:
        actual = sha256_file(ctx.archive_path)
        expected = ctx.pin.normalized_checksum
        if not hmac.compare_digest(actual[:len(expected)], expected):
            raise TrustError(
                "OpenSSH checksum is invalid!\n"
                f"\tExpected: {expected}\n"
                f"\tActual: {actual}"
            )
        print(f"✓ OpenSSH checksum verified: {actual}")
        return actual

    def discard_archive(self, ctx: ProvisioningContext) -> None:
        if ctx.archive_path.exists():
            ctx.archive_path.unlink()
            logger.warning(f"Deleted unverified archive {ctx.archive_path}")

    def verify(self, ctx: ProvisioningContext) -> VerifiedArtifact:
        """
        Run every gate in order.

        Raises:
            AcquisitionError: If any download fails (archive deleted first)
            TrustError: If any trust check fails (archive deleted first)
        """
        try:
            self.fetch_downloads(ctx)
        except AcquisitionError:
            self.discard_archive(ctx)
            raise

        try:
            gpg = self.open_keyring(ctx)
            fingerprint = self.check_fingerprint(self.import_release_key(gpg, ctx), ctx)
            self.verify_signature(gpg, ctx)
            checksum = self.verify_checksum(ctx)
        except TrustError:
            self.discard_archive(ctx)
            raise
        except OSError as e:
            self.discard_archive(ctx)
            raise HostEnvironmentError(f"Release verification aborted: {e}")

        return VerifiedArtifact(
            archive=ctx.archive_path,
            sha256=checksum,
            signer_fingerprint=fingerprint,
            signer_identity=ctx.pin.signer_identity,
        )

    def run(self, ctx: ProvisioningContext) -> StageResult:
        try:
            artifact = self.verify(ctx)
        except ProvisioningError as e:
            return StageResult.failure(STAGE_NAME, e)
        return StageResult.success(STAGE_NAME, value=artifact)
