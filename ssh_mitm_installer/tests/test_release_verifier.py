# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/tests/test_release_verifier.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Tests for the OpenSSH release verification gate (fingerprint, signature, checksum)

"""
Tests for release verification.

Validates that:
1. The release key fingerprint is checked BEFORE the signature
2. Any signature problem is fatal even when gpg exits 0
3. Checksum mismatches delete the archive
4. Every trust failure leaves no archive behind
5. Download failures are acquisition errors
"""

import hashlib
import os
import shutil
import stat
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ssh_mitm_installer.context import ProvisioningContext, TrustPin
from ssh_mitm_installer.crypto.release_verifier import ReleaseVerifier, VerifiedArtifact
from ssh_mitm_installer.errors import AcquisitionError, ErrorKind

PINNED_FP = "59C2118ED206D927E667EBE3D3E5F56B6D920D30"
SIGNER = "Damien Miller <djm@mindrot.org>"
ARCHIVE_DATA = b"openssh-7.5p1 sources\n" * 64


class TestReleaseVerifier(unittest.TestCase):
    """Test the verification gate."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp(prefix="ssh_mitm_verify_test_"))
        self.checksum = hashlib.sha256(ARCHIVE_DATA).hexdigest()
        self.ctx = ProvisioningContext(
            work_dir=self.test_dir,
            pin=TrustPin(
                expected_fingerprint="59C2 118E D206 D927 E667  EBE3 D3E5 F56B 6D92 0D30",
                expected_checksum=self.checksum,
                signer_identity=SIGNER,
            ),
        )
        self.verifier = ReleaseVerifier()

        self.download_patcher = patch.object(ReleaseVerifier, 'download', side_effect=self._fake_download)
        self.mock_download = self.download_patcher.start()

        self.gpg_patcher = patch('ssh_mitm_installer.crypto.release_verifier.gnupg.GPG')
        self.mock_gpg_class = self.gpg_patcher.start()
        self.gpg = self.mock_gpg_class.return_value
        self.gpg.import_keys.return_value = MagicMock(fingerprints=[PINNED_FP], stderr="")
        self.gpg.verify_file.return_value = self._verification()

    def tearDown(self):
        self.gpg_patcher.stop()
        self.download_patcher.stop()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _fake_download(self, url, destination, timeout):
        contents = {
            self.ctx.artifact.release_key_file: b"-----BEGIN PGP PUBLIC KEY BLOCK-----\n",
            self.ctx.artifact.source_archive: ARCHIVE_DATA,
            self.ctx.artifact.signature_file: b"-----BEGIN PGP SIGNATURE-----\n",
        }
        destination.write_bytes(contents[destination.name])

    def _verification(self, valid=True, returncode=0, fingerprint=PINNED_FP, username=SIGNER):
        return MagicMock(
            valid=valid,
            returncode=returncode,
            pubkey_fingerprint=fingerprint,
            username=username,
            status="signature valid" if valid else "signature bad",
            stderr="[GNUPG:] VALIDSIG" if valid else "[GNUPG:] BADSIG",
        )

    def test_all_gates_pass(self):
        result = self.verifier.run(self.ctx)

        self.assertTrue(result.ok)
        self.assertIsInstance(result.value, VerifiedArtifact)
        self.assertEqual(result.value.sha256, self.checksum)
        self.assertEqual(result.value.signer_fingerprint, PINNED_FP)
        self.assertEqual(result.value.signer_identity, SIGNER)
        self.assertTrue(self.ctx.archive_path.exists())

    def test_fingerprint_checked_before_signature(self):
        self.verifier.run(self.ctx)

        calls = [name for name, _, _ in self.gpg.method_calls]
        self.assertEqual(calls, ['import_keys', 'verify_file'])

    def test_downloads_fetched_in_order(self):
        self.verifier.run(self.ctx)

        names = [c.args[1].name for c in self.mock_download.call_args_list]
        self.assertEqual(names, ["RELEASE_KEY.asc", "openssh-7.5p1.tar.gz", "openssh-7.5p1.tar.gz.asc"])
        self.assertTrue(all(c.args[2] == 60 for c in self.mock_download.call_args_list))

    def test_keyring_is_private(self):
        self.verifier.run(self.ctx)

        mode = stat.S_IMODE(os.stat(self.ctx.keyring_dir).st_mode)
        self.assertEqual(mode, 0o700)
        self.mock_gpg_class.assert_called_once_with(gnupghome=str(self.ctx.keyring_dir))

    def test_fingerprint_mismatch_aborts_before_signature(self):
        self.ctx.pin = TrustPin(expected_fingerprint="AAAA", expected_checksum=self.checksum,
                                signer_identity=SIGNER)
        self.gpg.import_keys.return_value = MagicMock(fingerprints=["BBBB"], stderr="")

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.TRUST)
        self.assertIn("fingerprint does not match", result.error.message)
        self.gpg.verify_file.assert_not_called()
        self.assertFalse(self.ctx.archive_path.exists())

    def test_fingerprint_superset_is_rejected(self):
        # Pin is a suffix of the imported key: substring matching would accept it
        self.ctx.pin = TrustPin(expected_fingerprint="6D92 0D30", expected_checksum=self.checksum,
                                signer_identity=SIGNER)

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.TRUST)
        self.gpg.verify_file.assert_not_called()

    def test_fingerprint_normalization(self):
        self.ctx.pin = TrustPin(
            expected_fingerprint="59c2 118e d206 d927 e667  ebe3 d3e5 f56b 6d92 0d30",
            expected_checksum=self.checksum,
            signer_identity=SIGNER,
        )
        self.gpg.import_keys.return_value = MagicMock(
            fingerprints=["59C2118ED206D927E667EBE3D3E5F56B6D920D30"], stderr="")

        result = self.verifier.run(self.ctx)
        self.assertTrue(result.ok)

    def test_key_import_failure_is_trust_error(self):
        self.gpg.import_keys.return_value = MagicMock(fingerprints=[], stderr="no valid OpenPGP data found")

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.TRUST)
        self.assertFalse(self.ctx.archive_path.exists())

    def test_invalid_signature_deletes_archive(self):
        self.gpg.verify_file.return_value = self._verification(valid=False, returncode=1)

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.TRUST)
        self.assertIn("OpenSSH signature invalid!", result.error.message)
        self.assertFalse(self.ctx.archive_path.exists())

    def test_wrong_signer_identity_fails_despite_exit_zero(self):
        self.gpg.verify_file.return_value = self._verification(username="Mallory <mallory@example.com>")

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.TRUST)
        self.assertIn("signer identity", result.error.message)
        self.assertFalse(self.ctx.archive_path.exists())

    def test_nonzero_gpg_status_fails_despite_good_signature(self):
        self.gpg.verify_file.return_value = self._verification(returncode=2)

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertIn("returned code: 2", result.error.message)
        self.assertFalse(self.ctx.archive_path.exists())

    def test_signature_by_other_key_fails(self):
        self.gpg.verify_file.return_value = self._verification(
            fingerprint="0123456789ABCDEF0123456789ABCDEF01234567")

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertIn("unexpected key", result.error.message)

    def test_checksum_mismatch_deletes_archive_keeps_signature(self):
        self.ctx.pin = TrustPin(expected_fingerprint=PINNED_FP, expected_checksum="0" * 64,
                                signer_identity=SIGNER)

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.TRUST)
        self.assertIn("checksum is invalid", result.error.message)
        self.gpg.verify_file.assert_called_once()
        self.assertFalse(self.ctx.archive_path.exists())
        self.assertTrue(self.ctx.signature_path.exists())

    def test_download_failure_is_acquisition_error(self):
        def fail_on_archive(url, destination, timeout):
            if destination.name == self.ctx.artifact.source_archive:
                raise AcquisitionError(f"Failed to download {url}")
            self._fake_download(url, destination, timeout)

        self.mock_download.side_effect = fail_on_archive

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.ACQUISITION)
        self.gpg.import_keys.assert_not_called()

    def test_signature_download_failure_discards_archive(self):
        def fail_on_signature(url, destination, timeout):
            if destination.name == self.ctx.artifact.signature_file:
                raise AcquisitionError(f"Failed to download {url}")
            self._fake_download(url, destination, timeout)

        self.mock_download.side_effect = fail_on_signature

        result = self.verifier.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.ACQUISITION)
        self.assertFalse(self.ctx.archive_path.exists())
        self.gpg.import_keys.assert_not_called()


class TestDownload(unittest.TestCase):
    """Test the HTTP download helper."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp(prefix="ssh_mitm_download_test_"))
        self.destination = self.test_dir / "openssh-7.5p1.tar.gz"

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _response(self, chunks=None, error=None):
        response = MagicMock()
        response.__enter__.return_value = response
        response.iter_content.return_value = chunks or []
        if error:
            response.raise_for_status.side_effect = error
        return response

    @patch('ssh_mitm_installer.crypto.release_verifier.requests.get')
    def test_streams_to_disk(self, mock_get):
        mock_get.return_value = self._response(chunks=[b"abc", b"def"])

        ReleaseVerifier().download("https://example.invalid/a.tar.gz", self.destination, 30)

        self.assertEqual(self.destination.read_bytes(), b"abcdef")
        mock_get.assert_called_once_with("https://example.invalid/a.tar.gz", stream=True, timeout=30)

    @patch('ssh_mitm_installer.crypto.release_verifier.requests.get')
    def test_http_error_is_acquisition_error(self, mock_get):
        mock_get.return_value = self._response(error=requests.HTTPError("404 Client Error"))

        with self.assertRaises(AcquisitionError) as context:
            ReleaseVerifier().download("https://example.invalid/a.tar.gz", self.destination, 30)

        self.assertIn("404", context.exception.output)
        self.assertFalse(self.destination.exists())

    @patch('ssh_mitm_installer.crypto.release_verifier.requests.get')
    def test_connection_error_removes_partial_file(self, mock_get):
        self.destination.write_bytes(b"partial")
        mock_get.side_effect = requests.ConnectionError("connection reset")

        with self.assertRaises(AcquisitionError):
            ReleaseVerifier().download("https://example.invalid/a.tar.gz", self.destination, 30)

        self.assertFalse(self.destination.exists())


if __name__ == '__main__':
    unittest.main(verbosity=2)
