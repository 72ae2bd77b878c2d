# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/crypto/host_identity.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Generates the RSA-4096 and Ed25519 SSH host keys for sshd_mitm

"""
Host Identity Generator: Creates the daemon's SSH host keys.

Security Properties:
- RSA 4096-bit (e=65537) and Ed25519 key pairs
- OpenSSH private key format, no passphrase (daemon starts unattended)
- Private keys 600, public keys 644
- Keys are created exclusively: existing key files are NEVER overwritten,
  since regenerating them would invalidate trust established with clients
"""

import base64
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

from ..errors import HostEnvironmentError

logger = logging.getLogger(__name__)

RSA_KEY_SIZE = 4096
RSA_PUBLIC_EXPONENT = 65537


@dataclass(frozen=True)
class HostKey:
    """One generated host key pair."""
    algorithm: str
    private_path: Path
    public_path: Path
    fingerprint: str


@dataclass(frozen=True)
class HostIdentity:
    """Both host key pairs of one provisioning cycle."""
    rsa: HostKey
    ed25519: HostKey

    def keys(self):
        return [self.rsa, self.ed25519]

    def files(self):
        return [p for key in self.keys() for p in (key.private_path, key.public_path)]

    def fingerprints(self) -> Dict[str, str]:
        return {key.algorithm: key.fingerprint for key in self.keys()}


def openssh_fingerprint(public_line: bytes) -> str:
    """
    Compute the OpenSSH SHA256 fingerprint of a public key line.

    Args:
        public_line: "<type> <base64 blob> [comment]"

    Returns:
        Fingerprint in "SHA256:<base64, unpadded>" form
    """
    blob = base64.b64decode(public_line.split()[1])
    digest = hashlib.sha256(blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def _write_exclusive(path: Path, data: bytes, mode: int) -> None:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    except FileExistsError:
        raise HostEnvironmentError(
            f"Refusing to overwrite existing host key file: {path}",
            remediation="Host keys are never regenerated implicitly. Re-run the installer with --force to re-create the account.",
        )
    except OSError as e:
        raise HostEnvironmentError(f"Failed to create {path}: {e}")

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(path, mode)
    except OSError as e:
        raise HostEnvironmentError(f"Failed to write {path}: {e}")


class HostIdentityGenerator:
    """Generates SSH host keys with the cryptography library."""

    def __init__(self, comment: Optional[str] = None):
        self.comment = comment or f"root@{os.uname().nodename}"

    def _save(self, algorithm: str, private_key, private_path: Path) -> HostKey:
        private_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.OpenSSH,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        )
        public_line = public_bytes + b" " + self.comment.encode() + b"\n"
        public_path = private_path.with_name(private_path.name + ".pub")

        _write_exclusive(private_path, private_bytes, 0o600)
        _write_exclusive(public_path, public_line, 0o644)

        fingerprint = openssh_fingerprint(public_bytes)
        print(f"✓ Generated {algorithm} host key: {private_path}")
        print(f"  Fingerprint: {fingerprint}")
        return HostKey(algorithm, private_path, public_path, fingerprint)

    def generate(self, etc_dir: Path) -> HostIdentity:
        """
        Create a 4096-bit RSA host key and an ED25519 host key.

        Args:
            etc_dir: Directory receiving ssh_host_*_key and ssh_host_*_key.pub

        Raises:
            HostEnvironmentError: If a key file already exists or cannot be written
        """
        rsa_key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE)
        ed_key = ed25519.Ed25519PrivateKey.generate()

        return HostIdentity(
            rsa=self._save("rsa", rsa_key, etc_dir / "ssh_host_rsa_key"),
            ed25519=self._save("ed25519", ed_key, etc_dir / "ssh_host_ed25519_key"),
        )
