# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/manifest_generator.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Generates the install manifest recording verified sources, installed file hashes and host key fingerprints

"""
Install Manifest Generator: Records what a provisioning run installed.

The manifest lets the operator audit an installation after the fact:
which upstream archive was trusted (checksum + signer), the SHA-256 of
every installed executable, and the host key fingerprints. Comparing
fingerprints across runs shows that a forced re-provision produced new
host key material.
"""

import hashlib
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from . import __version__
from .context import ProvisioningContext
from .crypto.host_identity import HostIdentity
from .crypto.release_verifier import VerifiedArtifact
from .errors import HostEnvironmentError
from .services.apparmor_installer import SandboxReport


class ManifestGenerator:
    """Generates and writes the install manifest."""

    MANIFEST_NAME = "install_manifest.json"

    def __init__(self, ctx: ProvisioningContext):
        self.ctx = ctx
        self.manifest_path = ctx.account.etc_dir / self.MANIFEST_NAME

    def _hash_file(self, path: Path) -> str:
        try:
            return hashlib.sha256(path.read_bytes()).hexdigest()
        except OSError as e:
            raise HostEnvironmentError(f"Failed to hash installed file {path}: {e}")

    def generate_manifest(self, artifact: VerifiedArtifact, identity: HostIdentity,
                          sandbox: Optional[SandboxReport]) -> Dict:
        account = self.ctx.account
        installed = [account.sshd_binary, account.ssh_binary, account.run_script, account.sshd_config]

        return {
            'install_timestamp': datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            'installer_version': __version__,
            'host_variant': self.ctx.host_variant.value,
            'account': {
                'username': account.username,
                'home': str(account.home),
            },
            'source': {
                'archive': self.ctx.artifact.source_archive,
                'patch': self.ctx.artifact.patch_file,
                'sha256': artifact.sha256,
                'signer_fingerprint': artifact.signer_fingerprint,
                'signer_identity': artifact.signer_identity,
            },
            'files': {str(p): self._hash_file(p) for p in installed},
            'host_keys': identity.fingerprints(),
            'apparmor': {
                'profiles': [str(p) for p in sandbox.profiles] if sandbox else [],
                'activated': bool(sandbox and sandbox.activated),
            },
        }

    def write_manifest(self, manifest: Dict) -> Path:
        try:
            with open(self.manifest_path, 'w') as f:
                json.dump(manifest, f, indent=2, sort_keys=True)
                f.write("\n")
            os.chmod(self.manifest_path, 0o644)
        except OSError as e:
            raise HostEnvironmentError(f"Failed to write install manifest {self.manifest_path}: {e}")
        return self.manifest_path
