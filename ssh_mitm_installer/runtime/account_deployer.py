# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/runtime/account_deployer.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Creates the ssh-mitm user, deploys sshd_mitm/ssh into its home with locked-down permissions, and writes run.sh

"""
Account Deployer: Least-privilege runtime for sshd_mitm.

Creates canonical layout under the service account home:
/home/ssh-mitm/            700  (session logs are written here later)
  bin/                     755  sshd_mitm, ssh (stripped)
  etc/                     755  sshd_config, host keys, install_manifest.json
  tmp/                     700  owned by ssh-mitm
  empty/                   700  owned by ssh-mitm (privsep chroot)
  run.sh                   755  launch script

Fail-closed: every failure raises HostEnvironmentError which aborts
installation. The layout is re-validated before the stage reports success.
"""

import logging
import os
import pwd
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from ..build.openssh_builder import BuildOutput
from ..context import ProvisioningContext
from ..crypto.host_identity import HostIdentity, HostIdentityGenerator
from ..crypto.release_verifier import VerifiedArtifact
from ..errors import HostEnvironmentError, ProvisioningError, StageResult
from ..manifest_generator import ManifestGenerator
from ..services.apparmor_installer import AppArmorInstaller, SandboxReport
from ..system.commands import run_command

logger = logging.getLogger(__name__)

STAGE_NAME = "privileged_setup"


@dataclass
class Deployment:
    """Result of a successful privileged setup."""
    identity: HostIdentity
    sandbox: SandboxReport
    manifest_path: Path
    run_script: Path


def render_run_script(ctx: ProvisioningContext) -> str:
    account = ctx.account
    return f"""#!/bin/bash
{account.sshd_binary} -f {account.sshd_config}
if [[ $? == 0 ]]; then
    echo "sshd_mitm is now running."
    exit 0
else
    echo -e "\\n\\nERROR: sshd_mitm failed to start!\\n"
    exit 1
fi
"""


class AccountDeployer:
    """Creates the ssh-mitm user account, and sets up its environment."""

    def __init__(self, identity_generator: Optional[HostIdentityGenerator] = None,
                 apparmor_installer: Optional[AppArmorInstaller] = None):
        self.identity_generator = identity_generator if identity_generator is not None else HostIdentityGenerator()
        self.apparmor_installer = apparmor_installer if apparmor_installer is not None else AppArmorInstaller()

    def _account_ids(self, username: str) -> Tuple[int, int]:
        try:
            entry = pwd.getpwnam(username)
        except KeyError as e:
            raise HostEnvironmentError(f"{username} user not found after creation: {e}")
        return entry.pw_uid, entry.pw_gid

    def _mkdir(self, path: Path, mode: int) -> None:
        try:
            path.mkdir(mode=mode)
            # mkdir honours the umask
            os.chmod(path, mode)
        except OSError as e:
            raise HostEnvironmentError(f"Failed to create {path}: {e}")

    def _chown(self, paths: List[Path], uid: int, gid: int) -> None:
        for path in paths:
            try:
                os.chown(path, uid, gid)
            except OSError as e:
                raise HostEnvironmentError(f"Failed to set ownership on {path}: {e}")

    def create_account(self, ctx: ProvisioningContext) -> Tuple[int, int]:
        account = ctx.account
        run_command(
            ["useradd", "-m", "-s", account.shell, "-d", str(account.home), account.username],
            failure_message=f"Failed to create the {account.username} user",
        )
        uid, gid = self._account_ids(account.username)

        try:
            os.chmod(account.home, 0o700)
        except OSError as e:
            raise HostEnvironmentError(f"Failed to set permissions on {account.home}: {e}")
        return uid, gid

    def create_layout(self, ctx: ProvisioningContext, uid: int, gid: int) -> None:
        account = ctx.account
        self._mkdir(account.bin_dir, 0o755)
        self._mkdir(account.etc_dir, 0o755)
        self._mkdir(account.tmp_dir, 0o700)
        self._chown([account.tmp_dir], uid, gid)

    def install_binaries(self, ctx: ProvisioningContext, build: BuildOutput) -> None:
        account = ctx.account
        try:
            shutil.copyfile(build.sshd_config, account.sshd_config)
            os.chmod(account.sshd_config, 0o644)
            # sshd is renamed so it never collides with a system-wide sshd
            shutil.copy2(build.sshd, account.sshd_binary)
            shutil.copy2(build.ssh, account.ssh_binary)
        except OSError as e:
            raise HostEnvironmentError(f"Failed to install OpenSSH binaries: {e}")

        run_command(
            ["strip", str(account.sshd_binary), str(account.ssh_binary)],
            failure_message="Failed to strip debugging symbols from sshd_mitm/ssh",
        )

    def create_privsep_dir(self, ctx: ProvisioningContext, identity: HostIdentity,
                           uid: int, gid: int) -> None:
        self._mkdir(ctx.account.empty_dir, 0o700)
        self._chown([ctx.account.empty_dir] + identity.files(), uid, gid)

    def write_run_script(self, ctx: ProvisioningContext) -> Path:
        path = ctx.account.run_script
        try:
            path.write_text(render_run_script(ctx))
            os.chmod(path, 0o755)
        except OSError as e:
            raise HostEnvironmentError(f"Failed to write {path}: {e}")
        return path

    def validate_layout(self, ctx: ProvisioningContext, identity: HostIdentity, uid: int) -> List[str]:
        """
        Re-check every permission and ownership invariant.

        Returns:
            List of violations (empty when the layout is valid)
        """
        account = ctx.account
        expected = [
            (account.home, 0o700, None),
            (account.bin_dir, 0o755, None),
            (account.etc_dir, 0o755, None),
            (account.tmp_dir, 0o700, uid),
            (account.empty_dir, 0o700, uid),
            (account.run_script, 0o755, None),
            (account.sshd_binary, None, None),
            (account.ssh_binary, None, None),
            (account.sshd_config, None, None),
        ]
        for key in identity.keys():
            expected.append((key.private_path, 0o600, uid))
            expected.append((key.public_path, 0o644, uid))

        violations = []
        for path, mode, owner in expected:
            try:
                info = os.stat(path)
            except OSError:
                violations.append(f"{path} is missing")
                continue
            actual_mode = stat.S_IMODE(info.st_mode)
            if mode is not None and actual_mode != mode:
                violations.append(f"{path} has mode {oct(actual_mode)} (expected {oct(mode)})")
            if owner is not None and info.st_uid != owner:
                violations.append(f"{path} is owned by uid {info.st_uid} (expected {owner})")

        for binary in (account.sshd_binary, account.ssh_binary):
            if binary.exists() and not os.access(binary, os.X_OK):
                violations.append(f"{binary} is not executable")
        return violations

    def deploy(self, ctx: ProvisioningContext, artifact: VerifiedArtifact,
               build: BuildOutput) -> Deployment:
        account = ctx.account
        print(f"\nCreating {account.username} user, and setting up its environment...")

        uid, gid = self.create_account(ctx)
        self.create_layout(ctx, uid, gid)
        self.install_binaries(ctx, build)

        identity = self.identity_generator.generate(account.etc_dir)
        self.create_privsep_dir(ctx, identity, uid, gid)
        run_script = self.write_run_script(ctx)

        sandbox = self.apparmor_installer.run(ctx, [account.sshd_binary, account.ssh_binary])

        manifest = ManifestGenerator(ctx)
        manifest_path = manifest.write_manifest(manifest.generate_manifest(artifact, identity, sandbox))

        violations = self.validate_layout(ctx, identity, uid)
        if violations:
            raise HostEnvironmentError(
                "Installed layout failed validation:\n" + "\n".join(f"  ✗ {v}" for v in violations)
            )

        print(f"✓ {account.username} environment ready at {account.home}")
        return Deployment(identity=identity, sandbox=sandbox,
                          manifest_path=manifest_path, run_script=run_script)

    def run(self, ctx: ProvisioningContext, artifact: VerifiedArtifact,
            build: BuildOutput) -> StageResult:
        try:
            deployment = self.deploy(ctx, artifact, build)
        except ProvisioningError as e:
            return StageResult.failure(STAGE_NAME, e)
        return StageResult.success(STAGE_NAME, value=deployment, warnings=deployment.sandbox.warnings)
