# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/installer.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Main installer orchestrator - resets the environment, installs prerequisites, verifies, patches, builds and installs sshd_mitm

"""
SSH MITM Installer: Main orchestrator for provisioning.

Stages (strict order, each is a precondition for the next):
1. Environment Reset
2. Prerequisite Installer
3. Verification Gate
4. Patch & Build
5. Privileged Setup

Fail-fast: the first failed stage ends the run with a non-zero exit
status. There is no partial-success state and nothing is retried.
"""

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .build.openssh_builder import OpenSSHBuilder
from .context import ProvisioningContext, build_context, resolve_work_dir
from .crypto.release_verifier import ReleaseVerifier
from .errors import ProvisioningError, StageResult
from .logging_config import setup_logging
from .runtime.account_deployer import AccountDeployer
from .system.env_reset import EnvironmentReset
from .system.host_check import require_root
from .system.prereq_installer import PrerequisiteInstaller

logger = logging.getLogger(__name__)

TOTAL_STEPS = 5


class SshMitmInstaller:
    """Main installer orchestrator."""

    VERSION = __version__

    def __init__(self, ctx: ProvisioningContext,
                 reset: Optional[EnvironmentReset] = None,
                 prerequisites: Optional[PrerequisiteInstaller] = None,
                 verifier: Optional[ReleaseVerifier] = None,
                 builder: Optional[OpenSSHBuilder] = None,
                 deployer: Optional[AccountDeployer] = None):
        self.ctx = ctx
        self.reset = reset if reset is not None else EnvironmentReset()
        self.prerequisites = prerequisites if prerequisites is not None else PrerequisiteInstaller()
        self.verifier = verifier if verifier is not None else ReleaseVerifier()
        self.builder = builder if builder is not None else OpenSSHBuilder()
        self.deployer = deployer if deployer is not None else AccountDeployer()

    def _step(self, number: int, title: str) -> None:
        print(f"\n[{number}/{TOTAL_STEPS}] {title}")
        logger.info(f"Stage {number}/{TOTAL_STEPS}: {title}")

    def run(self) -> StageResult:
        """
        Execute all stages sequentially.

        Returns:
            The first failed StageResult, or the final (privileged setup) result
        """
        print("=" * 80)
        print("SSH MITM INSTALLER")
        print("=" * 80)
        print(f"Version: {self.VERSION}")
        print(f"Working directory: {self.ctx.work_dir}")
        print(f"Host variant: {self.ctx.host_variant.value}")

        self._step(1, "Resetting environment...")
        result = self.reset.run(self.ctx)
        if not result.ok:
            return result

        self._step(2, "Installing prerequisites...")
        result = self.prerequisites.run(self.ctx)
        if not result.ok:
            return result

        self._step(3, "Downloading and verifying OpenSSH sources...")
        result = self.verifier.run(self.ctx)
        if not result.ok:
            return result
        artifact = result.value

        self._step(4, "Patching and compiling OpenSSH...")
        result = self.builder.run(self.ctx, artifact)
        if not result.ok:
            return result
        build = result.value

        self._step(5, f"Setting up the {self.ctx.account.username} environment...")
        return self.deployer.run(self.ctx, artifact, build)

    def print_summary(self, result: StageResult) -> None:
        deployment = result.value
        account = self.ctx.account

        print("\n" + "=" * 80)
        print("INSTALLATION SUMMARY")
        print("=" * 80)
        print("✓ Environment reset")
        print("✓ Prerequisites installed")
        print("✓ OpenSSH release key, signature and checksum verified")
        print("✓ MITM patch applied and OpenSSH compiled")
        print(f"✓ {account.username} user created: {account.home}")
        for algorithm, fingerprint in deployment.identity.fingerprints().items():
            print(f"  Host key ({algorithm}): {fingerprint}")
        if deployment.sandbox.activated:
            print("✓ AppArmor profiles installed and enabled")
        else:
            print("⚠ AppArmor profiles installed but NOT enabled (see warning above)")
        print(f"✓ Install manifest: {deployment.manifest_path}")

        print("\nNext steps:")
        print("  1. Find target IPs with the victim finder tool.")
        print(f"  2. Start sshd_mitm: {deployment.run_script}")
        print(f"     (runs {account.sshd_binary} -f {account.sshd_config})")
        print("  3. ARP spoof the targets.")
        print("=" * 80)


def report_failure(result: StageResult) -> None:
    """Print the fatal banner for a failed stage."""
    print("", file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    print(f"FATAL: {result.stage} failed", file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    print(result.error.describe(), file=sys.stderr)
    print("", file=sys.stderr)
    print("Installation aborted (fail-closed).  Terminating.", file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    logger.error(f"{result.stage} failed ({result.kind.value}): {result.error.message}")


def main(argv=None) -> int:
    """
    CLI entry point for installer.

    Returns:
        0 on full success, 1 on any fatal stage failure
    """
    parser = argparse.ArgumentParser(
        description="Download, verify, patch, build and install the SSH MITM daemon."
    )
    parser.add_argument(
        '--force',
        action='store_true',
        help='Delete and re-create an existing ssh-mitm user (destroys saved sessions)',
    )
    args = parser.parse_args(argv)

    work_dir = resolve_work_dir()
    setup_logging(work_dir)

    try:
        require_root()
        ctx = build_context(work_dir, force=args.force)
    except ProvisioningError as e:
        report_failure(StageResult.failure("preconditions", e))
        return 1

    installer = SshMitmInstaller(ctx)

    try:
        result = installer.run()
    except KeyboardInterrupt:
        print("\n\nInstallation cancelled by user.", file=sys.stderr)
        return 1

    if not result.ok:
        report_failure(result)
        return 1

    for warning in result.warnings:
        logger.warning(warning.splitlines()[0])

    installer.print_summary(result)
    print("\nDone!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
