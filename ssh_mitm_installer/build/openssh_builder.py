# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/build/openssh_builder.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Extracts verified OpenSSH sources, applies the MITM patch and compiles sshd/ssh

"""
OpenSSH Builder: Turns a verified archive into patched, built binaries.

Steps:
1. Extract the archive; the expected source directory MUST appear
2. Rename it to <source_dir>-mitm (marks the patched lineage)
3. Apply the MITM patch strictly (no fuzz, no reversed/partial hunks)
4. autoconf, configure (privsep paths point at the future service
   account home), make -j <all CPUs>
5. sshd and ssh MUST exist afterwards
"""

import logging
import shutil
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..context import ProvisioningContext
from ..crypto.release_verifier import VerifiedArtifact
from ..errors import BuildError, ProvisioningError, StageResult
from ..system.commands import run_command

logger = logging.getLogger(__name__)

STAGE_NAME = "patch_and_build"


@dataclass(frozen=True)
class BuildOutput:
    """Patched tree and the binaries built from it."""
    tree: Path
    sshd: Path
    ssh: Path
    sshd_config: Path


def configure_options(ctx: ProvisioningContext) -> List[str]:
    """
    Fixed configure options.

    The account does not exist yet; these paths describe where it will live.
    """
    home = ctx.account.home
    return [
        "--with-sandbox=no",
        f"--with-privsep-user={ctx.account.username}",
        f"--with-privsep-path={ctx.account.empty_dir}",
        f"--with-pid-dir={home}",
        f"--with-lastlog={home}",
    ]


class OpenSSHBuilder:
    """Applies the MITM patch to OpenSSH and compiles it."""

    def extract(self, artifact: VerifiedArtifact, ctx: ProvisioningContext) -> Path:
        if ctx.mitm_tree.exists():
            raise BuildError(
                f"Stale patched tree already present: {ctx.mitm_tree}",
                remediation="Re-run the installer so the environment reset removes it.",
            )

        try:
            with tarfile.open(artifact.archive, "r:gz") as archive:
                archive.extractall(ctx.work_dir, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise BuildError(f"Failed to decompress OpenSSH sources!: {e}")

        if not ctx.source_tree.is_dir():
            raise BuildError(
                f"Failed to decompress OpenSSH sources!  Expected directory {ctx.artifact.source_dir} "
                f"not found in {artifact.archive.name} (unexpected archive layout)."
            )

        try:
            shutil.move(str(ctx.source_tree), str(ctx.mitm_tree))
        except OSError as e:
            raise BuildError(f"Failed to rename {ctx.source_tree} to {ctx.mitm_tree}: {e}")
        logger.info(f"Extracted sources to {ctx.mitm_tree}")
        return ctx.mitm_tree

    def apply_patch(self, tree: Path, ctx: ProvisioningContext) -> None:
        if not ctx.patch_path.is_file():
            raise BuildError(f"MITM patch not found: {ctx.patch_path}")

        print("Patching OpenSSH sources...")
        run_command(
            ["patch", "-p1", "--forward", "--batch", "--fuzz=0", "-i", str(ctx.patch_path)],
            error_class=BuildError,
            failure_message="Failed to patch sources!",
            cwd=tree,
        )

    def compile(self, tree: Path, ctx: ProvisioningContext) -> None:
        print("Done.  Running autoconf...")
        run_command(["autoconf"], error_class=BuildError, failure_message="autoconf failed!", cwd=tree)

        print("Done.  Compiling modified OpenSSH sources...")
        run_command(
            ["./configure"] + configure_options(ctx),
            error_class=BuildError,
            failure_message="Failed to configure OpenSSH sources!",
            cwd=tree,
        )
        run_command(
            ["make", f"-j{ctx.build_jobs}"],
            error_class=BuildError,
            failure_message="Failed to compile OpenSSH sources!",
            cwd=tree,
        )

    def check_outputs(self, tree: Path) -> BuildOutput:
        output = BuildOutput(
            tree=tree,
            sshd=tree / "sshd",
            ssh=tree / "ssh",
            sshd_config=tree / "sshd_config",
        )
        missing = [p.name for p in (output.sshd, output.ssh, output.sshd_config) if not p.is_file()]
        if missing:
            raise BuildError(f"Failed to build ssh and/or sshd.  Missing: {', '.join(missing)}")
        return output

    def build(self, artifact: VerifiedArtifact, ctx: ProvisioningContext) -> BuildOutput:
        tree = self.extract(artifact, ctx)
        self.apply_patch(tree, ctx)
        self.compile(tree, ctx)
        output = self.check_outputs(tree)
        print(f"✓ Built {output.sshd} and {output.ssh}")
        return output

    def run(self, ctx: ProvisioningContext, artifact: VerifiedArtifact) -> StageResult:
        try:
            output = self.build(artifact, ctx)
        except ProvisioningError as e:
            return StageResult.failure(STAGE_NAME, e)
        return StageResult.success(STAGE_NAME, value=output)
