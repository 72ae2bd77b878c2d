# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/crypto/__init__.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Release verification and host key generation package initialization

from .host_identity import HostIdentity, HostIdentityGenerator
from .release_verifier import ReleaseVerifier, VerifiedArtifact

__all__ = ['HostIdentity', 'HostIdentityGenerator', 'ReleaseVerifier', 'VerifiedArtifact']
