# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/build/__init__.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Patch and build package initialization

from .openssh_builder import BuildOutput, OpenSSHBuilder

__all__ = ['BuildOutput', 'OpenSSHBuilder']
