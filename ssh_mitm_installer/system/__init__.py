# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/system/__init__.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Host-level stages package initialization

"""
Host-level stages: host detection, external commands, environment reset
and prerequisite installation.
"""
