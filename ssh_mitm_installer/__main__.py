# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/__main__.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Module entry point enabling python3 -m ssh_mitm_installer invocation

"""
Module entry point for python3 -m ssh_mitm_installer.
"""

import sys

from ssh_mitm_installer.installer import main

if __name__ == '__main__':
    sys.exit(main())
