# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/logging_config.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Configures installer logging to console and to a log file in the working directory

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "ssh_mitm_install.log"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(work_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """Configure logging to file and console."""
    handlers = [logging.StreamHandler(sys.stdout)]
    try:
        handlers.append(logging.FileHandler(Path(work_dir) / LOG_FILE_NAME))
    except OSError as e:
        print(f"WARNING: Cannot write {LOG_FILE_NAME} in {work_dir}: {e}", file=sys.stderr)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    return logging.getLogger("ssh_mitm_installer")
