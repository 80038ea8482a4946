"""
Miscellaneous utilities for blobmux.
"""

import logging
import os
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


def load_dotenv(path: str = ".env", populateEnv: bool = True) -> Dict[str, str]:
    """
    Simple dotenv file loader.
    Just read file line by line and put key-value pairs into dictionary.
    Comment lines and lines without "=" are skipped; a missing file yields
    an empty dictionary.

    Args:
        path: Path to .env file (default ".env")
        populateEnv: Whether to populate environment variables (default True)

    Returns:
        Dictionary of key-value pairs from .env file
    """
    ret: Dict[str, str] = {}
    envPath = Path(path)
    if not envPath.is_file():
        logger.debug(f"No dotenv file at {path}, skipping")
        return ret

    with open(envPath, "rt", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            ret[key.strip()] = value.strip().strip('"')

    if populateEnv:
        for k, v in ret.items():
            os.environ[k] = v
    logger.debug(f"Loaded {len(ret)} variables from {path}")
    return ret
