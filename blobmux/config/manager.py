"""
Configuration management for blobmux.
"""

import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomli

from .. import utils

logger = logging.getLogger(__name__)

ENV_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_-]*)\}")


def replaceMatchToEnv(match: re.Match[str]) -> str:
    """Return the value of the matched ${VAR} placeholder, or the placeholder itself if unset."""
    return os.getenv(match.group(1), match.group(0))


def substituteEnvVars(value: Any) -> Any:
    """Recursively substitute environment variable placeholders in configuration values.

    Placeholders have the form ${VAR_NAME}. Strings, dictionaries and lists
    are processed; other values are returned unchanged.

    Args:
        value: The configuration value to process.

    Returns:
        The processed value with environment variables substituted.
    """
    if isinstance(value, str):
        return ENV_VAR_RE.sub(replaceMatchToEnv, value)
    elif isinstance(value, dict):
        return {k: substituteEnvVars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substituteEnvVars(item) for item in value]
    return value


class ConfigManager:
    """
    Loads the application configuration.

    The main TOML file is read first, then every ``*.toml`` file found
    recursively in the config directories is merged on top of it, in sorted
    order. ``${VAR}`` placeholders are substituted from the environment after
    the optional dotenv file has been loaded.

    Example config:
        [logging]
        level = "INFO"
        console = true

        [storage]
        default = "assets"

        [storage.buckets]
        assets = "file:///var/lib/app/assets?create_dir=true"
        scratch = "mem://"
        archive = "s3://${ARCHIVE_BUCKET}?region=eu-west-1"
    """

    def __init__(
        self, configPath: str = "config.toml", configDirs: Optional[List[str]] = None, dotEnvFile: str = ".env"
    ):
        self.configPath = configPath
        self.configDirs = configDirs or []
        utils.load_dotenv(path=dotEnvFile)
        self.config = substituteEnvVars(self._loadConfig())

    def _findTomlFilesRecursive(self, directory: str) -> List[Path]:
        """Recursively find all .toml files in a directory, dood!"""
        tomlFiles: List[Path] = []
        dirPath = Path(directory)

        if not dirPath.exists():
            logger.warning(f"Config directory {directory} does not exist, skipping, dood!")
            return tomlFiles

        if not dirPath.is_dir():
            logger.warning(f"Config path {directory} is not a directory, skipping, dood!")
            return tomlFiles

        for tomlFile in dirPath.rglob("*.toml"):
            if tomlFile.is_file():
                tomlFiles.append(tomlFile)
                logger.debug(f"Found config file: {tomlFile}")

        return sorted(tomlFiles)

    def _mergeConfigs(self, baseConfig: Dict[str, Any], newConfig: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two configuration dictionaries, dood!"""
        merged = baseConfig.copy()

        for key, value in newConfig.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._mergeConfigs(merged[key], value)
            else:
                merged[key] = value

        return merged

    def _loadConfig(self) -> Dict[str, Any]:
        """
        Load configuration from the TOML file and optional config directories.

        Returns:
            Dict[str, Any]: The loaded and merged configuration dictionary.

        Raises:
            SystemExit: If neither the main file nor any config directory is
                available, or the main file cannot be parsed
        """
        configFile = Path(self.configPath)
        hasConfigFile = configFile.exists()
        if not hasConfigFile and not self.configDirs:
            logger.error(f"Configuration file {self.configPath} not found!")
            sys.exit(1)

        config: Dict[str, Any] = {}
        if hasConfigFile:
            try:
                with open(configFile, "rb") as f:
                    config = tomli.load(f)
            except (OSError, tomli.TOMLDecodeError) as e:
                logger.error(f"Failed to load configuration from {self.configPath}: {e}")
                sys.exit(1)
            logger.info(f"Loaded main config from {self.configPath}")

        if self.configDirs:
            logger.info(f"Scanning {len(self.configDirs)} config directories for .toml files, dood!")

            for configDir in self.configDirs:
                tomlFiles = self._findTomlFilesRecursive(configDir)
                logger.info(f"Found {len(tomlFiles)} .toml files in {configDir}")

                for tomlFile in tomlFiles:
                    try:
                        with open(tomlFile, "rb") as f:
                            dirConfig = tomli.load(f)
                    except (OSError, tomli.TOMLDecodeError) as e:
                        # Continue with other files instead of exiting
                        logger.error(f"Failed to load config file {tomlFile}: {e}")
                        continue

                    config = self._mergeConfigs(config, dirConfig)
                    logger.info(f"Merged config from {tomlFile}")

        logger.info("Configuration loaded and merged successfully, dood!")
        return config

    def get(self, key: str, default=None) -> Any:
        """Get configuration value by key."""
        return self.config.get(key, default)

    def getLoggingConfig(self) -> Dict[str, Any]:
        """Get logging-specific configuration."""
        return self.get("logging", {})

    def getStorageConfig(self) -> Dict[str, Any]:
        """
        Get storage service configuration.

        Returns a dictionary with the following structure:
        - default: Name of the bucket returned by StorageService.getBucket() without arguments
        - buckets: Mapping of bucket name to bucket URL (mem://, file:///..., s3://...)

        Returns:
            Dict with storage configuration, empty if the section is missing
        """
        return self.get("storage", {})
