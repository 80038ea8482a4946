"""Configuration loading for blobmux applications."""

from .manager import ConfigManager, substituteEnvVars

__all__ = ["ConfigManager", "substituteEnvVars"]
