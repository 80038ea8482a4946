"""
Logging utilities for blobmux.

Applications call initLogging() with the [logging] section of their
configuration (bootstrapStorage() in blobmux.service does this). Library
modules only create module-level loggers and never configure handlers.
"""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# AWS SDK loggers, set to the [logging] sdk-level (WARNING by default)
NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def getLogLevelByStr(levelStr: str, default: Optional[int] = None) -> Optional[int]:
    """Get log level by string."""
    level = getattr(logging, levelStr.upper(), None)
    if not isinstance(level, int):
        logger.error(f"Invalid log level '{levelStr}'")
        return default
    return level


def configureLogger(localLogger: logging.Logger, config: Dict[str, Any]) -> None:
    """
    Configure one logger from a config section.

    Supported keys: propagate, level, format, console, console-level, file,
    file-level, rotate (daily rotation keeping 7 backups).
    """
    if "propagate" in config:
        localLogger.propagate = bool(config["propagate"])

    if "level" in config:
        logLevel = getLogLevelByStr(config["level"])
        if logLevel is not None:
            localLogger.setLevel(logLevel)

    logLevel = localLogger.getEffectiveLevel()
    formatter = logging.Formatter(config.get("format", DEFAULT_LOG_FORMAT))

    # Clear existing handlers to avoid duplicates
    for handler in localLogger.handlers[:]:
        localLogger.removeHandler(handler)

    if config.get("console", False):
        consoleLogLevel = getLogLevelByStr(config["console-level"], logLevel) if "console-level" in config else None
        if consoleLogLevel is None:
            consoleLogLevel = logLevel
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(consoleLogLevel)
        consoleHandler.setFormatter(formatter)
        localLogger.addHandler(consoleHandler)
        logger.info(f"Logging {localLogger.name} to console, logLevel: {consoleLogLevel}")

    if "file" in config:
        logFile = config["file"]
        try:
            Path(logFile).parent.mkdir(parents=True, exist_ok=True)

            fileLogLevel = getLogLevelByStr(config["file-level"], logLevel) if "file-level" in config else None
            if fileLogLevel is None:
                fileLogLevel = logLevel

            fileHandler: logging.Handler
            if config.get("rotate", False):
                fileHandler = TimedRotatingFileHandler(
                    filename=logFile,
                    when="midnight",
                    interval=1,
                    backupCount=7,
                    encoding="utf-8",
                )
            else:
                fileHandler = logging.FileHandler(logFile, encoding="utf-8")

            fileHandler.setLevel(fileLogLevel)
            fileHandler.setFormatter(formatter)
            localLogger.addHandler(fileHandler)
            logger.info(f"Logging {localLogger.name} to file: {logFile}, logLevel: {fileLogLevel}")
        except OSError as e:
            logger.error(f"Failed to setup file logging for {localLogger.name}: {e}")


def initLogging(config: Dict[str, Any]) -> None:
    """
    Configure the root logger and the per-logger overrides from the [logging] section.

    Besides the keys understood by configureLogger, the section accepts
    ``sdk-level``: the level applied to the AWS SDK loggers (see NOISY_LOGGERS),
    WARNING by default. Use ``sdk-level = "DEBUG"`` to trace S3 requests.

    Example:
        [logging]
        level = "INFO"
        console = true
        sdk-level = "ERROR"

        [logging.logger."blobmux.blob"]
        level = "DEBUG"
    """
    rootLogger = logging.getLogger()
    rootLogger.setLevel(logging.INFO)

    configureLogger(rootLogger, config)
    logLevel = rootLogger.getEffectiveLevel()

    sdkLevel = getLogLevelByStr(config["sdk-level"], logging.WARNING) if "sdk-level" in config else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(sdkLevel)

    logConfigs = config.get("logger", {})
    for loggerName, loggerConfig in logConfigs.items():
        logger.debug(f"Configuring logger '{loggerName}' with config {loggerConfig}")
        configureLogger(logging.getLogger(loggerName), loggerConfig)

    logger.info(f"Logging configured: root level={logLevel}, sdk level={sdkLevel}")
