"""
Configuration management for the Minecraft exporter.

This module loads configuration (like the RCON password) from environment
variables. A .env file next to the app is read too; it is git-ignored, so
your secrets stay local.

RCON host/port/password are checked by RCONService itself when RCON is
enabled, not here.
"""

import os

from dotenv import load_dotenv

from errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()

SERVER_TYPE_VANILLA = "vanilla"
SERVER_TYPE_FORGE = "forge"
SERVER_TYPE_NEOFORGE = "neoforge"
SERVER_TYPE_PAPER = "paper"
SERVER_TYPES = (SERVER_TYPE_VANILLA, SERVER_TYPE_FORGE, SERVER_TYPE_NEOFORGE, SERVER_TYPE_PAPER)

LOG_LEVELS = ("debug", "info", "warn", "warning", "error")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """
    Configuration settings loaded from environment variables.

    If you need to change these values, edit the .env file, not this file.
    """

    # HTTP server
    EXPORTER_PORT: int = int(os.getenv("EXPORTER_PORT", "8080"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")

    # Minecraft server connection details
    MC_RCON_ENABLE: bool = _env_bool("MC_RCON_ENABLE")
    MC_SERVER_HOST: str = os.getenv("MC_SERVER_HOST", "localhost")
    MC_RCON_PORT: int = int(os.getenv("MC_RCON_PORT", "25575"))
    MC_RCON_PASSWORD: str = os.getenv("MC_RCON_PASSWORD", "")
    MC_RCON_TIMEOUT: float = float(os.getenv("MC_RCON_TIMEOUT", "1.0"))

    # What to collect over RCON
    MC_SERVER_TYPE: str = os.getenv("MC_SERVER_TYPE", SERVER_TYPE_VANILLA).strip().lower()
    MC_DYNMAP_ENABLED: bool = _env_bool("MC_DYNMAP_ENABLED")

    # World save on disk
    MC_WORLD_DIR: str = os.getenv("MC_WORLD_DIR", "/world")
    UUID_CACHE_TTL_HOURS: float = float(os.getenv("UUID_CACHE_TTL_HOURS", "12"))

    def validate(self) -> None:
        """
        Check that the configuration makes sense.

        Raises:
            ConfigurationError: for an unknown server type or log level, or a
                cache TTL that isn't positive
        """
        if self.MC_SERVER_TYPE not in SERVER_TYPES:
            raise ConfigurationError(
                "MC_SERVER_TYPE",
                f"Unknown server type \"{self.MC_SERVER_TYPE}\", expected one of {', '.join(SERVER_TYPES)}",
            )
        if self.LOG_LEVEL.strip().lower() not in LOG_LEVELS:
            raise ConfigurationError("LOG_LEVEL", f"Unknown log level \"{self.LOG_LEVEL}\"")
        if self.UUID_CACHE_TTL_HOURS <= 0:
            raise ConfigurationError(
                "UUID_CACHE_TTL_HOURS", "UUID_CACHE_TTL_HOURS must be greater than 0"
            )


# Create a global config instance
config = Config()
