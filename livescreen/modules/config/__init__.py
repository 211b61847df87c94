"""
Config Module - Black Box Interface

Purpose: Application configuration management
Interface: get_config(), ConfigModule.get(), ConfigModule.get_config_schema()
Hidden: Config sources, validation logic, environment parsing

Can be replaced with different config systems (Consul, etcd, AWS Parameter Store).
"""

import os
from typing import Any, Dict


# Configuration Contract: Required and Optional Keys
# This defines the black box interface - what the config module guarantees to provide

REQUIRED_CONFIG_KEYS = {
    "host": "API server bind address",
    "port": "API server port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "sessions_dir": "Directory holding per-session workspace copies",
    "module_cache_ttl": "Module definition cache TTL in seconds",
    "manifest_cache_ttl": "App manifest cache TTL in seconds",
    "debounce_ms": "Change coalescing window in milliseconds",
    "session_init_timeout": "Seconds to wait for the initial build before going degraded",
    "compiler_command": "Executable used to compile typed source (esbuild)",
    "compiler_timeout": "Compiler subprocess timeout in seconds",
    "sandbox_timeout": "Sandbox evaluation timeout in seconds",
    "cache_backend": "Cache backend: memory or redis",
}

OPTIONAL_CONFIG_KEYS = {
    "debug": {
        "description": "Enable debug mode (uvicorn reload)",
        "default": False,
    },
    "redis_host": {
        "description": "Redis server hostname (cache_backend=redis or event mirroring)",
        "default": None,
    },
    "redis_port": {
        "description": "Redis server port number",
        "default": 6379,
    },
    "redis_db": {
        "description": "Redis database number",
        "default": 0,
    },
    "redis_password": {
        "description": "Redis authentication password",
        "default": None,
    },
    "registry_map_file": {
        "description": "YAML file mapping module ids to registry keys",
        "default": None,  # Falls back to config/registry_map.yaml, then the packaged table
    },
    "event_history_size": {
        "description": "Events retained per session for late subscribers",
        "default": 50,
    },
}

VALID_CACHE_BACKENDS = ("memory", "redis")


class ConfigModule:
    """Configuration management module."""

    def __init__(self):
        """Initialize with environment variables."""
        self._config = self._load_from_env()
        self._validate_required_keys()

    def _validate_required_keys(self) -> None:
        """
        Validate that all required configuration keys are present.

        Raises:
            ValueError: If required keys are missing or invalid
        """
        missing_keys = []
        for key in REQUIRED_CONFIG_KEYS:
            if key not in self._config or self._config[key] is None:
                missing_keys.append(key)

        if missing_keys:
            raise ValueError(
                f"Missing required configuration keys: {', '.join(missing_keys)}. "
                f"Check environment variables and deployment configuration."
            )

        if self._config["cache_backend"] not in VALID_CACHE_BACKENDS:
            raise ValueError(
                f"Invalid CACHE_BACKEND '{self._config['cache_backend']}', "
                f"expected one of {', '.join(VALID_CACHE_BACKENDS)}"
            )
        if self._config["cache_backend"] == "redis" and not self._config["redis_host"]:
            raise ValueError("CACHE_BACKEND=redis requires REDIS_HOST")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment."""
        # Parse Redis port (might be in tcp://host:port format from K8s)
        redis_port_env = os.getenv("REDIS_PORT", "6379")
        if redis_port_env.startswith("tcp://"):
            redis_port = int(redis_port_env.split(":")[-1])
        else:
            redis_port = int(redis_port_env)

        return {
            # API settings
            "host": os.getenv("API_HOST", "0.0.0.0"),
            "port": int(os.getenv("API_PORT", "8080")),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
            # Session settings
            "sessions_dir": os.getenv("SESSIONS_DIR", os.path.join(os.getcwd(), "sessions")),
            "session_init_timeout": float(os.getenv("SESSION_INIT_TIMEOUT", "15")),
            # Cache settings
            "module_cache_ttl": float(os.getenv("MODULE_CACHE_TTL", "30")),
            "manifest_cache_ttl": float(os.getenv("MANIFEST_CACHE_TTL", "60")),
            "cache_backend": os.getenv("CACHE_BACKEND", "memory").lower(),
            # Pipeline settings
            "debounce_ms": int(os.getenv("DEBOUNCE_MS", "500")),
            "compiler_command": os.getenv("COMPILER_COMMAND", "esbuild"),
            "compiler_timeout": float(os.getenv("COMPILER_TIMEOUT", "10")),
            "sandbox_timeout": float(os.getenv("SANDBOX_TIMEOUT", "2")),
            "registry_map_file": os.getenv("REGISTRY_MAP_FILE"),
            "event_history_size": int(os.getenv("EVENT_HISTORY_SIZE", "50")),
            # Redis settings
            "redis_host": os.getenv("REDIS_HOST"),
            "redis_port": redis_port,
            "redis_db": int(os.getenv("REDIS_DB", "0")),
            "redis_password": os.getenv("REDIS_PASSWORD"),
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self._config.copy()

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        This documents the black box interface - what keys are required,
        what keys are optional, and what their purposes are.

        Returns:
            Dictionary with 'required' and 'optional' key specifications

        Example:
            >>> schema = ConfigModule.get_config_schema()
            >>> print(schema['required']['debounce_ms'])
            'Change coalescing window in milliseconds'
        """
        return {
            "required": REQUIRED_CONFIG_KEYS.copy(),
            "optional": OPTIONAL_CONFIG_KEYS.copy(),
        }


# Singleton instance
_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


def reset_config() -> None:
    """Drop the singleton so the next get_config() re-reads the environment."""
    global _instance
    _instance = None


__all__ = ["get_config", "reset_config", "ConfigModule"]
