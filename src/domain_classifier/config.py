"""
Configuration for the domain classifier system.

This module defines the configuration dataclasses (rule store, external
classifier, logging) and loads them from a JSON file or from the environment
and an optional .env file.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from dotenv import load_dotenv

from .categorization_client import split_credential
from .exceptions import ConfigurationError


DEFAULT_API_URL = "https://api.webshrinker.com"
SUPPORTED_LANGUAGES = ("de", "en")
LOG_LEVELS = ("debug", "info", "warn", "error")
LOG_FORMATS = ("json", "text", "both")

ENV_PREFIX = "DOMAIN_CLASSIFIER_"


@dataclass
class RuleStoreConfig:
    """Location of the static rule document."""

    path: Optional[Path] = None


@dataclass
class ExternalClassifierConfig:
    """Categorization service access and worker settings."""

    credential: str
    base_url: str = DEFAULT_API_URL
    poll_interval_seconds: float = 1.0
    request_timeout_seconds: float = 10.0
    max_response_bytes: int = 2048
    verify_tls: bool = True
    cpu_set: list[int] = field(default_factory=list)
    numeric_scores: bool = False
    simulation_mode: bool = False

    def basic_auth(self) -> tuple[str, str]:
        """
        Split the credential into (username, password).

        Raises:
            ConfigurationError: If the credential has no colon or no username
        """
        return split_credential(self.credential)


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    rules: RuleStoreConfig = field(default_factory=RuleStoreConfig)
    external: Optional[ExternalClassifierConfig] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    language: str = "en"


def validate_config(config: SystemConfig) -> list[str]:
    """
    Check a configuration for values the system cannot run with.

    Args:
        config: Configuration to check

    Returns:
        List of error messages; empty when the configuration is usable
    """
    errors: list[str] = []

    external = config.external
    if external is not None:
        parsed = urlparse(external.base_url)
        if parsed.scheme.lower() != "https" or not parsed.netloc:
            errors.append(f"Categorization endpoint must use HTTPS: {external.base_url}")

        try:
            external.basic_auth()
        except ConfigurationError as e:
            errors.append(e.message)

        if external.poll_interval_seconds <= 0:
            errors.append("poll_interval_seconds must be positive")
        if external.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")
        if external.max_response_bytes <= 0:
            errors.append("max_response_bytes must be positive")
        if any(cpu < 0 for cpu in external.cpu_set):
            errors.append(f"Invalid CPU ids: {external.cpu_set}")

    if config.logging.level not in LOG_LEVELS:
        errors.append(f"Unsupported log level: {config.logging.level}")
    if config.logging.output_format not in LOG_FORMATS:
        errors.append(f"Unsupported log format: {config.logging.output_format}")
    if config.language not in SUPPORTED_LANGUAGES:
        errors.append(f"Unsupported language: {config.language}")

    return errors


def _parse_cpu_set(value: Union[str, list, None]) -> list[int]:
    if not value:
        return []
    if isinstance(value, str):
        value = [part for part in value.replace(";", ",").split(",") if part.strip()]
    return sorted({int(cpu) for cpu in value})


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _float_env(name: str, default: float) -> float:
    try:
        return float(_env(name, str(default)))
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def load_config_from_env(env_file: Optional[Union[str, Path]] = None) -> SystemConfig:
    """
    Build configuration from environment variables.

    Variables from env_file (or a .env file found from the working
    directory) are loaded first; variables already set in the process
    environment take precedence.

    Args:
        env_file: Optional path to a .env file

    Returns:
        SystemConfig; the external classifier is enabled only when
        DOMAIN_CLASSIFIER_API_CREDENTIAL is set
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    rules_path = _env("RULES")
    credential = _env("API_CREDENTIAL")

    external = None
    if credential:
        try:
            cpu_set = _parse_cpu_set(_env("CPUS"))
        except ValueError:
            cpu_set = []
        external = ExternalClassifierConfig(
            credential=credential,
            base_url=_env("API_URL", DEFAULT_API_URL),
            poll_interval_seconds=_float_env("POLL_INTERVAL", 1.0),
            request_timeout_seconds=_float_env("TIMEOUT", 10.0),
            verify_tls=_bool_env("VERIFY_TLS", True),
            cpu_set=cpu_set,
            numeric_scores=_bool_env("NUMERIC_SCORES", False),
        )

    return SystemConfig(
        rules=RuleStoreConfig(path=Path(rules_path) if rules_path else None),
        external=external,
        logging=LoggingConfig(
            level=(_env("LOG_LEVEL", "info") or "info").lower(),
            output_format=(_env("LOG_FORMAT", "text") or "text").lower(),
        ),
        language=(_env("LANGUAGE", "en") or "en").lower(),
    )


def config_to_dict(config: SystemConfig) -> dict:
    """Serialize a configuration to plain JSON-compatible data."""
    external = config.external
    return {
        "rules": {
            "path": str(config.rules.path) if config.rules.path else None,
        },
        "external": {
            "credential": external.credential,
            "base_url": external.base_url,
            "poll_interval_seconds": external.poll_interval_seconds,
            "request_timeout_seconds": external.request_timeout_seconds,
            "max_response_bytes": external.max_response_bytes,
            "verify_tls": external.verify_tls,
            "cpu_set": list(external.cpu_set),
            "numeric_scores": external.numeric_scores,
            "simulation_mode": external.simulation_mode,
        } if external else None,
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
        },
        "language": config.language,
    }


def config_from_dict(data: dict) -> SystemConfig:
    """
    Build a configuration from parsed JSON data.

    Raises:
        KeyError, TypeError, ValueError: If required fields are missing or
            have the wrong type
    """
    rules_data = data.get("rules") or {}
    rules_path = rules_data.get("path")

    external = None
    external_data = data.get("external")
    if external_data:
        external = ExternalClassifierConfig(
            credential=external_data["credential"],
            base_url=external_data.get("base_url", DEFAULT_API_URL),
            poll_interval_seconds=float(external_data.get("poll_interval_seconds", 1.0)),
            request_timeout_seconds=float(external_data.get("request_timeout_seconds", 10.0)),
            max_response_bytes=int(external_data.get("max_response_bytes", 2048)),
            verify_tls=bool(external_data.get("verify_tls", True)),
            cpu_set=_parse_cpu_set(external_data.get("cpu_set")),
            numeric_scores=bool(external_data.get("numeric_scores", False)),
            simulation_mode=bool(external_data.get("simulation_mode", False)),
        )

    logging_data = data.get("logging") or {}
    return SystemConfig(
        rules=RuleStoreConfig(path=Path(rules_path) if rules_path else None),
        external=external,
        logging=LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        ),
        language=data.get("language", "en"),
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return config_from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(config_to_dict(config), f, indent=2, ensure_ascii=False)
        return True
    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False
