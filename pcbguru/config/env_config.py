"""Environment variable configuration.

Settings come from the process environment, optionally seeded from a
``.env`` file. Process environment wins over the file. The API key is never
written anywhere; it is only read.
"""
import os
import logging
import re
from typing import Optional, Dict, Union
from pathlib import Path
from dataclasses import dataclass, field

from .defaults import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

TRUE_VALUES = ('true', '1', 'yes', 'on')


@dataclass(frozen=True)
class EnvironmentConfig:
    """Immutable environment configuration object."""

    gemini_api_key: Optional[str] = field(default=None, repr=False)
    gemini_model: str = DEFAULT_CONFIG["gemini_model"]
    gemini_timeout: int = DEFAULT_CONFIG["gemini_timeout"]
    analysis_temperature: float = DEFAULT_CONFIG["analysis_temperature"]
    chat_temperature: float = DEFAULT_CONFIG["chat_temperature"]
    debug_logging: bool = False
    results_export_dir: Optional[str] = None

    @property
    def is_api_key_configured(self) -> bool:
        return bool(self.gemini_api_key and self.gemini_api_key.strip())


class EnvironmentError(Exception):
    """Invalid value in the environment configuration."""
    pass


class EnvironmentValidator:
    """Validates environment variable values."""

    GEMINI_API_KEY_PATTERN = re.compile(r'^AIza[0-9A-Za-z_\-]{35}$')

    @classmethod
    def looks_like_api_key(cls, api_key: Optional[str]) -> bool:
        """Check the usual Google API key shape.

        A mismatch is only worth a warning: proxies and test keys use other
        shapes, and the service is the final judge.
        """
        if not api_key or not isinstance(api_key, str):
            return False
        return bool(cls.GEMINI_API_KEY_PATTERN.match(api_key.strip()))

    @classmethod
    def validate_numeric_range(cls, value: Union[str, int, float],
                               min_val: Optional[Union[int, float]] = None,
                               max_val: Optional[Union[int, float]] = None,
                               value_type: type = int) -> Union[int, float]:
        """Validate numeric value within specified range.

        Raises:
            EnvironmentError: If the value does not parse or is out of range
        """
        try:
            numeric_value = value_type(value)
        except (ValueError, TypeError):
            raise EnvironmentError(f"Invalid {value_type.__name__} value: {value}")

        if min_val is not None and numeric_value < min_val:
            raise EnvironmentError(f"Value {numeric_value} below minimum {min_val}")

        if max_val is not None and numeric_value > max_val:
            raise EnvironmentError(f"Value {numeric_value} above maximum {max_val}")

        return numeric_value


def load_env_file(env_path: Optional[str] = None) -> Dict[str, str]:
    """Load KEY=VALUE pairs from a .env file.

    Args:
        env_path: Path to .env file. Defaults to .env in current directory.

    Returns:
        dict: Loaded variables (empty if the file does not exist)
    """
    env_file_path = Path(env_path or ".env")
    env_vars: Dict[str, str] = {}

    if not env_file_path.exists():
        logger.debug(f"Environment file {env_file_path} not found, using process environment only")
        return env_vars

    with open(env_file_path, 'r', encoding='utf-8') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue

            if line.startswith('export '):
                line = line[len('export '):]

            if '=' not in line:
                logger.warning(f"Invalid line format in {env_file_path}:{line_num}")
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]
            env_vars[key] = value

    logger.info(f"Loaded {len(env_vars)} variables from {env_file_path}")
    return env_vars


def get_env_var(key: str, default: Optional[str] = None,
                env_vars: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Process environment first, then the .env values, then ``default``."""
    value = os.environ.get(key)
    if value is None and env_vars:
        value = env_vars.get(key)
    if value is None or value.strip() == "":
        return default
    return value


def load_environment_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Load and validate environment configuration.

    Raises:
        EnvironmentError: If a numeric setting is malformed or out of range
    """
    env_vars = load_env_file(env_file_path)
    validator = EnvironmentValidator()

    api_key = get_env_var("GEMINI_API_KEY", env_vars=env_vars) or get_env_var("API_KEY", env_vars=env_vars)
    if api_key and not validator.looks_like_api_key(api_key):
        logger.warning("API key does not match the usual Gemini key format")

    model = get_env_var("GEMINI_MODEL", DEFAULT_CONFIG["gemini_model"], env_vars=env_vars)

    timeout = validator.validate_numeric_range(
        get_env_var("GEMINI_TIMEOUT", str(DEFAULT_CONFIG["gemini_timeout"]), env_vars=env_vars),
        5, 300, int)
    analysis_temperature = validator.validate_numeric_range(
        get_env_var("GEMINI_ANALYSIS_TEMPERATURE", str(DEFAULT_CONFIG["analysis_temperature"]), env_vars=env_vars),
        0.0, 1.0, float)
    chat_temperature = validator.validate_numeric_range(
        get_env_var("GEMINI_CHAT_TEMPERATURE", str(DEFAULT_CONFIG["chat_temperature"]), env_vars=env_vars),
        0.0, 1.0, float)

    debug_logging = get_env_var("DEBUG_LOGGING", "false", env_vars=env_vars).lower() in TRUE_VALUES
    results_dir = get_env_var("RESULTS_EXPORT_DIR", env_vars=env_vars)

    config = EnvironmentConfig(
        gemini_api_key=api_key,
        gemini_model=model,
        gemini_timeout=timeout,
        analysis_temperature=analysis_temperature,
        chat_temperature=chat_temperature,
        debug_logging=debug_logging,
        results_export_dir=results_dir,
    )

    if config.is_api_key_configured:
        logger.info(f"Environment configuration loaded - model {model}, AI features enabled")
    else:
        logger.info("Environment configuration loaded - set GEMINI_API_KEY to enable AI features")
    return config


__all__ = [
    "EnvironmentConfig",
    "EnvironmentError",
    "EnvironmentValidator",
    "load_environment_config",
    "load_env_file",
    "get_env_var",
]
