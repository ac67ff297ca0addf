"""Configuration dataclass and loading utilities.

Provides a typed configuration object that is injected into services instead
of relying on module-level globals. Non-secret settings may come from an
optional ``config.json``; the environment (and ``.env``) overrides them, and
is the only source for the API key.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
import json, os, logging
from .defaults import DEFAULT_CONFIG
from .env_config import load_environment_config, EnvironmentConfig

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")


@dataclass(slots=True)
class Config:
    gemini_api_key: str = field(default=DEFAULT_CONFIG["gemini_api_key"], repr=False)
    gemini_model: str = DEFAULT_CONFIG["gemini_model"]
    gemini_timeout: int = DEFAULT_CONFIG["gemini_timeout"]
    analysis_temperature: float = DEFAULT_CONFIG["analysis_temperature"]
    chat_temperature: float = DEFAULT_CONFIG["chat_temperature"]

    results_export_dir: str = DEFAULT_CONFIG["results_export_dir"]
    bom_filename: str = DEFAULT_CONFIG["bom_filename"]
    report_filename: str = DEFAULT_CONFIG["report_filename"]

    window_width: int = DEFAULT_CONFIG["window_width"]
    window_height: int = DEFAULT_CONFIG["window_height"]

    debug: bool = DEFAULT_CONFIG["debug"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    def resolve_api_key(self) -> Optional[str]:
        """The credential to use right now.

        Read at call time so a key exported after startup is picked up.
        """
        if self.gemini_api_key and self.gemini_api_key.strip():
            return self.gemini_api_key.strip()
        for name in API_KEY_ENV_VARS:
            value = os.environ.get(name, "").strip()
            if value:
                return value
        return None

    def has_api_key(self) -> bool:
        return self.resolve_api_key() is not None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.pop("gemini_api_key", None)
        extra = d.pop("extra", {})
        d.update(extra)
        return d

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, self.extra.get(key, default))


def load_config(path: str = "config.json", env_file: Optional[str] = None) -> Config:
    """Build the configuration from defaults, ``config.json`` and the environment.

    Args:
        path: Optional JSON file with non-secret settings
        env_file: Path to .env file (optional)

    Raises:
        EnvironmentError: If an environment setting is malformed
    """
    data: Dict[str, Any] = {}

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                data = loaded
                logger.info(f"Loaded configuration from '{path}'")
            else:
                logger.error(f"Configuration file '{path}' does not contain a JSON object, using defaults")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse configuration file '{path}': {e}. Using defaults.")

    # The API key never comes from a config file
    if data.pop("gemini_api_key", None):
        logger.warning(f"Ignoring gemini_api_key in '{path}'; set GEMINI_API_KEY instead")

    env_config = load_environment_config(env_file)
    merged = _apply_environment_overrides({**DEFAULT_CONFIG, **data}, env_config)

    known = set(Config.__dataclass_fields__) - {"extra"}
    extra = {k: v for k, v in merged.items() if k not in known}
    if extra:
        logger.debug(f"Found extra configuration keys: {list(extra.keys())}")

    return Config(**{k: merged[k] for k in known if k in merged}, extra=extra)


def _apply_environment_overrides(config_dict: Dict[str, Any], env_config: EnvironmentConfig) -> Dict[str, Any]:
    """Environment values take precedence over the config file."""
    if env_config.gemini_api_key:
        config_dict["gemini_api_key"] = env_config.gemini_api_key

    config_dict["gemini_model"] = env_config.gemini_model
    config_dict["gemini_timeout"] = env_config.gemini_timeout
    config_dict["analysis_temperature"] = env_config.analysis_temperature
    config_dict["chat_temperature"] = env_config.chat_temperature

    if env_config.results_export_dir:
        config_dict["results_export_dir"] = env_config.results_export_dir

    if env_config.debug_logging:
        config_dict["debug"] = True
        config_dict["log_level"] = "DEBUG"

    return config_dict
