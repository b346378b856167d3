"""
Configuration loading: the monitor document and process settings.

The monitor document is JSON (``{webhooks, stores, searches}``), read with
``yaml.safe_load`` so a hand-written YAML file works as well.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ValidationError

from .errors import ConfigurationError
from .models import MonitorConfig, MonitoredTarget, Webhook

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE


class Settings(BaseModel):
    """Process settings read from the environment."""
    config_path: Path = Path("config.json")
    data_dir: Path = Path("data")
    ebay_app_id: Optional[str] = None
    ebay_cert_id: Optional[str] = None
    ebay_dev_id: Optional[str] = None
    ebay_sandbox: bool = False
    ebay_marketplace: str = "EBAY_CA"
    ebay_domain: str = "www.ebay.ca"
    seen_max_age_hours: int = 168
    stats_days_to_keep: int = 30
    maintenance_cron: str = "0 4 * * *"
    scheduler_timezone: str = "UTC"
    alert_on_failure: bool = True
    scheduler_mode: str = "enabled"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        default_data_dir = "/app/data" if env.get("DOCKER") else "data"
        values: Dict[str, Any] = {
            "config_path": env.get("CONFIG_PATH", "config.json"),
            "data_dir": env.get("DATA_DIR", default_data_dir),
            "ebay_app_id": env.get("EBAY_APP_ID") or None,
            "ebay_cert_id": env.get("EBAY_CERT_ID") or None,
            "ebay_dev_id": env.get("EBAY_DEV_ID") or None,
            "ebay_sandbox": _env_bool(env.get("EBAY_SANDBOX"), False),
            "ebay_marketplace": env.get("EBAY_MARKETPLACE", "EBAY_CA"),
            "ebay_domain": env.get("EBAY_DOMAIN", "www.ebay.ca"),
            "seen_max_age_hours": env.get("SEEN_MAX_AGE_HOURS", 168),
            "stats_days_to_keep": env.get("STATS_DAYS_TO_KEEP", 30),
            "maintenance_cron": env.get("MAINTENANCE_CRON", "0 4 * * *"),
            "scheduler_timezone": env.get("SCHEDULER_TIMEZONE", "UTC"),
            "alert_on_failure": _env_bool(env.get("ALERT_ON_SCAN_FAILURE"), True),
            "scheduler_mode": env.get("SCHEDULER_MODE", "enabled"),
            "log_level": env.get("LOG_LEVEL", "INFO"),
        }
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid environment settings: {e}") from e

    @property
    def has_api_credentials(self) -> bool:
        return bool(self.ebay_app_id and self.ebay_cert_id)

    @property
    def cache_file(self) -> Path:
        return self.data_dir / "item-cache.json"

    @property
    def stats_file(self) -> Path:
        return self.data_dir / "usage-stats.json"


def parse_config(data: Any) -> MonitorConfig:
    """Validate a raw configuration document."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be an object")

    try:
        doc = {
            "webhooks": data.get("webhooks") or [],
            "stores": [{**entry, "kind": "store"} for entry in data.get("stores") or []],
            "searches": [{**entry, "kind": "search"} for entry in data.get("searches") or []],
        }
        config = MonitorConfig.model_validate(doc)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    seen_keys = set()
    for target in config.targets:
        if not target.identifier:
            raise ConfigurationError(f"A {target.kind} entry has no name")
        if target.key in seen_keys:
            raise ConfigurationError(f"Duplicate target: {target.key}")
        seen_keys.add(target.key)
    return config


def load_config(path: Union[str, Path] = "config.json") -> MonitorConfig:
    """Load the configuration document.

    Raises:
        ConfigurationError: if the file is missing, unreadable or invalid.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error loading {path}: {e}") from e

    config = parse_config(data)
    logger.info(
        f"Loaded {path}: {len(config.webhooks)} webhooks, "
        f"{len(config.stores)} stores, {len(config.searches)} searches"
    )
    return config


def resolve_destination(config: MonitorConfig, target: MonitoredTarget) -> Optional[Webhook]:
    """Pick the webhook a target's notifications go to.

    An explicit reference that does not match any webhook resolves to None.
    Without a reference the default webhook is used, else the first one.
    """
    if target.webhook_id:
        for webhook in config.webhooks:
            if webhook.id == target.webhook_id:
                return webhook
        logger.error(f"{target.key}: webhook id '{target.webhook_id}' not found in configuration")
        return None

    if target.webhook:
        for webhook in config.webhooks:
            if webhook.name == target.webhook:
                return webhook
        logger.error(f"{target.key}: webhook '{target.webhook}' not found in configuration")
        return None

    for webhook in config.webhooks:
        if webhook.default:
            return webhook
    if config.webhooks:
        return config.webhooks[0]
    logger.warning(f"{target.key}: no webhooks configured")
    return None
