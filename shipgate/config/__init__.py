"""shipgate Configuration Module.

Process-level settings for the quality gate manager: where its documents
live, how much history to keep, and whether reports are written. Settings
come from defaults, then environment variables (``SHIPGATE_*``), then
explicit overrides.

The gate definitions themselves are data, persisted as the configuration
document and validated by :mod:`shipgate.config.validation`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from .constants import (
    CONFIGURATION_KEY,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_STORAGE_ROOT,
    EXCEPTIONS_KEY,
    HISTORY_KEY,
    REPORT_KEY_PREFIX,
)
from .env import parse_bool_env, parse_int_env

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManagerSettings:
    """Storage locations and retention for one QualityGateManager."""
    storage_root: str = DEFAULT_STORAGE_ROOT
    configuration_key: str = CONFIGURATION_KEY
    exceptions_key: str = EXCEPTIONS_KEY
    history_key: str = HISTORY_KEY
    report_key_prefix: str = REPORT_KEY_PREFIX
    history_limit: int = DEFAULT_HISTORY_LIMIT
    write_reports: bool = True


def _env_overrides(env: Dict[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if env.get("SHIPGATE_STORAGE_ROOT"):
        overrides["storage_root"] = env["SHIPGATE_STORAGE_ROOT"]
    history_limit = parse_int_env(
        env.get("SHIPGATE_HISTORY_LIMIT"),
        min_value=1,
        name="SHIPGATE_HISTORY_LIMIT",
    )
    if history_limit is not None:
        overrides["history_limit"] = history_limit
    write_reports = parse_bool_env(env.get("SHIPGATE_WRITE_REPORTS"))
    if write_reports is not None:
        overrides["write_reports"] = write_reports
    return overrides


def load_manager_settings(
    overrides: Optional[Dict[str, Any]] = None,
    env: Optional[Dict[str, str]] = None,
) -> ManagerSettings:
    """Build ManagerSettings from defaults, environment and overrides.

    Args:
        overrides: Explicit field values; these win over the environment.
        env: Environment mapping (defaults to ``os.environ``).

    Raises:
        ValueError: an override names an unknown setting, or an env var
            cannot be parsed.
    """
    settings = ManagerSettings()
    env_values = _env_overrides(dict(os.environ if env is None else env))
    if env_values:
        logger.debug("Applying environment overrides: %s", sorted(env_values))
        settings = replace(settings, **env_values)

    if overrides:
        known = {f.name for f in fields(ManagerSettings)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown manager settings: {', '.join(unknown)}")
        settings = replace(settings, **overrides)
    return settings


__all__ = [
    "ManagerSettings",
    "load_manager_settings",
]
