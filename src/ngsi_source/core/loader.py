# ngsi_source/core/loader.py
"""
YAML loading with environment variable substitution.
"""
from __future__ import annotations

import logging
import os
import re
from glob import glob
from pathlib import Path
from typing import Any, Iterable

import yaml

logger = logging.getLogger(__name__)

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def substitute_env_vars(value: Any) -> Any:
    """
    Replace ``${VAR}`` and ``${VAR:-default}`` in strings, recursing into
    dicts and lists. Non-string scalars (booleans in preferences) are kept.

    Raises:
        ValueError: If a variable is unset and has no default.
    """
    if isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(_resolve_env_var, value)
    return value


def _resolve_env_var(match: re.Match) -> str:
    name, default = match.group(1), match.group(2)
    env_value = os.environ.get(name)
    if env_value is not None:
        return env_value
    if default is None:
        raise ValueError(f"Environment variable '{name}' is not set and no default provided")
    return default


def load_yaml_files(patterns: Iterable[str]) -> list[dict[str, Any]]:
    """
    Load every YAML file matching the glob patterns, in sorted order.

    Later files can override earlier ones when merged by the caller.
    """
    patterns = list(patterns)
    files: list[Path] = []

    for pattern in patterns:
        files.extend(Path(m).resolve() for m in glob(pattern))

    files = sorted(set(files))

    if not files:
        logger.warning("No config files found matching patterns: %s", patterns)
        return []

    logger.info("Loading config files: %s", [str(f) for f in files])

    out: list[dict[str, Any]] = []
    for f in files:
        try:
            with f.open("r", encoding="utf-8") as fh:
                out.append(yaml.safe_load(fh) or {})
        except Exception as exc:
            logger.error("Failed to load YAML file '%s': %s", f, exc)
            raise

    return out


def load_preferences(patterns: Iterable[str]) -> dict[str, Any]:
    """
    Merge the ``preferences`` sections of all matching YAML files.

    Expected YAML::

        preferences:
          ngsi_server: "${ORION_URL:-http://orion-ld:1026}"
          ngsi_entities: "Room, Store"
    """
    merged: dict[str, Any] = {}
    for data in load_yaml_files(patterns):
        section = data.get("preferences") or {}
        if not isinstance(section, dict):
            raise ValueError("'preferences' must be a mapping")
        merged.update(substitute_env_vars(section))
    return merged
