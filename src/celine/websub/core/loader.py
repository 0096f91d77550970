# celine/websub/core/loader.py
"""
Helpers for YAML configuration: file discovery, ``${VAR}`` expansion and
resolution of ``module:attr`` handler paths.
"""
from __future__ import annotations

import importlib
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


def import_attr(path: str) -> Any:
    """
    Resolve an import path such as ``package.module:function`` or
    ``package.module:Class.method``.

    Raises:
        ValueError: If the path has no ``:`` separator or an empty part.
        ImportError: If the module cannot be imported.
        AttributeError: If the attribute chain does not exist.
    """
    mod_name, sep, attr_path = path.partition(":")
    if not sep or not mod_name or not attr_path:
        raise ValueError(f"Invalid import path '{path}', expected 'module:attr'")

    try:
        obj: Any = importlib.import_module(mod_name)
    except ImportError as exc:
        logger.error("Failed to import module '%s'", mod_name)
        raise ImportError(f"Cannot import module '{mod_name}'") from exc

    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            logger.error("'%s' has no attribute '%s'", path, part)
            raise AttributeError(f"Module '{mod_name}' has no attribute '{attr_path}'") from exc
    return obj


def substitute_env_vars(value: Any) -> Any:
    """
    Expand ``${VAR}`` and ``${VAR:-default}`` in every string of a YAML value.

    Raises:
        ValueError: If a variable without default is not set.
    """
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(_env_value, value)
    if isinstance(value, dict):
        return {key: substitute_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    return value


def _env_value(match: re.Match) -> str:
    name, default = match.group(1), match.group(2)
    value = os.environ.get(name, default)
    if value is None:
        raise ValueError(
            f"Environment variable '{name}' is not set and no default provided"
        )
    return value


def load_yaml_files(patterns: Iterable[str]) -> list[tuple[Path, dict[str, Any]]]:
    """
    Load every YAML file matching the glob patterns.

    Files are returned in path order together with their parsed content, so
    callers can merge them with later files taking precedence. Empty files
    load as ``{}``.

    Raises:
        ValueError: If a document is not a mapping.
        yaml.YAMLError: If a file is not valid YAML.
    """
    patterns = list(patterns)
    files = sorted({Path(match).resolve() for pattern in patterns for match in glob(pattern)})

    if not files:
        logger.warning("No config files found matching patterns: %s", patterns)
        return []

    logger.info("Loading config files: %s", [str(f) for f in files])

    documents: list[tuple[Path, dict[str, Any]]] = []
    for path in files:
        with path.open("r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh)
            except yaml.YAMLError:
                logger.error("Failed to parse YAML file '%s'", path)
                raise
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file '{path}' must contain a mapping")
        documents.append((path, data))

    return documents
