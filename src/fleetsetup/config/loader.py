# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/config/loader.py

import logging
import os
from pathlib import Path

import yaml

from .models import SetupConfig

log = logging.getLogger("fleetsetup")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _merge_by_name(base: list, override: list) -> list:
    """Merge list entries that share a ``name`` key (bundles, nodes)."""
    index = {item.get("name"): item for item in base if isinstance(item, dict)}
    for item in override:
        if not isinstance(item, dict):
            continue
        target = index.get(item.get("name"))
        if target is None:
            log.warning("secrets entry '%s' has no matching config entry, skipping", item.get("name"))
            continue
        _deep_merge(target, item)
    return base


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. FLEETSETUP_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the setup config
    """
    env = os.environ.get("FLEETSETUP_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("FLEETSETUP_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _expand_env(value, key: str = ""):
    """
    Expand ${ENV_VAR} references in parsed YAML values. Command lines are
    left as written: they run on the node, against the node's environment.
    """
    if isinstance(value, dict):
        return {k: _expand_env(v, str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v, key) for v in value]
    if isinstance(value, str) and not key.endswith("command_line"):
        return os.path.expandvars(value)
    return value


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references outside command lines."""
    return _expand_env(yaml.safe_load(path.read_text()) or {})


def _resolve_paths(cfg: SetupConfig, base: Path) -> SetupConfig:
    if not cfg.controller.work_dir.is_absolute():
        cfg.controller.work_dir = (base / cfg.controller.work_dir).resolve()
    for bundle in cfg.bundles:
        if bundle.files_dir is not None and not bundle.files_dir.is_absolute():
            bundle.files_dir = (base / bundle.files_dir).resolve()
    return cfg


def load_config(path: str | Path) -> SetupConfig:
    """
    Load and validate a fleetsetup YAML config.

    Secrets (SSH passwords, per-node environment values) can live in a
    ``secrets.yaml`` mirroring the config structure. Bundles and nodes are
    matched by ``name``; everything else is deep-merged. ``${ENV_VAR}``
    placeholders are expanded in both files, except inside the
    ``*command_line`` fields.

    Relative ``files_dir`` and ``controller.work_dir`` entries resolve
    against the directory holding the config file.
    """
    path = Path(path)
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        secrets = _load_yaml(secrets_path)
        for key in ("bundles", "nodes"):
            if isinstance(secrets.get(key), list):
                _merge_by_name(data.setdefault(key, []), secrets.pop(key))
        _deep_merge(data, secrets)
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    cfg = SetupConfig.model_validate(data)
    return _resolve_paths(cfg, path.parent.resolve())
