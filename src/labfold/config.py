"""Configuration management for labfold.

Handles loading and generating TOML config files for the tunable parts of
verification and duplicate detection.
"""

from __future__ import annotations

import copy
import sys
import tomllib
from pathlib import Path

from labfold.fingerprint import DEFAULT_NEAR_DUPLICATE_THRESHOLD
from labfold.labs import DEFAULT_DATA_PATH, LabDirectory, default_directory
from labfold.verification import DEFAULT_WEIGHTS, MAX_AGE_DAYS, VerificationScorer

DEFAULT_CONFIG_PATH = "labfold.toml"

DEFAULT_CONFIG_TEMPLATE = """\
# labfold configuration. Edit freely.

[fingerprint]
# SimHash distance (bits of 64) below which two uploads are likely the same page
near_duplicate_threshold = {near_duplicate_threshold}

[verification]
# Collection dates older than this are flagged (but still accepted)
max_age_days = {max_age_days}

[verification.weights]
{weights}

[labs]
# Custom lab table (YAML, same format as the bundled table). Empty = bundled.
data_path = ""

[logging]
level = "WARNING"
"""

_DEFAULTS: dict = {
    "fingerprint": {"near_duplicate_threshold": DEFAULT_NEAR_DUPLICATE_THRESHOLD},
    "verification": {"weights": dict(DEFAULT_WEIGHTS), "max_age_days": MAX_AGE_DAYS},
    "labs": {"data_path": ""},
    "logging": {"level": "WARNING"},
}


def _default_config() -> dict:
    """Return default configuration."""
    return copy.deepcopy(_DEFAULTS)


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load configuration from a TOML file.

    Sections present in the file are merged over the defaults key by key;
    unknown keys are ignored. Falls back to defaults if the file doesn't exist.
    """
    path = Path(config_path)
    if not path.exists():
        print(
            f"Warning: Config file '{config_path}' not found, using defaults. "
            f"Run 'labfold init-config' to generate one.",
            file=sys.stderr,
        )
        return _default_config()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    config = _default_config()
    for section, values in config.items():
        overrides = raw.get(section)
        if not isinstance(overrides, dict):
            continue
        for key in values:
            if key not in overrides:
                continue
            if isinstance(values[key], dict):
                values[key].update(overrides[key])
            else:
                values[key] = overrides[key]
    return config


def lab_directory_from_config(config: dict) -> LabDirectory:
    data_path = config["labs"].get("data_path") or ""
    if not data_path or Path(data_path) == DEFAULT_DATA_PATH:
        return default_directory()
    return LabDirectory.load(data_path)


def scorer_from_config(config: dict) -> VerificationScorer:
    """Build a VerificationScorer with the configured lab table and weights."""
    verification = config["verification"]
    return VerificationScorer(
        directory=lab_directory_from_config(config),
        weights=verification["weights"],
        max_age_days=verification["max_age_days"],
    )


def generate_config(config_path: str = DEFAULT_CONFIG_PATH) -> str:
    """Write the default config template. Returns the path written."""
    weights = "\n".join(f"{name} = {points}" for name, points in DEFAULT_WEIGHTS.items())
    content = DEFAULT_CONFIG_TEMPLATE.format(
        near_duplicate_threshold=DEFAULT_NEAR_DUPLICATE_THRESHOLD,
        max_age_days=MAX_AGE_DAYS,
        weights=weights,
    )
    Path(config_path).write_text(content)
    return config_path
