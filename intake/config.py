"""Runtime settings for the intake pipeline.

Defaults match the production behavior.  A YAML file can override any field
and ``INTAKE_*`` environment variables override the file, e.g.
``INTAKE_FORM_RATE_LIMIT=20``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class IntakeSettings:
    """Windows, limits and timeouts used by the classifier and webhooks."""

    form_rate_window_seconds: float = 60.0
    form_rate_limit: int = 8
    form_duplicate_horizon_seconds: float = 600.0

    comment_rate_window_seconds: float = 45.0
    comment_rate_limit: int = 12
    comment_duplicate_horizon_seconds: float = 300.0

    min_fill_ms: int = 900
    max_comment_length: int = 5000
    report_escalation_threshold: int = 3

    # Per (key, signature) cap on remembered timestamps
    signature_history_size: int = 32

    webhook_timeout_seconds: float = 10.0

    catalog_path: str = ""


def _coerce(raw: object, current: object) -> object:
    """Convert *raw* to the type of the field's current value."""
    if raw is None:
        return current
    if isinstance(current, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return str(raw)


def load_settings(path: Optional[str | Path] = None) -> IntakeSettings:
    """Build settings from defaults, an optional YAML file and the environment.

    The YAML file may either hold the fields at the top level or nest them
    under an ``intake:`` key.
    """
    settings = IntakeSettings()
    known = {f.name for f in fields(IntakeSettings)}

    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        data = data.get("intake", data)
        for key, value in data.items():
            if key in known:
                setattr(settings, key, _coerce(value, getattr(settings, key)))

    for name in known:
        raw = os.getenv(f"INTAKE_{name.upper()}")
        if raw is not None:
            setattr(settings, name, _coerce(raw, getattr(settings, name)))

    return settings
