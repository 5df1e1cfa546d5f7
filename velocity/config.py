"""
velocity/config.py
Tuning constants for the triage engine. Persists overrides to velocity_config.json.
Every numeric cutoff used by the classifier, scorer and narrative lives here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Hard ceiling for chips on a card. Config can lower it, never raise it.
MAX_DISPLAY_TAGS = 4


@dataclass(frozen=True)
class Thresholds:
    """Product-tuning cutoffs. Frozen so a shared default cannot drift."""
    revenue_value_threshold: float = 1500.0   # REVENUE floor, also RECOVERY value bonus
    logistics_stale_hours:   float = 24.0     # LOGISTICS staleness bonus kicks in after
    old_equipment_years:     int   = 12       # "old" system in revenue narrative
    replacement_ready_years: int   = 15       # Replacement Ready smart tag
    recall_window_days:      int   = 30       # Recall Risk for recent jobs
    high_value_tag:          float = 5000.0   # $5K+ tag
    very_high_value_tag:     float = 10000.0  # $10K+ tag
    max_display_tags:        int   = 4        # at most MAX_DISPLAY_TAGS
    summary_min_length:      int   = 15       # shorter AI summaries are ignored
    summary_max_length:      int   = 100
    short_summary_length:    int   = 60
    short_address_length:    int   = 10       # below this the address is flagged


DEFAULT_THRESHOLDS = Thresholds()

DEFAULT_CONFIG: Dict[str, Any] = {
    "thresholds": asdict(DEFAULT_THRESHOLDS),
    "api_host":   "127.0.0.1",
    "api_port":   8766,
    "timezone":   "UTC",
}


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / "velocity_config.json"


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from velocity_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            merged = {**DEFAULT_CONFIG, **data}
            merged["thresholds"] = {
                **DEFAULT_CONFIG["thresholds"],
                **(data.get("thresholds") or {}),
            }
            return merged
        except (json.JSONDecodeError, OSError, AttributeError, TypeError) as e:
            logger.warning(f"Config load failed: {e}")
    return json.loads(json.dumps(DEFAULT_CONFIG))


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to velocity_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def thresholds_from_config(config: Optional[Dict[str, Any]] = None) -> Thresholds:
    """
    Build a Thresholds from a config dict. Unknown keys are ignored and
    values that cannot be coerced keep their defaults. max_display_tags is
    clamped to 1..MAX_DISPLAY_TAGS.
    """
    if not config:
        return DEFAULT_THRESHOLDS
    raw = config.get("thresholds") or {}
    values: Dict[str, Any] = {}
    for f in fields(Thresholds):
        if f.name not in raw:
            continue
        default = getattr(DEFAULT_THRESHOLDS, f.name)
        try:
            values[f.name] = type(default)(raw[f.name])
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Ignoring bad threshold {f.name}={raw[f.name]!r}")

    cap = values.get("max_display_tags")
    if cap is not None and not 1 <= cap <= MAX_DISPLAY_TAGS:
        values["max_display_tags"] = min(max(cap, 1), MAX_DISPLAY_TAGS)
        logger.warning(f"Clamped max_display_tags={cap} to {values['max_display_tags']}")
    return Thresholds(**values) if values else DEFAULT_THRESHOLDS
