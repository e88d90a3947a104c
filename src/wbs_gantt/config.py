"""Project configuration (tomlkit) and settings (YAML)."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

import tomlkit
import yaml

from wbs_gantt.models import (
    DATE_FORMAT_PRESETS,
    DEFAULT_DATE_FORMAT,
    ProjectConfig,
    WeightMode,
)

CONFIG_DIR = ".wbs-gantt"
CONFIG_FILE = "config.toml"
SETTINGS_FILE = "settings.yaml"


def _get_config_path(project_dir: Path) -> Path:
    return project_dir / CONFIG_DIR / CONFIG_FILE


def load_config(project_dir: Path) -> ProjectConfig:
    """Load project configuration from .wbs-gantt/config.toml.

    A missing or unreadable file yields the defaults.
    """
    config_path = _get_config_path(project_dir)
    config = ProjectConfig()

    if not config_path.exists():
        return config

    try:
        doc = tomlkit.parse(config_path.read_text(encoding="utf-8"))
    except Exception:
        return config

    project_section = doc.get("project", {})
    config.name = str(project_section.get("name", ""))
    config.project_id = str(project_section.get("project_id", "default")) or "default"
    raw_fmt = str(project_section.get("date_format", DEFAULT_DATE_FORMAT))
    config.date_format = raw_fmt if raw_fmt in DATE_FORMAT_PRESETS else DEFAULT_DATE_FORMAT

    rollup_section = doc.get("rollup", {})
    try:
        config.weight_mode = WeightMode(str(rollup_section.get("weight_mode", "normalize")))
    except ValueError:
        config.weight_mode = WeightMode.NORMALIZE

    gantt_section = doc.get("gantt", {})
    levels = gantt_section.get("zoom_levels")
    if isinstance(levels, list):
        parsed = [int(v) for v in levels if isinstance(v, int) and v > 0]
        if parsed:
            config.zoom_levels = parsed
    config.zoom_index = int(gantt_section.get("zoom_index", config.zoom_index))
    config.zoom_index = max(0, min(config.zoom_index, len(config.zoom_levels) - 1))
    config.expand_level = int(gantt_section.get("expand_level", config.expand_level))

    return config


def save_config(project_dir: Path, config: ProjectConfig) -> None:
    """Save project configuration to .wbs-gantt/config.toml.

    Keys and comments the user added to an existing file are kept.
    """
    config_path = _get_config_path(project_dir)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    doc = tomlkit.document()
    if config_path.exists():
        try:
            doc = tomlkit.parse(config_path.read_text(encoding="utf-8"))
        except Exception:
            doc = tomlkit.document()

    for section in ("project", "rollup", "gantt"):
        if section not in doc:
            doc.add(section, tomlkit.table())

    doc["project"]["name"] = config.name
    doc["project"]["project_id"] = config.project_id
    doc["project"]["date_format"] = config.date_format
    doc["rollup"]["weight_mode"] = config.weight_mode.value
    doc["gantt"]["zoom_levels"] = list(config.zoom_levels)
    doc["gantt"]["zoom_index"] = config.zoom_index
    doc["gantt"]["expand_level"] = config.expand_level

    config_path.write_text(tomlkit.dumps(doc), encoding="utf-8")


# ── Settings (YAML) ─────────────────────────────────────────────

def _load_yaml(path: Path) -> dict:
    """Load a YAML file and return a dict (empty dict on error)."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except Exception:
        return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (returns a new dict)."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            # lists and scalars are replaced, not appended
            result[key] = val
    return result


def load_settings(project_dir: Path | None = None) -> dict[str, Any]:
    """Bundled default_settings.yaml with the project's settings.yaml merged on top."""
    data = _load_yaml(Path(__file__).parent / "default_settings.yaml")

    if project_dir is not None:
        override_path = project_dir / CONFIG_DIR / SETTINGS_FILE
        if override_path.is_file():
            override = _load_yaml(override_path)
            if override:
                data = _deep_merge(data, override)

    return data


def get_holidays(settings: dict[str, Any]) -> list[date]:
    """Parse holiday date strings from settings into date objects."""
    raw = settings.get("holidays", [])
    holidays: list[date] = []
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, date):
                holidays.append(item)
                continue
            try:
                holidays.append(date.fromisoformat(str(item)))
            except (ValueError, TypeError):
                pass
    return holidays
