"""YAML-based colour system.

Loads colours from default_theme.yaml and optionally merges project-level
overrides from {project_dir}/.wbs-gantt/theme.yaml.
"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path
from typing import NamedTuple

from wbs_gantt.config import CONFIG_DIR, _deep_merge, _load_yaml
from wbs_gantt.models import DisplayStatus, Level

THEME_FILE = "theme.yaml"


class ColorPair(NamedTuple):
    """A pair of colours for dark and light themes."""

    dark: str
    light: str

    def resolve(self, is_dark: bool) -> str:
        return self.dark if is_dark else self.light


# ── Module-level variables (populated by _apply) ──────────────────

STATUS_COLORS: dict[DisplayStatus, ColorPair]
LEVEL_COLORS: dict[Level, ColorPair]

GANTT_HEADER: ColorPair
GANTT_TODAY_MARKER: ColorPair
GANTT_BAR_DERIVED: ColorPair
GANTT_BAR_DRAGGING: ColorPair
GANTT_BASE_BG: ColorPair
GANTT_HIGHLIGHT_BG: ColorPair
GANTT_WEEKEND_BG: ColorPair
GANTT_HOLIDAY_BG: ColorPair

PROGRESS_THRESHOLDS: list[tuple[int, ColorPair]]

WEIGHT_WARNING: ColorPair
CHECK_MARK: ColorPair


def _pair(d: dict) -> ColorPair:
    """Convert a {dark: ..., light: ...} dict to a ColorPair."""
    return ColorPair(str(d.get("dark", "white")), str(d.get("light", "white")))


def _apply(data: dict) -> None:
    """Map parsed YAML data onto module-level constants."""
    mod = sys.modules[__name__]

    status = data.get("status", {})
    mod.STATUS_COLORS = {s: _pair(status.get(s.value.lower(), {})) for s in DisplayStatus}

    levels = data.get("level", {})
    mod.LEVEL_COLORS = {lv: _pair(levels.get(lv.name.lower(), {})) for lv in Level}

    gantt = data.get("gantt", {})
    mod.GANTT_HEADER = _pair(gantt.get("header", {}))
    mod.GANTT_TODAY_MARKER = _pair(gantt.get("today_marker", {}))
    mod.GANTT_BAR_DERIVED = _pair(gantt.get("bar_derived", {}))
    mod.GANTT_BAR_DRAGGING = _pair(gantt.get("bar_dragging", {}))
    mod.GANTT_BASE_BG = _pair(gantt.get("base_bg", {}))
    mod.GANTT_HIGHLIGHT_BG = _pair(gantt.get("highlight_bg", {}))
    mod.GANTT_WEEKEND_BG = _pair(gantt.get("weekend_bg", {"dark": "#2a1a1a", "light": "#e8d8d8"}))
    mod.GANTT_HOLIDAY_BG = _pair(gantt.get("holiday_bg", {"dark": "#3a2a1a", "light": "#f0e0c8"}))

    thresholds: list[tuple[int, ColorPair]] = []
    for entry in data.get("progress", []):
        if isinstance(entry, dict):
            thresholds.append((int(entry.get("min", 0)), _pair(entry)))
    mod.PROGRESS_THRESHOLDS = sorted(thresholds, key=lambda t: -t[0])

    ui = data.get("ui", {})
    mod.WEIGHT_WARNING = _pair(ui.get("weight_warning", {}))
    mod.CHECK_MARK = _pair(ui.get("check_mark", {}))


def progress_color(progress: int) -> ColorPair:
    for threshold, color in PROGRESS_THRESHOLDS:
        if progress >= threshold:
            return color
    return PROGRESS_THRESHOLDS[-1][1] if PROGRESS_THRESHOLDS else ColorPair("white", "black")


# ── Public API ────────────────────────────────────────────────────

def init_theme(project_dir: Path) -> Path:
    """Copy default_theme.yaml → {project_dir}/.wbs-gantt/theme.yaml.

    Raises FileExistsError if the destination already exists.
    """
    dest = project_dir / CONFIG_DIR / THEME_FILE
    if dest.exists():
        raise FileExistsError(str(dest))
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(Path(__file__).parent / "default_theme.yaml", dest)
    return dest


def load_theme(project_dir: Path | None = None) -> None:
    """Load the bundled theme and deep-merge the project's overrides on top."""
    data = _load_yaml(Path(__file__).parent / "default_theme.yaml")

    if project_dir is not None:
        override_path = project_dir / CONFIG_DIR / THEME_FILE
        if override_path.is_file():
            override = _load_yaml(override_path)
            if override:
                data = _deep_merge(data, override)

    _apply(data)


load_theme()
