import math
import sys
from pathlib import Path


def get_resource_path(relative_path: str) -> Path:
    """
    Get absolute path to a packaged resource, works for dev and for PyInstaller.

    Args:
        relative_path: Relative path from the package root (e.g. "resources/templates")

    Returns:
        Absolute Path object
    """
    if hasattr(sys, '_MEIPASS'):
        # PyInstaller creates a temp folder and stores path in _MEIPASS
        base_path = Path(sys._MEIPASS) / "timemaster"
    else:
        # This file is in timemaster/utils.py
        base_path = Path(__file__).parent.absolute()

    return base_path / relative_path


def time_to_minutes(value: str) -> int:
    """Convert an "HH:mm" string to minutes since midnight"""
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round .5 away from zero for positive values ("schoolbook" rounding)"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def format_duration(minutes: int) -> str:
    """Format minutes as "2h 15m", omitting a zero component ("45m", "2h")"""
    hours, mins = divmod(int(minutes), 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"
