"""
Badge rendering - template loading and PNG composition.
"""

from .renderer import (
    BadgeRenderer,
    BadgeTemplate,
    TextBox,
    CANVAS_SIZE,
)

__all__ = [
    "BadgeRenderer",
    "BadgeTemplate",
    "TextBox",
    "CANVAS_SIZE",
]
