"""
Printer backends.
"""

from .printer import (
    PRESETS,
    LpPrinter,
    Printer,
    PrinterStatus,
    SpoolPrinter,
    create_printer,
    list_presets,
    preset_options,
)

__all__ = [
    "PRESETS",
    "Printer",
    "PrinterStatus",
    "LpPrinter",
    "SpoolPrinter",
    "create_printer",
    "list_presets",
    "preset_options",
]
