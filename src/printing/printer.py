"""
Printer backends.

- LpPrinter: CUPS `lp -d <printer>`
- SpoolPrinter: copies documents into a directory (no printer attached)

Both raise PrintError on failure and report a PrinterStatus. PRESETS holds
named sets of `lp -o` options.
"""

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..print_queue.errors import PrintError


logger = logging.getLogger(__name__)


# Upper bound for a single `lp` call; the queue's processing timeout is usually shorter
LP_TIMEOUT_SECONDS = 120
LPSTAT_TIMEOUT_SECONDS = 10


PRESETS: dict[str, dict] = {
    "default": {
        "name": "Default Badge",
        "description": "Standard badge printing settings",
        "options": {"media": "A4", "orientation-requested": "3", "fit-to-page": "true"},
    },
    "high-quality": {
        "name": "High Quality",
        "description": "High quality badge printing",
        "options": {
            "media": "A4",
            "orientation-requested": "3",
            "fit-to-page": "true",
            "print-quality": "5",
        },
    },
    "fast": {
        "name": "Fast Print",
        "description": "Fast badge printing for high volume",
        "options": {
            "media": "A4",
            "orientation-requested": "3",
            "fit-to-page": "true",
            "print-quality": "3",
        },
    },
}


def list_presets() -> list[dict]:
    return [{"id": preset_id, **preset} for preset_id, preset in PRESETS.items()]


def preset_options(preset_id: str) -> dict[str, str]:
    """
    lp options of a named preset.

    Raises:
        ValueError: If the preset does not exist
    """
    try:
        return dict(PRESETS[preset_id]["options"])
    except KeyError:
        raise ValueError(f"Unknown printer preset: {preset_id}") from None


@dataclass
class PrinterStatus:
    """Snapshot of a printer's readiness."""

    printer_id: str
    connected: bool
    status: str
    backend: str

    def to_dict(self) -> dict:
        return asdict(self)


class Printer(ABC):

    @abstractmethod
    def print(self, document_path: str) -> None:
        """Send a document to the printer. Raises PrintError."""
        pass

    @abstractmethod
    def status(self) -> PrinterStatus:
        """Current readiness. Never raises."""
        pass

    @staticmethod
    def _require_document(document_path: str) -> Path:
        path = Path(document_path)
        if not path.is_file():
            raise PrintError(f"Document not found: {document_path}")
        return path


class LpPrinter(Printer):
    """
    CUPS printer driven through the `lp` command.

    Args:
        printer_name: CUPS destination
        options: Extra `-o key=value` options (e.g. {"media": "Custom.86x54mm"})
    """

    def __init__(self, printer_name: str, options: Optional[dict[str, str]] = None):
        self.printer_name = printer_name
        self.options = dict(options or {})

    def build_command(self, document_path: str) -> list[str]:
        cmd = ["lp", "-d", self.printer_name]
        for key, value in self.options.items():
            cmd += ["-o", f"{key}={value}"]
        cmd.append(document_path)
        return cmd

    def print(self, document_path: str) -> None:
        self._require_document(document_path)
        cmd = self.build_command(document_path)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=LP_TIMEOUT_SECONDS,
            )
        except FileNotFoundError as e:
            raise PrintError("lp command not available (is CUPS installed?)") from e
        except subprocess.TimeoutExpired as e:
            raise PrintError(f"lp timed out after {LP_TIMEOUT_SECONDS}s") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise PrintError(
                f"Failed to print document on {self.printer_name}: "
                f"{stderr or f'lp exited with code {result.returncode}'}"
            )

        logger.info(f"Sent {document_path} to {self.printer_name}: {result.stdout.strip()}")

    def status(self) -> PrinterStatus:
        return self.query_status(self.printer_name)

    @staticmethod
    def query_status(printer_name: str) -> PrinterStatus:
        """
        Parse `lpstat -p <printer>`.

        A disabled printer or one not accepting jobs is reported as not
        connected; a failing lpstat call as status "Error".
        """
        try:
            out = subprocess.check_output(
                ["lpstat", "-p", printer_name],
                text=True,
                stderr=subprocess.STDOUT,
                timeout=LPSTAT_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            logger.warning(f"lpstat -p {printer_name} failed: {e}")
            return PrinterStatus(printer_name, False, "Error", "cups")

        connected = "disabled" not in out and "not accepting" not in out
        if "idle" in out:
            state = "Ready"
        elif "printing" in out:
            state = "Printing"
        elif "disabled" in out:
            state = "Offline"
        else:
            state = "Unknown"
        return PrinterStatus(printer_name, connected, state, "cups")

    @staticmethod
    def list_printers() -> list[str]:
        """CUPS destinations accepting jobs (`lpstat -a`). Empty if unavailable."""
        try:
            out = subprocess.check_output(["lpstat", "-a"], text=True)
        except (OSError, subprocess.CalledProcessError) as e:
            logger.warning(f"lpstat failed, returning empty printer list: {e}")
            return []
        return [line.split()[0] for line in out.splitlines() if line.strip()]

    @classmethod
    def discover(cls) -> list[PrinterStatus]:
        """Status of every CUPS destination accepting jobs."""
        return [cls.query_status(name) for name in cls.list_printers()]


class SpoolPrinter(Printer):
    """Writes each document into `spool_dir` instead of printing it."""

    def __init__(self, spool_dir: str | Path):
        self.spool_dir = Path(spool_dir)

    def print(self, document_path: str) -> None:
        source = self._require_document(document_path)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        target = self.spool_dir / f"{stamp}_{source.name}"

        try:
            self.spool_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as e:
            raise PrintError(f"Failed to spool document: {e}") from e

        logger.info(f"Spooled {source.name} to {target}")

    def status(self) -> PrinterStatus:
        return PrinterStatus(str(self.spool_dir), True, "Ready", "spool")


def create_printer(
    printer_name: Optional[str],
    spool_dir: str | Path,
    preset: Optional[str] = None,
) -> Printer:
    """
    LpPrinter when a printer name is configured, SpoolPrinter otherwise.

    Raises:
        ValueError: If `preset` is not a known preset
    """
    options = preset_options(preset) if preset else None
    if printer_name:
        logger.info(f"Using CUPS printer: {printer_name} (preset={preset or 'none'})")
        return LpPrinter(printer_name, options=options)
    logger.info(f"No printer configured, spooling to {spool_dir}")
    return SpoolPrinter(spool_dir)
