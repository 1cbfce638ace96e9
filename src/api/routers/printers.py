"""
Printers router - printer discovery, status and presets.

Endpoints:
- GET  /api/printers          CUPS destinations with their status
- GET  /api/printers/status   status of the printer the queue prints to
- GET  /api/printers/presets  named lp option sets (PRINTER_PRESET)
- POST /api/printers/test     connectivity check of the queue's printer

Nothing here sends a document to the printer; the queue owns it.
"""

import logging

from fastapi import APIRouter, HTTPException

from src.print_queue.entities import now_iso
from src.printing.printer import LpPrinter, list_presets

from ..schemas.catalog import (
    PresetInfo,
    PresetListResponse,
    PrinterListResponse,
    PrinterStatusResponse,
    PrinterTestResponse,
)
from .._queue_state import get_queue_service


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=PrinterListResponse)
def discover_printers():
    printers = [PrinterStatusResponse(**s.to_dict()) for s in LpPrinter.discover()]
    return PrinterListResponse(printers=printers, count=len(printers))


@router.get("/status", response_model=PrinterStatusResponse)
def get_printer_status():
    return PrinterStatusResponse(**get_queue_service().printer.status().to_dict())


@router.get("/presets", response_model=PresetListResponse)
def get_presets():
    return PresetListResponse(presets=[PresetInfo(**p) for p in list_presets()])


@router.post("/test", response_model=PrinterTestResponse)
def check_printer():
    """
    Check that the queue's printer is reachable.

    503 when it reports itself offline or unreachable.
    """
    status = PrinterStatusResponse(**get_queue_service().printer.status().to_dict())

    if not status.connected:
        logger.warning(f"Printer test failed: {status.printer_id} is {status.status}")
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Printer unavailable",
                "message": f"Printer {status.printer_id} is {status.status}",
            },
        )

    return PrinterTestResponse(
        message="Printer connectivity test completed",
        printer=status,
        timestamp=now_iso(),
    )
