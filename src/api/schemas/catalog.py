"""
Template and printer API schemas.

Supports /api/templates/* and /api/printers/* endpoints.
"""

from typing import Dict, List

from pydantic import BaseModel, Field


# =============================================================================
# Template Schemas
# =============================================================================


class TextBoxInfo(BaseModel):
    x1: int
    y1: int
    x2: int
    y2: int


class TemplateInfo(BaseModel):
    """Layout of one badge template."""

    id: str = Field(..., description="Template directory name")
    has_background: bool = Field(..., description="Whether background.png is present")
    uid_box: TextBoxInfo
    badge_name_box: TextBoxInfo


class TemplateListResponse(BaseModel):
    templates: List[str] = Field(default_factory=list, description="Template ids, sorted")
    count: int


# =============================================================================
# Printer Schemas
# =============================================================================


class PrinterStatusResponse(BaseModel):
    printer_id: str = Field(..., description="CUPS destination or spool directory")
    connected: bool
    status: str = Field(..., description="Ready, Printing, Offline, Unknown or Error")
    backend: str = Field(..., description="cups or spool")


class PrinterListResponse(BaseModel):
    printers: List[PrinterStatusResponse] = Field(default_factory=list)
    count: int


class PresetInfo(BaseModel):
    id: str
    name: str
    description: str
    options: Dict[str, str] = Field(..., description="lp -o options")


class PresetListResponse(BaseModel):
    presets: List[PresetInfo]


class PrinterTestResponse(BaseModel):
    message: str
    printer: PrinterStatusResponse
    timestamp: str
