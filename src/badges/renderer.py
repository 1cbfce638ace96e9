"""
Badge renderer.

Turns (template_id, uid, badge_name) into PNG bytes with Pillow.

Template layout on disk:
<templates_dir>/
 └── <template_id>/
     ├── template.json      # optional text field boxes
     └── background.png     # optional background, stretched to the canvas

template.json:
    {"text_fields": [
        {"name": "uid", "x1": 100, "y1": 650, "x2": 300, "y2": 720},
        {"name": "badgeName", "x": 100, "y": 250}
    ]}

Boxes are x1,y1,x2,y2; the legacy x,y form gets a fixed-size box.
"""

import io
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from ..print_queue.errors import RenderError, TemplateNotFoundError


logger = logging.getLogger(__name__)


CANVAS_SIZE = (1226, 799)
BACKGROUND_COLOR = "#f8f9fa"
BORDER_COLOR = "#dee2e6"
TEXT_COLOR = "#000000"

DEFAULT_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"

TEMPLATE_CONFIG = "template.json"
BACKGROUND_IMAGE = "background.png"


@dataclass(frozen=True)
class TextBox:
    """Bounding box a text field is fitted into."""

    x1: int
    y1: int
    x2: int
    y2: int

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    @property
    def center(self) -> tuple[float, float]:
        return (self.x1 + self.width / 2, self.y1 + self.height / 2)

    @classmethod
    def from_config(cls, config: dict, legacy_size: tuple[int, int]) -> "TextBox":
        """Build from {x1,y1,x2,y2} or legacy {x,y}."""
        if "x1" in config:
            return cls(
                int(config["x1"]), int(config["y1"]),
                int(config["x2"]), int(config["y2"]),
            )
        x, y = int(config["x"]), int(config["y"])
        return cls(x, y, x + legacy_size[0], y + legacy_size[1])


DEFAULT_UID_BOX = TextBox(100, 650, 300, 720)
DEFAULT_BADGE_NAME_BOX = TextBox(100, 250, 500, 350)

# Box size given to legacy {x, y} fields
LEGACY_UID_SIZE = (200, 70)
LEGACY_BADGE_NAME_SIZE = (400, 100)


@dataclass
class BadgeTemplate:
    template_id: str
    directory: Path
    uid_box: TextBox = DEFAULT_UID_BOX
    badge_name_box: TextBox = DEFAULT_BADGE_NAME_BOX

    @property
    def background_path(self) -> Path:
        return self.directory / BACKGROUND_IMAGE

    def to_dict(self) -> dict:
        return {
            "id": self.template_id,
            "has_background": self.background_path.is_file(),
            "uid_box": asdict(self.uid_box),
            "badge_name_box": asdict(self.badge_name_box),
        }


class BadgeRenderer:
    """
    Pillow-based badge renderer.

    Each text value is centred in its box with a font size of
    min(box height * 0.6, box width / len(text) * 1.2).
    """

    def __init__(self, templates_dir: str | Path, font_path: Optional[str] = None):
        self.templates_dir = Path(templates_dir)
        self.font_path = font_path or DEFAULT_FONT_PATH

    # =========================================================================
    # Templates
    # =========================================================================

    def load_template(self, template_id: str) -> BadgeTemplate:
        """
        Load a template from its directory.

        Raises:
            RenderError: If the template does not exist or its config is invalid
        """
        if not template_id or Path(template_id).name != template_id or template_id in (".", ".."):
            raise RenderError(f"Invalid template id: {template_id!r}")

        directory = self.templates_dir / template_id
        if not directory.is_dir():
            raise TemplateNotFoundError(f"Template not found: {template_id}")

        template = BadgeTemplate(template_id=template_id, directory=directory)

        config_path = directory / TEMPLATE_CONFIG
        if not config_path.exists():
            logger.debug(f"Template {template_id} has no {TEMPLATE_CONFIG}, using default boxes")
            return template

        try:
            config = json.loads(config_path.read_text(encoding="utf-8"))
            fields = {f["name"]: f for f in config.get("text_fields", [])}
            if "uid" in fields:
                template.uid_box = TextBox.from_config(fields["uid"], LEGACY_UID_SIZE)
            if "badgeName" in fields:
                template.badge_name_box = TextBox.from_config(
                    fields["badgeName"], LEGACY_BADGE_NAME_SIZE
                )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise RenderError(f"Invalid template config for {template_id}: {e}") from e

        return template

    def list_templates(self) -> list[str]:
        if not self.templates_dir.is_dir():
            return []
        return sorted(p.name for p in self.templates_dir.iterdir() if p.is_dir())

    # =========================================================================
    # Rendering
    # =========================================================================

    def render(self, template_id: str, uid: str, badge_name: str) -> bytes:
        """
        Render a badge as PNG bytes.

        Raises:
            RenderError: Unknown template, empty uid/badge name, or drawing failure
        """
        if not uid or not uid.strip():
            raise RenderError("UID is required and must be a non-empty string")
        if not badge_name or not badge_name.strip():
            raise RenderError("Badge name is required and must be a non-empty string")

        template = self.load_template(template_id)

        try:
            image = self._background(template)
            draw = ImageDraw.Draw(image)
            self._draw_text(draw, uid.strip(), template.uid_box)
            self._draw_text(draw, badge_name.strip(), template.badge_name_box)

            buffer = io.BytesIO()
            image.save(buffer, format="PNG")
        except (OSError, ValueError) as e:
            raise RenderError(f"Failed to generate badge: {e}") from e

        logger.debug(f"Rendered badge for uid={uid} with template {template_id}")
        return buffer.getvalue()

    def _background(self, template: BadgeTemplate) -> Image.Image:
        path = template.background_path
        if path.exists():
            with Image.open(path) as background:
                return background.convert("RGB").resize(
                    CANVAS_SIZE, resample=Image.Resampling.LANCZOS
                )

        image = Image.new("RGB", CANVAS_SIZE, BACKGROUND_COLOR)
        draw = ImageDraw.Draw(image)
        draw.rectangle(
            [0, 0, CANVAS_SIZE[0] - 1, CANVAS_SIZE[1] - 1],
            outline=BORDER_COLOR,
            width=3,
        )
        return image

    def _font(self, size: int) -> ImageFont.FreeTypeFont:
        try:
            return ImageFont.truetype(self.font_path, size)
        except OSError:
            # Font file not installed
            return ImageFont.load_default(size=size)

    @staticmethod
    def font_size_for(text: str, box: TextBox) -> int:
        return max(int(min(box.height * 0.6, box.width / len(text) * 1.2)), 1)

    def _draw_text(self, draw: ImageDraw.ImageDraw, text: str, box: TextBox) -> None:
        font = self._font(self.font_size_for(text, box))
        draw.text(box.center, text, fill=TEXT_COLOR, font=font, anchor="mm")
