"""
Tests for the Pillow badge renderer.
"""

import io
import json

import pytest
from PIL import Image

from src.badges.renderer import (
    CANVAS_SIZE,
    DEFAULT_BADGE_NAME_BOX,
    DEFAULT_UID_BOX,
    BadgeRenderer,
    TextBox,
)
from src.print_queue.errors import RenderError, TemplateNotFoundError


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def templates_dir(tmp_path):
    """Templates directory with an empty 'default' template."""
    root = tmp_path / "templates"
    (root / "default").mkdir(parents=True)
    return root


@pytest.fixture
def renderer(templates_dir):
    return BadgeRenderer(templates_dir)


def write_config(templates_dir, template_id, text_fields):
    directory = templates_dir / template_id
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "template.json").write_text(json.dumps({"text_fields": text_fields}))


class TestRender:
    def test_renders_png_at_canvas_size(self, renderer):
        data = renderer.render("default", "A1", "Ada Lovelace")

        assert data.startswith(PNG_SIGNATURE)
        with Image.open(io.BytesIO(data)) as image:
            assert image.size == CANVAS_SIZE
            assert image.mode == "RGB"

    def test_background_image_is_used(self, renderer, templates_dir):
        Image.new("RGB", (100, 60), (255, 0, 0)).save(templates_dir / "default" / "background.png")

        data = renderer.render("default", "A1", "Ada")

        with Image.open(io.BytesIO(data)) as image:
            assert image.size == CANVAS_SIZE
            red, green, blue = image.getpixel((5, 5))
            assert red > 250 and green < 5 and blue < 5

    def test_missing_font_falls_back_to_default(self, templates_dir):
        renderer = BadgeRenderer(templates_dir, font_path="/nonexistent/font.ttf")

        assert renderer.render("default", "A1", "Ada").startswith(PNG_SIGNATURE)

    @pytest.mark.parametrize("uid,badge_name", [("", "Ada"), ("  ", "Ada"), ("A1", ""), ("A1", " ")])
    def test_empty_fields_rejected(self, renderer, uid, badge_name):
        with pytest.raises(RenderError):
            renderer.render("default", uid, badge_name)

    def test_unknown_template(self, renderer):
        with pytest.raises(TemplateNotFoundError, match="Template not found"):
            renderer.render("conference", "A1", "Ada")

    @pytest.mark.parametrize("template_id", ["", ".", "..", "../default", "a/b"])
    def test_invalid_template_id(self, renderer, template_id):
        with pytest.raises(RenderError):
            renderer.load_template(template_id)


class TestTemplates:
    def test_default_boxes_without_config(self, renderer):
        template = renderer.load_template("default")

        assert template.uid_box == DEFAULT_UID_BOX
        assert template.badge_name_box == DEFAULT_BADGE_NAME_BOX

    def test_boxes_from_config(self, renderer, templates_dir):
        write_config(templates_dir, "conference", [
            {"name": "uid", "x1": 10, "y1": 20, "x2": 110, "y2": 70},
            {"name": "badgeName", "x1": 50, "y1": 100, "x2": 650, "y2": 220},
        ])

        template = renderer.load_template("conference")

        assert template.uid_box == TextBox(10, 20, 110, 70)
        assert template.badge_name_box == TextBox(50, 100, 650, 220)

    def test_legacy_point_fields(self, renderer, templates_dir):
        write_config(templates_dir, "legacy", [
            {"name": "uid", "x": 10, "y": 20},
            {"name": "badgeName", "x": 50, "y": 100},
        ])

        template = renderer.load_template("legacy")

        assert template.uid_box == TextBox(10, 20, 210, 90)
        assert template.badge_name_box == TextBox(50, 100, 450, 200)

    def test_invalid_json_rejected(self, renderer, templates_dir):
        (templates_dir / "default" / "template.json").write_text("{not json")

        with pytest.raises(RenderError, match="Invalid template config"):
            renderer.load_template("default")

    def test_field_without_coordinates_rejected(self, renderer, templates_dir):
        write_config(templates_dir, "broken", [{"name": "uid"}])

        with pytest.raises(RenderError):
            renderer.load_template("broken")

    def test_list_templates(self, renderer, templates_dir):
        (templates_dir / "vip").mkdir()
        (templates_dir / "notes.txt").write_text("not a template")

        assert renderer.list_templates() == ["default", "vip"]

    def test_list_templates_missing_dir(self, tmp_path):
        assert BadgeRenderer(tmp_path / "missing").list_templates() == []

    def test_template_to_dict(self, renderer, templates_dir):
        Image.new("RGB", (10, 10)).save(templates_dir / "default" / "background.png")

        data = renderer.load_template("default").to_dict()

        assert data["id"] == "default"
        assert data["has_background"] is True
        assert data["uid_box"] == {"x1": 100, "y1": 650, "x2": 300, "y2": 720}


class TestLayout:
    def test_text_box_geometry(self):
        box = TextBox(100, 250, 500, 350)

        assert box.width == 400
        assert box.height == 100
        assert box.center == (300, 300)

    def test_font_size_limited_by_height(self):
        assert BadgeRenderer.font_size_for("A1", TextBox(0, 0, 400, 100)) == 60

    def test_font_size_limited_by_width(self):
        text = "A very long badge name indeed"
        size = BadgeRenderer.font_size_for(text, TextBox(0, 0, 400, 100))

        assert size == int(400 / len(text) * 1.2)
        assert size < 60
