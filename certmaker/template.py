from __future__ import annotations

import json
import secrets
import string
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from slugify import slugify

from . import config
from .errors import TemplateError


_BASE36 = string.digits + string.ascii_lowercase


class FieldKind(str, Enum):
    NAME = "name"
    COURSE = "course"
    ORGANIZATION = "organization"
    DATE = "date"
    OTHER = "other"


class CanvasDimensions(BaseModel):
    """Canvas size in device pixels. Only positive sizes pass validation."""

    model_config = ConfigDict(frozen=True)

    width: float = config.DEFAULT_CANVAS_WIDTH
    height: float = config.DEFAULT_CANVAS_HEIGHT

    @property
    def is_valid(self) -> bool:
        return self.width > 0 and self.height > 0

    @property
    def aspect_ratio(self) -> float:
        if not self.height:
            return 0.0
        return self.width / self.height

    @property
    def orientation(self) -> str:
        return "landscape" if self.width > self.height else "portrait"

    @property
    def pixel_size(self) -> Tuple[int, int]:
        return _ceil_px(self.width), _ceil_px(self.height)


class TemplateField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    value: str = ""
    kind: FieldKind = FieldKind.OTHER


class TextElement(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    id: str
    x: float = 0.0
    y: float = 0.0
    width: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)
    content: str = ""
    font_size: float = Field(default=config.DEFAULT_FONT_SIZE, gt=0)
    color: str = config.DEFAULT_TEXT_COLOR
    font_family: str = config.DEFAULT_FONT_FAMILY


class ImageElement(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["image"] = "image"
    id: str
    x: float = 0.0
    y: float = 0.0
    width: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)
    source: Optional[str] = None
    # upload handle held by the editor until the file is stored
    original_file: Optional[Any] = Field(default=None, exclude=True)


Element = Annotated[Union[TextElement, ImageElement], Field(discriminator="kind")]


class Template(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    background_image: Optional[str] = None
    canvas_dimensions: CanvasDimensions = Field(default_factory=CanvasDimensions)
    elements: List[Element] = Field(default_factory=list)
    fields: List[TemplateField] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def resolve_field_values(self, field_values: Optional[Mapping[str, str]] = None) -> List[Tuple[str, str]]:
        """
        Pair every field name with the value to substitute, in declaration order.

        Request values are keyed by field id and win over the field default.
        An unset or empty request value falls back to the default.
        """
        values = field_values or {}
        return [(field.name, values.get(field.id) or field.value or "") for field in self.fields]

    def recipient(self, field_values: Optional[Mapping[str, str]] = None) -> Optional[str]:
        values = field_values or {}
        for field in self.fields:
            if field.kind == FieldKind.NAME:
                return values.get(field.id) or field.value or None
        return None

    def field_by_name(self, name: str) -> Optional[TemplateField]:
        folded = name.casefold()
        for field in self.fields:
            if field.name.casefold() == folded:
                return field
        return None


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    template: Template
    field_values: Dict[str, str] = Field(default_factory=dict)
    include_metadata: bool = False


def _ceil_px(value: float) -> int:
    whole = int(value)
    if value > whole:
        whole += 1
    return max(1, whole)


def _base36(number: int) -> str:
    if number <= 0:
        return "0"
    digits: List[str] = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _timestamp36() -> str:
    return _base36(int(time.time() * 1000))


def generate_template_id(name: str) -> str:
    clean = slugify(name)[:20].strip("-") or "template"
    return f"{clean}-{_timestamp36()}"


def generate_certificate_code() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"cert_{_timestamp36()}_{suffix}"


def certificate_filename(template: Template, field_values: Optional[Mapping[str, str]] = None) -> str:
    recipient = template.recipient(field_values) or "certificate"
    return f"{slugify(template.name) or 'certificate'}-{slugify(recipient) or 'certificate'}.pdf"


# metadata.json documents use the editor's camelCase shape


def _element_from_metadata(data: Mapping[str, Any]) -> Union[TextElement, ImageElement]:
    kind = data.get("type") or data.get("kind")
    common = {
        "id": str(data.get("id", "")),
        "x": data.get("x", 0),
        "y": data.get("y", 0),
        "width": data.get("width", 0),
        "height": data.get("height", 0),
    }
    if kind == "text":
        return TextElement(
            **common,
            content=data.get("content") or "",
            font_size=data.get("fontSize") or config.DEFAULT_FONT_SIZE,
            color=data.get("color") or config.DEFAULT_TEXT_COLOR,
            font_family=data.get("fontFamily") or config.DEFAULT_FONT_FAMILY,
        )
    if kind == "image":
        return ImageElement(**common, source=data.get("src") or None)
    raise TemplateError(f"Unsupported element type: {kind!r}")


def _element_to_metadata(element: Union[TextElement, ImageElement]) -> dict:
    common = {
        "id": element.id,
        "x": element.x,
        "y": element.y,
        "width": element.width,
        "height": element.height,
    }
    if isinstance(element, TextElement):
        return {
            "type": "text",
            **common,
            "content": element.content,
            "fontSize": element.font_size,
            "color": element.color,
            "fontFamily": element.font_family,
        }
    if isinstance(element, ImageElement):
        return {"type": "image", **common, "src": element.source}
    raise TypeError(f"Unknown element type: {type(element).__name__}")


def from_metadata(data: Mapping[str, Any], template_id: Optional[str] = None) -> Template:
    dims = data.get("canvasDimensions") or {}
    payload: Dict[str, Any] = {
        "id": data.get("id") or template_id or generate_template_id(str(data.get("name", ""))),
        "name": data.get("name") or "",
        "description": data.get("description") or "",
        "background_image": data.get("bgImage") or None,
        "canvas_dimensions": CanvasDimensions(
            width=dims.get("width", config.DEFAULT_CANVAS_WIDTH),
            height=dims.get("height", config.DEFAULT_CANVAS_HEIGHT),
        ),
        "elements": [_element_from_metadata(item) for item in data.get("elements") or []],
        "fields": [
            TemplateField(
                id=str(item.get("id", "")),
                name=str(item.get("name", "")),
                value=item.get("value") or "",
                kind=item.get("type") or FieldKind.OTHER,
            )
            for item in data.get("prefixes") or []
        ],
    }
    if data.get("createdAt"):
        payload["created_at"] = data["createdAt"]
    if data.get("updatedAt"):
        payload["updated_at"] = data["updatedAt"]
    return Template(**payload)


def to_metadata(template: Template, include_background: bool = True) -> dict:
    metadata = {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "createdAt": template.created_at.isoformat(),
        "updatedAt": template.updated_at.isoformat(),
        "prefixes": [
            {"id": field.id, "name": field.name, "value": field.value, "type": field.kind.value}
            for field in template.fields
        ],
        "elements": [_element_to_metadata(element) for element in template.elements],
        "canvasDimensions": {
            "width": template.canvas_dimensions.width,
            "height": template.canvas_dimensions.height,
        },
        "version": config.TEMPLATE_VERSION,
    }
    if include_background and template.background_image:
        metadata["bgImage"] = template.background_image
    return metadata


def load_template(path: Path) -> Template:
    if not path.exists():
        raise FileNotFoundError(f"Template not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise TemplateError(f"Template {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise TemplateError(f"Template {path} must be a JSON object")
    if not data.get("bgImage"):
        background = next(iter(sorted(path.parent.glob("background.*"))), None)
        if background is not None:
            data["bgImage"] = str(background)
    template_id = path.parent.name if path.name == "metadata.json" else path.stem
    try:
        return from_metadata(data, template_id=template_id)
    except ValidationError as exc:
        raise TemplateError(f"Template {path} is malformed: {exc}") from exc


def dump_template(template: Template, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_metadata(template), indent=2), encoding="utf-8")
    return path
