import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from reportlab.pdfbase import pdfmetrics


ALIGNMENTS = ("left", "center")
OUTPUT_MODES = ("merged", "split")
VERTICAL_ALIGNS = ("baseline", "middle")

MIN_FONT_SIZE = 6
MAX_FONT_SIZE = 72
DEFAULT_FONT_SIZE = 12

# Used when the preview has not been laid out yet (zero or missing size).
DEFAULT_PREVIEW_SIZE_PX = (500.0, 700.0)
DEFAULT_PAGE_SIZE_PT = (595.2756, 841.8898)
DEFAULT_PREVIEW_RENDER_SCALE = 1.5

BASELINE_CORRECTION_PT = 0.0

_NAMED_COLORS = {
    "black": (0.0, 0.0, 0.0),
    "white": (1.0, 1.0, 1.0),
    "red": (1.0, 0.0, 0.0),
    "green": (0.0, 0.5, 0.0),
    "blue": (0.0, 0.0, 1.0),
    "yellow": (1.0, 1.0, 0.0),
    "gray": (0.5, 0.5, 0.5),
    "grey": (0.5, 0.5, 0.5),
}


@dataclass(frozen=True)
class AnchorPoint:
    x: float
    y: float


@dataclass(frozen=True)
class PreviewGeometry:
    width_px: float
    height_px: float


@dataclass(frozen=True)
class TemplateGeometry:
    width_pt: float
    height_pt: float


@dataclass(frozen=True)
class LayoutConfig:
    font_size: int = DEFAULT_FONT_SIZE
    color: tuple[float, float, float] = field(default=(0.0, 0.0, 0.0))
    align: str = "center"
    mode: str = "merged"
    vertical_align: str = "baseline"

    def __post_init__(self) -> None:
        if isinstance(self.font_size, bool) or not isinstance(self.font_size, int):
            raise ValueError(f"Font size must be an integer, got {self.font_size!r}.")
        if not MIN_FONT_SIZE <= self.font_size <= MAX_FONT_SIZE:
            raise ValueError(f"Font size must be between {MIN_FONT_SIZE} and {MAX_FONT_SIZE} pt.")
        if self.align not in ALIGNMENTS:
            raise ValueError(f"Unknown alignment '{self.align}'. Use one of: {', '.join(ALIGNMENTS)}.")
        if self.mode not in OUTPUT_MODES:
            raise ValueError(f"Unknown output mode '{self.mode}'. Use one of: {', '.join(OUTPUT_MODES)}.")
        if self.vertical_align not in VERTICAL_ALIGNS:
            raise ValueError(f"Unknown vertical alignment '{self.vertical_align}'.")
        object.__setattr__(self, "color", normalize_color(self.color, None))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LayoutConfig":
        color = data.get("color", (0.0, 0.0, 0.0))
        if isinstance(color, str):
            color = parse_css_color(color, None)
        return cls(
            font_size=int(data.get("font_size", DEFAULT_FONT_SIZE)),
            color=color,
            align=str(data.get("align", "center")).lower(),
            mode=str(data.get("mode", "merged")).lower(),
            vertical_align=str(data.get("vertical_align", "baseline")).lower(),
        )


def normalize_color(color, fallback: tuple[float, float, float] | None) -> tuple[float, float, float]:
    if not isinstance(color, (list, tuple)) or len(color) != 3:
        if fallback is None:
            raise ValueError(f"Color must be an RGB triple, got {color!r}.")
        return fallback
    try:
        return tuple(max(0.0, min(1.0, float(c))) for c in color)  # type: ignore[return-value]
    except (TypeError, ValueError):
        if fallback is None:
            raise ValueError(f"Color must be an RGB triple, got {color!r}.")
        return fallback


def parse_css_color(value: str, fallback: tuple[float, float, float] | None) -> tuple[float, float, float]:
    s = value.strip().lower() if isinstance(value, str) else ""
    if s in _NAMED_COLORS:
        return _NAMED_COLORS[s]
    if s.startswith("#"):
        hexv = s[1:]
        if len(hexv) == 3:
            hexv = "".join(ch * 2 for ch in hexv)
        if len(hexv) == 6 and all(ch in "0123456789abcdef" for ch in hexv):
            return (
                int(hexv[0:2], 16) / 255.0,
                int(hexv[2:4], 16) / 255.0,
                int(hexv[4:6], 16) / 255.0,
            )
    m = re.match(r"rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)", s)
    if m:
        return tuple(max(0, min(255, int(g))) / 255.0 for g in m.groups())  # type: ignore[return-value]
    if fallback is None:
        raise ValueError(f"Unrecognised color '{value}'.")
    return fallback


def _usable_preview(preview: PreviewGeometry | None) -> tuple[float, float]:
    if preview is None or not preview.width_px or not preview.height_px:
        return DEFAULT_PREVIEW_SIZE_PX
    return float(preview.width_px), float(preview.height_px)


def _usable_page(template: TemplateGeometry | None) -> tuple[float, float]:
    if template is None or not template.width_pt or not template.height_pt:
        return DEFAULT_PAGE_SIZE_PT
    return float(template.width_pt), float(template.height_pt)


def preview_to_document(
    anchor: AnchorPoint,
    preview: PreviewGeometry | None,
    template: TemplateGeometry | None,
) -> tuple[float, float]:
    """Map a preview-pixel point (origin top-left) to page points (origin bottom-left).

    Always pass the preview size measured at generation time; the anchor may
    have been picked before a resize.
    """
    preview_w, preview_h = _usable_preview(preview)
    page_w, page_h = _usable_page(template)
    x = (anchor.x / preview_w) * page_w
    y = page_h - (anchor.y / preview_h) * page_h
    return x, y


def document_to_preview(
    x: float,
    y: float,
    preview: PreviewGeometry | None,
    template: TemplateGeometry | None,
) -> AnchorPoint:
    preview_w, preview_h = _usable_preview(preview)
    page_w, page_h = _usable_page(template)
    return AnchorPoint(x=(x / page_w) * preview_w, y=((page_h - y) / page_h) * preview_h)


def preview_font_px(
    font_size_pt: float,
    preview: PreviewGeometry | None,
    template: TemplateGeometry | None,
) -> float:
    preview_w, _ = _usable_preview(preview)
    page_w, _ = _usable_page(template)
    return font_size_pt * (preview_w / page_w)


def suggested_preview_geometry(template: TemplateGeometry, scale: float = DEFAULT_PREVIEW_RENDER_SCALE) -> PreviewGeometry:
    return PreviewGeometry(width_px=template.width_pt * scale, height_px=template.height_pt * scale)


def text_width(font_name: str, text: str, size: float) -> float:
    return pdfmetrics.stringWidth(text, font_name, size)


def aligned_origin_x(anchor_x: float, width: float, align: str) -> float:
    if align == "left":
        return anchor_x
    if align == "center":
        return anchor_x - width / 2.0
    raise ValueError(f"Unknown alignment '{align}'.")


def baseline_y(anchor_y: float, font_name: str, size: float, vertical_align: str) -> float:
    if vertical_align == "baseline":
        return anchor_y + BASELINE_CORRECTION_PT
    if vertical_align == "middle":
        ascent, descent = pdfmetrics.getAscentDescent(font_name, size)
        # descent is negative; the visual middle of the glyph box sits on the anchor.
        return anchor_y - (ascent + descent) / 2.0 + BASELINE_CORRECTION_PT
    raise ValueError(f"Unknown vertical alignment '{vertical_align}'.")


def place_text(
    font_name: str,
    text: str,
    layout: LayoutConfig,
    anchor_doc: tuple[float, float],
) -> tuple[float, float, float]:
    """Return (x, y, width) of the draw origin for one composed line."""
    width = text_width(font_name, text, layout.font_size)
    x = aligned_origin_x(anchor_doc[0], width, layout.align)
    y = baseline_y(anchor_doc[1], font_name, layout.font_size, layout.vertical_align)
    return x, y, width
