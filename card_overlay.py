import argparse
import io
import json
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable

from pypdf import PageObject, PdfReader, PdfWriter
from reportlab.lib.colors import Color
from reportlab.pdfgen import canvas

from card_bundle import DEFAULT_BASENAME, PackagedOutput, package_merged, package_split, record_filename, serialize_document
from font_resolver import resolve_font
from name_records import Record, load_records
from placement import (
    AnchorPoint,
    LayoutConfig,
    PreviewGeometry,
    TemplateGeometry,
    place_text,
    preview_to_document,
)


ProgressCallback = Callable[[int], None]


class InputMissingError(ValueError):
    """Raised when generation is requested without a template or records."""


class AssemblyError(RuntimeError):
    """Raised when a run cannot produce its documents; no partial output survives."""


class GenerationInProgressError(RuntimeError):
    """Raised when generate() is called while a run is already active."""


class AssemblerState(str, Enum):
    IDLE = "idle"
    TEMPLATE_READY = "template_ready"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


def inspect_template(template_bytes: bytes) -> tuple[TemplateGeometry, int]:
    """Return page 0 geometry and the page count of a template PDF."""
    try:
        reader = PdfReader(io.BytesIO(template_bytes))
        page_count = len(reader.pages)
        if page_count < 1:
            raise AssemblyError("Template PDF has no pages.")
        page = reader.pages[0]
        geometry = TemplateGeometry(
            width_pt=float(page.mediabox.width),
            height_pt=float(page.mediabox.height),
        )
    except AssemblyError:
        raise
    except Exception as exc:
        raise AssemblyError(f"Template PDF is unreadable: {exc}") from exc
    return geometry, page_count


def template_page(template_bytes: bytes) -> PageObject:
    return PdfReader(io.BytesIO(template_bytes)).pages[0]


def draw_anchor(c: canvas.Canvas, x: float, y: float) -> None:
    c.saveState()
    c.setStrokeColor(Color(1, 0, 0, alpha=0.8))
    c.setLineWidth(0.7)
    c.line(x - 6, y, x + 6, y)
    c.line(x, y - 6, x, y + 6)
    c.restoreState()


def draw_overlay(
    page_w: float,
    page_h: float,
    text: str,
    font_name: str,
    layout: LayoutConfig,
    x: float,
    y: float,
    debug_anchor: tuple[float, float] | None = None,
) -> bytes:
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=(page_w, page_h))
    c.setFillColor(Color(*layout.color))
    c.setFont(font_name, layout.font_size)
    c.drawString(x, y, text)
    if debug_anchor is not None:
        draw_anchor(c, *debug_anchor)
    c.showPage()
    c.save()
    return packet.getvalue()


def stamp_record(
    writer: PdfWriter,
    template_bytes: bytes,
    geometry: TemplateGeometry,
    record: Record,
    font_name: str,
    layout: LayoutConfig,
    anchor_doc: tuple[float, float],
    debug: bool = False,
) -> PageObject:
    """Append a copy of the template page to *writer* and stamp *record* on it."""
    # The writer clones the page; the overlay is merged onto the clone it owns.
    page = writer.add_page(template_page(template_bytes))
    text = record.display_name
    x, y, _ = place_text(font_name, text, layout, anchor_doc)
    overlay_bytes = draw_overlay(
        page_w=geometry.width_pt,
        page_h=geometry.height_pt,
        text=text,
        font_name=font_name,
        layout=layout,
        x=x,
        y=y,
        debug_anchor=anchor_doc if debug else None,
    )
    page.merge_page(PdfReader(io.BytesIO(overlay_bytes)).pages[0])
    return page


class CardAssembler:
    """Holds one template and one record set and turns them into stamped cards.

    Each generate() call is an independent run: layout, anchor and preview
    size are passed in and nothing from a previous run is reused.
    """

    def __init__(self, on_progress: ProgressCallback | None = None) -> None:
        self.on_progress = on_progress
        self.state = AssemblerState.IDLE
        self.progress = 0
        self.template_bytes: bytes | None = None
        self.geometry: TemplateGeometry | None = None
        self.records: tuple[Record, ...] = ()

    def _ensure_idle(self) -> None:
        if self.state is AssemblerState.GENERATING:
            raise GenerationInProgressError("A generation run is already in progress.")

    def _refresh_state(self) -> None:
        if self.template_bytes is not None and self.records:
            self.state = AssemblerState.TEMPLATE_READY
        else:
            self.state = AssemblerState.IDLE

    def load_template(self, template_bytes: bytes) -> TemplateGeometry:
        self._ensure_idle()
        geometry, _ = inspect_template(template_bytes)
        self.template_bytes = template_bytes
        self.geometry = geometry
        self._refresh_state()
        return geometry

    def load_records(self, records: Iterable[Record]) -> None:
        self._ensure_idle()
        self.records = tuple(records)
        self._refresh_state()

    def load_csv(self, data: bytes | str):
        self._ensure_idle()
        # ParseFailure propagates before anything loaded earlier is replaced.
        resolved = load_records(data)
        self.load_records(resolved.records)
        return resolved

    def _advance(self, index: int, total: int) -> None:
        percent = int(100 * (index + 1) / total + 0.5)
        self.progress = max(self.progress, min(100, percent))
        if self.on_progress is not None:
            self.on_progress(self.progress)

    def generate(
        self,
        anchor: AnchorPoint,
        preview: PreviewGeometry | None,
        layout: LayoutConfig,
        font_bytes: bytes | None = None,
        basename: str = DEFAULT_BASENAME,
        debug: bool = False,
    ) -> PackagedOutput:
        self._ensure_idle()
        if self.template_bytes is None or self.geometry is None:
            raise InputMissingError("Upload a PDF template before generating.")
        if not self.records:
            raise InputMissingError("Load at least one record before generating.")

        self.state = AssemblerState.GENERATING
        self.progress = 0
        records = self.records
        anchor_doc = preview_to_document(anchor, preview, self.geometry)
        try:
            if layout.mode == "split":
                output = self._generate_split(records, layout, anchor_doc, font_bytes, basename, debug)
            else:
                output = self._generate_merged(records, layout, anchor_doc, font_bytes, basename, debug)
        except Exception as exc:
            self.state = AssemblerState.FAILED
            self.progress = 0
            if isinstance(exc, AssemblyError):
                raise
            raise AssemblyError(f"Card generation failed: {exc}") from exc

        self.state = AssemblerState.COMPLETED
        return output

    def _generate_merged(
        self,
        records: tuple[Record, ...],
        layout: LayoutConfig,
        anchor_doc: tuple[float, float],
        font_bytes: bytes | None,
        basename: str,
        debug: bool,
    ) -> PackagedOutput:
        writer = PdfWriter()
        font_name = resolve_font("merged", font_bytes)
        for idx, record in enumerate(records):
            stamp_record(writer, self.template_bytes, self.geometry, record, font_name, layout, anchor_doc, debug)
            self._advance(idx, len(records))
        return package_merged(writer, basename)

    def _generate_split(
        self,
        records: tuple[Record, ...],
        layout: LayoutConfig,
        anchor_doc: tuple[float, float],
        font_bytes: bytes | None,
        basename: str,
        debug: bool,
    ) -> PackagedOutput:
        named_buffers: list[tuple[str, bytes]] = []
        for idx, record in enumerate(records):
            writer = PdfWriter()
            font_name = resolve_font(f"split{idx + 1:04d}", font_bytes)
            stamp_record(writer, self.template_bytes, self.geometry, record, font_name, layout, anchor_doc, debug)
            named_buffers.append((record_filename(record.first_name, record.last_name), serialize_document(writer)))
            self._advance(idx, len(records))
        return package_split(named_buffers, basename)


def generate_cards(
    template_bytes: bytes,
    records: Iterable[Record],
    anchor: AnchorPoint,
    preview: PreviewGeometry | None,
    layout: LayoutConfig,
    font_bytes: bytes | None = None,
    on_progress: ProgressCallback | None = None,
    basename: str = DEFAULT_BASENAME,
    debug: bool = False,
) -> PackagedOutput:
    assembler = CardAssembler(on_progress=on_progress)
    assembler.load_template(template_bytes)
    assembler.load_records(records)
    return assembler.generate(anchor, preview, layout, font_bytes=font_bytes, basename=basename, debug=debug)


def load_layout(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Stamp one name per CSV row onto copies of a PDF template."
    )
    parser.add_argument("--template", required=True, help="Path to the template PDF.")
    parser.add_argument("--csv", dest="csv_path", required=True, help="Path to CSV file with names.")
    parser.add_argument("--output", required=True, help="Output PDF (merged) or ZIP (split) path.")
    parser.add_argument("--layout", help="Path to layout JSON (style, anchor, preview size).")
    parser.add_argument("--anchor-x", type=float, help="Anchor X in preview pixels.")
    parser.add_argument("--anchor-y", type=float, help="Anchor Y in preview pixels.")
    parser.add_argument("--preview-width", type=float, help="Rendered preview width in pixels.")
    parser.add_argument("--preview-height", type=float, help="Rendered preview height in pixels.")
    parser.add_argument("--font-size", type=int, help="Font size in points (6-72).")
    parser.add_argument("--color", help="Text color, e.g. '#1a1a1a'.")
    parser.add_argument("--align", choices=["left", "center"], help="Horizontal alignment at the anchor.")
    parser.add_argument("--vertical-align", choices=["baseline", "middle"], help="What the anchor Y marks.")
    parser.add_argument("--mode", choices=["merged", "split"], help="One multi-page PDF or a ZIP of PDFs.")
    parser.add_argument("--font-path", help="Optional TTF font to embed instead of the default.")
    parser.add_argument("--debug", action="store_true", help="Draw a cross at the anchor for calibration.")
    return parser.parse_args(argv)


def build_run_settings(args: argparse.Namespace) -> tuple[AnchorPoint, PreviewGeometry | None, LayoutConfig]:
    settings = load_layout(Path(args.layout)) if args.layout else {}

    overrides = {
        "font_size": args.font_size,
        "color": args.color,
        "align": args.align,
        "mode": args.mode,
        "vertical_align": args.vertical_align,
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})
    layout = LayoutConfig.from_mapping(settings)

    anchor_cfg = settings.get("anchor", {})
    anchor = AnchorPoint(
        x=args.anchor_x if args.anchor_x is not None else float(anchor_cfg.get("x", 100.0)),
        y=args.anchor_y if args.anchor_y is not None else float(anchor_cfg.get("y", 100.0)),
    )

    preview_cfg = settings.get("preview", {})
    width = args.preview_width if args.preview_width is not None else preview_cfg.get("width")
    height = args.preview_height if args.preview_height is not None else preview_cfg.get("height")
    preview = PreviewGeometry(float(width), float(height)) if width and height else None
    return anchor, preview, layout


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    anchor, preview, layout = build_run_settings(args)

    template_bytes = Path(args.template).read_bytes()
    resolved = load_records(Path(args.csv_path).read_bytes())
    font_bytes = Path(args.font_path).read_bytes() if args.font_path else None

    output_path = Path(args.output)
    if not output_path.suffix:
        output_path = output_path.with_suffix(".zip" if layout.mode == "split" else ".pdf")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    print(f"Generating {len(resolved)} card(s) in {layout.mode} mode...")
    result = generate_cards(
        template_bytes=template_bytes,
        records=resolved.records,
        anchor=anchor,
        preview=preview,
        layout=layout,
        font_bytes=font_bytes,
        on_progress=lambda pct: print(f"  [{pct:3d}%]"),
        basename=output_path.stem,
        debug=args.debug,
    )
    output_path.write_bytes(result.data)
    if result.entries:
        print(f"Created ZIP archive with {len(result.entries)} file(s): {output_path}")
    else:
        print(f"Wrote: {output_path}")


if __name__ == "__main__":
    main()
