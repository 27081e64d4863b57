import json
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from card_bundle import DEFAULT_BASENAME
from card_overlay import AssemblyError, CardAssembler, InputMissingError, inspect_template
from font_resolver import list_font_files
from name_records import ParseFailure, load_records
from placement import (
    MAX_FONT_SIZE,
    MIN_FONT_SIZE,
    AnchorPoint,
    LayoutConfig,
    PreviewGeometry,
    suggested_preview_geometry,
)

ROOT_DIR = Path(__file__).resolve().parent
LAYOUT_FILE = ROOT_DIR / "layout.json"
LAYOUT_STORE = ROOT_DIR / "layouts_store"
FONTS_DIR = Path(os.environ.get("PLACECARDS_FONTS_DIR") or ROOT_DIR / "fonts")
FRONTEND_DIST = ROOT_DIR / "winietki" / "dist"

app = FastAPI(title="Place Card Generator API")

# Allow the Vite dev server to reach the API during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Card-Count"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "message": "Request validation failed.",
            "detail": exc.errors(),
        },
    )


class AnchorModel(BaseModel):
    x: float = Field(100.0, ge=0)
    y: float = Field(100.0, ge=0)


class PreviewModel(BaseModel):
    width: float = Field(0.0, ge=0)
    height: float = Field(0.0, ge=0)


class LayoutSnapshot(BaseModel):
    font_size: int = Field(12, ge=MIN_FONT_SIZE, le=MAX_FONT_SIZE)
    color: str = "#000000"
    align: str = Field("center", pattern="^(left|center)$")
    mode: str = Field("merged", pattern="^(merged|split)$")
    vertical_align: str = Field("baseline", pattern="^(baseline|middle)$")
    anchor: AnchorModel = AnchorModel()
    preview: PreviewModel = PreviewModel()


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def resolve_layout_path(name: str | None) -> tuple[Path, str]:
    if not name:
        return LAYOUT_FILE, "layout.json"
    cleaned = Path(name).name
    if not cleaned.lower().endswith(".json"):
        cleaned = f"{cleaned}.json"
    if cleaned == "layout.json":
        return LAYOUT_FILE, cleaned
    return LAYOUT_STORE / cleaned, cleaned


@app.get("/api/layouts/list")
def list_layouts() -> dict[str, list[str]]:
    files: list[str] = []
    if LAYOUT_FILE.exists():
        files.append("layout.json")
    if LAYOUT_STORE.exists():
        files.extend(path.name for path in LAYOUT_STORE.glob("*.json"))
    return {"files": sorted(set(files))}


@app.get("/api/layouts")
def get_layout(name: str | None = None) -> Any:
    target_path, display_name = resolve_layout_path(name)
    if not target_path.exists():
        if name is None:
            return LayoutSnapshot().model_dump()
        raise HTTPException(status_code=404, detail=f"Layout file not found: {display_name}")
    try:
        return json.loads(target_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=500, detail=f"Invalid JSON in {display_name}: {exc}") from exc


@app.post("/api/layouts")
def save_layout(payload: LayoutSnapshot, name: str | None = None) -> dict[str, str]:
    try:
        LayoutConfig.from_mapping(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    target_path, display_name = resolve_layout_path(name)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    target_path.write_text(json.dumps(payload.model_dump(), indent=2), encoding="utf-8")
    return {"message": f"Saved: {display_name}"}


@app.post("/api/template-info")
def template_info(template: UploadFile = File(...)) -> dict[str, Any]:
    try:
        geometry, page_count = inspect_template(template.file.read())
    except AssemblyError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    preview = suggested_preview_geometry(geometry)
    return {
        "page_count": page_count,
        "page_size_points": [geometry.width_pt, geometry.height_pt],
        "suggested_preview_px": [preview.width_px, preview.height_px],
    }


@app.post("/api/records")
def parse_records(csv_file: UploadFile = File(...)) -> dict[str, Any]:
    try:
        resolved = load_records(csv_file.file.read())
    except ParseFailure as exc:
        raise HTTPException(status_code=400, detail=f"Error parsing CSV file: {exc}") from exc
    return {
        "count": len(resolved),
        "positional": resolved.positional,
        "columns": {
            "first_name": resolved.first_name_column,
            "last_name": resolved.last_name_column,
            "title": resolved.title_column,
        },
        "records": [
            {
                "first_name": r.first_name,
                "last_name": r.last_name,
                "title": r.title,
                "display_name": r.display_name,
            }
            for r in resolved.records
        ],
    }


def read_stored_font(font_name: str) -> bytes:
    for font_file in list_font_files(FONTS_DIR):
        if font_file.stem == font_name or font_file.name == font_name:
            return font_file.read_bytes()
    raise HTTPException(status_code=404, detail=f"Font '{font_name}' not found.")


def attachment_header(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename)}"


@app.post("/api/generate")
def generate_cards_upload(
    template: UploadFile | None = File(None),
    csv_file: UploadFile | None = File(None),
    font_file: UploadFile | None = File(None),
    font_name: str | None = Form(None),
    anchor_x: float = Form(100.0),
    anchor_y: float = Form(100.0),
    preview_width: float = Form(0.0),
    preview_height: float = Form(0.0),
    font_size: int = Form(12),
    color: str = Form("#000000"),
    align: str = Form("center"),
    vertical_align: str = Form("baseline"),
    mode: str = Form("merged"),
    basename: str = Form(DEFAULT_BASENAME),
    debug: bool = Form(False),
) -> Response:
    if template is None or csv_file is None:
        raise HTTPException(status_code=400, detail="Both a PDF template and a CSV file are required.")

    try:
        layout = LayoutConfig.from_mapping(
            {
                "font_size": font_size,
                "color": color,
                "align": align,
                "mode": mode,
                "vertical_align": vertical_align,
            }
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    font_bytes: bytes | None = None
    if font_file is not None:
        font_bytes = font_file.file.read() or None
    elif font_name:
        font_bytes = read_stored_font(font_name)

    assembler = CardAssembler(on_progress=lambda pct: print(f"  [{pct:3d}%] {basename}"))
    try:
        assembler.load_template(template.file.read())
        assembler.load_csv(csv_file.file.read())
        result = assembler.generate(
            anchor=AnchorPoint(anchor_x, anchor_y),
            preview=PreviewGeometry(preview_width, preview_height),
            layout=layout,
            font_bytes=font_bytes,
            basename=Path(basename).name or DEFAULT_BASENAME,
            debug=debug,
        )
    except ParseFailure as exc:
        raise HTTPException(status_code=400, detail=f"Error parsing CSV file: {exc}") from exc
    except InputMissingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AssemblyError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": "Card generation failed.", "error": str(exc)},
        ) from exc

    return Response(
        content=result.data,
        media_type=result.media_type,
        headers={
            "Content-Disposition": attachment_header(result.filename),
            "X-Card-Count": str(len(assembler.records)),
        },
    )


@app.get("/api/list-custom-fonts")
def list_custom_fonts() -> dict[str, Any]:
    fonts = [
        {
            "name": font_file.stem,
            "file": font_file.name,
            "type": font_file.suffix.lower().lstrip("."),
            "size_kb": round(font_file.stat().st_size / 1024, 2),
        }
        for font_file in list_font_files(FONTS_DIR)
    ]
    return {
        "fonts_directory_exists": FONTS_DIR.exists(),
        "custom_fonts": fonts,
        "count": len(fonts),
    }


@app.post("/api/upload-font")
def upload_font(font_file: UploadFile = File(...)) -> dict[str, Any]:
    filename = font_file.filename or "unknown.ttf"
    file_ext = Path(filename).suffix.lower()
    if file_ext not in (".ttf", ".otf"):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Only .ttf and .otf files are allowed. Got: {file_ext or 'none'}",
        )

    safe_filename = "".join(c for c in Path(filename).name if c.isalnum() or c in ".-_ ")
    target_path = FONTS_DIR / safe_filename
    if target_path.exists():
        raise HTTPException(
            status_code=409,
            detail=f"Font file '{safe_filename}' already exists. Delete it first or rename your file.",
        )

    FONTS_DIR.mkdir(parents=True, exist_ok=True)
    contents = font_file.file.read()
    target_path.write_bytes(contents)
    return {
        "message": "Font uploaded successfully",
        "filename": safe_filename,
        "font_name": target_path.stem,
        "size_kb": round(len(contents) / 1024, 2),
    }


if FRONTEND_DIST.exists():
    assets_dir = FRONTEND_DIST / "assets"
    if assets_dir.exists():
        app.mount("/assets", StaticFiles(directory=assets_dir), name="assets")

    @app.get("/", include_in_schema=False)
    def root() -> FileResponse:
        return FileResponse(FRONTEND_DIST / "index.html")

    @app.get("/{path:path}", include_in_schema=False)
    def spa_fallback(path: str) -> FileResponse:
        target = FRONTEND_DIST / path
        if target.exists() and target.is_file():
            return FileResponse(target)
        return FileResponse(FRONTEND_DIST / "index.html")
else:

    @app.get("/", include_in_schema=False)
    def no_frontend() -> PlainTextResponse:
        return PlainTextResponse(
            "Frontend build not found. Run `cd winietki && npm install && npm run build`.",
            status_code=503,
        )
