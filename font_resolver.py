import hashlib
import io
import os
from pathlib import Path

import reportlab
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont


# Last resort when even the bundled TTF cannot be read; base-14, never embedded.
BASE14_FALLBACK = "Helvetica"

# Tried in order before reportlab's Vera.ttf, which lacks Latin Extended-A (ą, ł, ś ...).
DEFAULT_FONT_CANDIDATES: tuple[Path, ...] = (
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans.ttf"),
    Path("/Library/Fonts/DejaVuSans.ttf"),
    Path("C:/Windows/Fonts/DejaVuSans.ttf"),
)

_FONT_NAME_PREFIX = "CardFont"


class FontEmbedError(RuntimeError):
    """Raised when a font buffer cannot be turned into a usable TTF font."""


def bundled_font_path() -> Path:
    return Path(reportlab.__file__).resolve().parent / "fonts" / "Vera.ttf"


def default_font_path() -> Path:
    override = os.environ.get("PLACECARDS_DEFAULT_FONT", "").strip()
    if override:
        return Path(override)
    for candidate in DEFAULT_FONT_CANDIDATES:
        if candidate.is_file():
            return candidate
    return bundled_font_path()


def read_default_font() -> bytes:
    return default_font_path().read_bytes()


def font_name_for(font_bytes: bytes) -> str:
    digest = hashlib.sha256(font_bytes).hexdigest()[:16]
    return f"{_FONT_NAME_PREFIX}-{digest}"


def embed_font(font_bytes: bytes, document_id: str) -> str:
    """Make *font_bytes* available to the canvas of one output document.

    Registration is keyed by content, so the same font resolved for many
    documents occupies one slot in reportlab's process-wide registry. Each
    canvas still embeds its own subset when it is saved.
    """
    font_name = font_name_for(font_bytes)
    if font_name in pdfmetrics.getRegisteredFontNames():
        return font_name
    try:
        pdfmetrics.registerFont(TTFont(font_name, io.BytesIO(font_bytes)))
    except Exception as exc:
        raise FontEmbedError(f"Cannot embed font for document {document_id}: {exc}") from exc
    return font_name


def resolve_font(document_id: str, user_font: bytes | None = None) -> str:
    """Return a font name for one output document.

    A user font is tried first; any embedding error falls back to the default
    font, then to base-14 Helvetica.
    """
    if user_font:
        try:
            return embed_font(user_font, document_id)
        except FontEmbedError as exc:
            print(f"[WARN] Custom font rejected: {exc}. Using default font.")

    try:
        return embed_font(read_default_font(), document_id)
    except (OSError, FontEmbedError) as exc:
        print(f"[WARN] Default font unavailable ({exc}). Falling back to '{BASE14_FALLBACK}'.")
        return BASE14_FALLBACK


def list_font_files(fonts_dir: Path) -> list[Path]:
    if not fonts_dir.exists():
        return []
    return sorted(
        [p for p in fonts_dir.iterdir() if p.suffix.lower() in (".ttf", ".otf") and p.is_file()],
        key=lambda p: p.stem.lower(),
    )
