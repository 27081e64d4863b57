import io
import re
import zipfile
from dataclasses import dataclass

from pypdf import PdfWriter


PDF_MEDIA_TYPE = "application/pdf"
ZIP_MEDIA_TYPE = "application/zip"
DEFAULT_BASENAME = "winietki"

_UNSAFE_CHARS = re.compile(r"[\\/:\*\?\"<>\|]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class PackagedOutput:
    filename: str
    data: bytes
    media_type: str
    entries: tuple[str, ...] = ()


def record_filename(first_name: str, last_name: str, ext: str = "pdf") -> str:
    stem = f"{first_name}_{last_name}"
    stem = _WHITESPACE.sub("_", stem)
    stem = _UNSAFE_CHARS.sub("_", stem)
    return f"{stem}.{ext}"


def serialize_document(writer: PdfWriter) -> bytes:
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def package_merged(writer: PdfWriter, basename: str = DEFAULT_BASENAME) -> PackagedOutput:
    return PackagedOutput(
        filename=f"{basename}.pdf",
        data=serialize_document(writer),
        media_type=PDF_MEDIA_TYPE,
    )


def package_split(named_buffers: list[tuple[str, bytes]], basename: str = DEFAULT_BASENAME) -> PackagedOutput:
    # Same name twice keeps the later buffer at the earlier position.
    entries: dict[str, bytes] = {}
    for name, data in named_buffers:
        entries[name] = data

    archive = io.BytesIO()
    with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zipf:
        for name, data in entries.items():
            zipf.writestr(name, data)

    return PackagedOutput(
        filename=f"{basename}.zip",
        data=archive.getvalue(),
        media_type=ZIP_MEDIA_TYPE,
        entries=tuple(entries),
    )
