import csv
import io
from dataclasses import dataclass
from typing import Sequence


FIRST_NAME_COLUMNS: tuple[str, ...] = ("firstName", "first_name", "First Name", "Imię", "Imie")
LAST_NAME_COLUMNS: tuple[str, ...] = ("lastName", "last_name", "Last Name", "Nazwisko")
TITLE_COLUMNS: tuple[str, ...] = ("title", "Title", "Tytuł", "Tytul")

_SNIFF_DELIMITERS = ",;\t|"
_SNIFF_SAMPLE_SIZE = 4096


class ParseFailure(ValueError):
    """Raised when tabular input cannot be read at all."""


@dataclass(frozen=True)
class Record:
    first_name: str
    last_name: str
    title: str = ""

    @property
    def display_name(self) -> str:
        return compose_display_name(self.title, self.first_name, self.last_name)


@dataclass(frozen=True)
class ResolvedRecords:
    records: tuple[Record, ...]
    positional: bool
    first_name_column: str | None = None
    last_name_column: str | None = None
    title_column: str | None = None

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


def compose_display_name(*parts: str) -> str:
    return " ".join(part for part in parts if part)


def match_column(headers: Sequence[str], variants: Sequence[str]) -> str | None:
    """Return the first accepted variant present in *headers*, or None.

    Matching is exact and case-sensitive; the variant order decides which
    column wins when a file carries more than one spelling.
    """
    present = set(headers)
    for variant in variants:
        if variant in present:
            return variant
    return None


def _cell(row: Sequence[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value).strip()


def _column_index(headers: Sequence[str], column: str | None) -> int | None:
    # Duplicate header names resolve to the leftmost column.
    return list(headers).index(column) if column is not None else None


def resolve_records(rows: Sequence[Sequence[str]], headers: Sequence[str]) -> ResolvedRecords:
    """Turn raw cell rows into records.

    Header names only pick columns when a first- or last-name variant is
    present; otherwise the first three cells of each row are read as first
    name, last name and title whatever the header text says.
    """
    first_col = match_column(headers, FIRST_NAME_COLUMNS)
    last_col = match_column(headers, LAST_NAME_COLUMNS)
    title_col = match_column(headers, TITLE_COLUMNS)
    positional = first_col is None and last_col is None

    if positional:
        first_idx, last_idx, title_idx = 0, 1, 2
    else:
        first_idx = _column_index(headers, first_col)
        last_idx = _column_index(headers, last_col)
        title_idx = _column_index(headers, title_col)

    records: list[Record] = []
    for row in rows:
        first = _cell(row, first_idx)
        last = _cell(row, last_idx)
        title = _cell(row, title_idx)
        if not first and not last:
            continue
        records.append(Record(first_name=first, last_name=last, title=title))

    if positional:
        return ResolvedRecords(records=tuple(records), positional=True)
    return ResolvedRecords(
        records=tuple(records),
        positional=False,
        first_name_column=first_col,
        last_name_column=last_col,
        title_column=title_col,
    )


def _sniff_delimiter(text: str) -> str:
    sample = text[:_SNIFF_SAMPLE_SIZE]
    try:
        return csv.Sniffer().sniff(sample, delimiters=_SNIFF_DELIMITERS).delimiter
    except csv.Error:
        return ","


def parse_csv_table(data: bytes | str) -> tuple[list[str], list[list[str]]]:
    """Read delimited text with a header row into (headers, rows).

    Rows are kept as raw cell lists so blank or repeated header names never
    hide a column. Lines with no non-blank cell are skipped.
    """
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseFailure(f"CSV is not valid UTF-8: {exc}") from exc
    else:
        text = data.lstrip("\ufeff")

    if not text.strip():
        raise ParseFailure("CSV is empty.")

    delimiter = _sniff_delimiter(text)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    headers: list[str] = []
    rows: list[list[str]] = []
    try:
        for row in reader:
            if not headers:
                if row:
                    headers = [h.strip() for h in row]
                continue
            if any(cell.strip() for cell in row):
                rows.append(row)
    except csv.Error as exc:
        raise ParseFailure(f"Malformed CSV at line {reader.line_num}: {exc}") from exc

    if not headers:
        raise ParseFailure("CSV has no header row.")
    return headers, rows


def load_records(data: bytes | str) -> ResolvedRecords:
    headers, rows = parse_csv_table(data)
    resolved = resolve_records(rows, headers)
    mode = "positional columns" if resolved.positional else "named columns"
    print(f"[INFO] Resolved {len(resolved)} record(s) from {len(rows)} row(s) using {mode}.")
    return resolved
