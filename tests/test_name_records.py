from __future__ import annotations

import pytest

from name_records import (
    FIRST_NAME_COLUMNS,
    ParseFailure,
    Record,
    compose_display_name,
    load_records,
    match_column,
    parse_csv_table,
    resolve_records,
)


def test_positional_fallback_when_no_name_header_matches():
    headers = ["Name", "Surname", "Degree"]
    rows = [["Jan", "Kowalski", "mgr"], ["Anna", "Nowak", "dr"]]

    resolved = resolve_records(rows, headers)

    assert resolved.positional is True
    assert list(resolved) == [
        Record(first_name="Jan", last_name="Kowalski", title="mgr"),
        Record(first_name="Anna", last_name="Nowak", title="dr"),
    ]


def test_named_headers_are_used_regardless_of_position():
    headers = ["Email", "Nazwisko", "Tytuł", "Imię"]
    rows = [["jan@example.com", "Kowalski", "prof.", "Jan"]]

    resolved = resolve_records(rows, headers)

    assert resolved.positional is False
    assert resolved.first_name_column == "Imię"
    assert resolved.last_name_column == "Nazwisko"
    assert resolved.records == (Record("Jan", "Kowalski", "prof."),)


def test_missing_title_column_yields_empty_titles():
    headers = ["first_name", "last_name"]
    rows = [["Jan", "Kowalski"]]

    resolved = resolve_records(rows, headers)

    assert resolved.title_column is None
    assert resolved.records[0].title == ""


def test_only_last_name_header_still_disables_positional_fallback():
    headers = ["Nazwisko", "Something"]
    rows = [["Nowak", "x"]]

    resolved = resolve_records(rows, headers)

    assert resolved.positional is False
    assert resolved.records == (Record("", "Nowak", ""),)


def test_rows_without_any_name_are_dropped_and_values_trimmed():
    headers = ["firstName", "lastName", "title"]
    rows = [
        ["  Jan ", " Kowalski", " dr "],
        ["   ", "", "mgr"],
        ["", "  Nowak  ", ""],
    ]

    resolved = resolve_records(rows, headers)

    assert resolved.records == (
        Record("Jan", "Kowalski", "dr"),
        Record("", "Nowak", ""),
    )


def test_resolving_twice_gives_identical_records():
    headers = ["Name", "Surname"]
    rows = [["Jan", "Kowalski"], ["Anna", "Nowak"]]

    assert resolve_records(rows, headers) == resolve_records(rows, headers)


def test_match_column_is_case_sensitive_and_ordered():
    assert match_column(["FIRSTNAME", "firstname"], FIRST_NAME_COLUMNS) is None
    assert match_column(["Imię", "first_name"], FIRST_NAME_COLUMNS) == "first_name"


def test_display_name_skips_empty_parts():
    assert Record("Jan", "Kowalski", "dr").display_name == "dr Jan Kowalski"
    assert Record("", "Nowak").display_name == "Nowak"
    assert compose_display_name("", "Anna", "") == "Anna"


def test_parse_semicolon_file_with_bom():
    data = "\ufeffImię;Nazwisko;Tytuł\nJan;Kowalski;dr\nAnna;Nowak;mgr\nPiotr;Zieliński;\n".encode("utf-8")

    headers, rows = parse_csv_table(data)

    assert headers == ["Imię", "Nazwisko", "Tytuł"]
    assert rows[1] == ["Anna", "Nowak", "mgr"]
    assert rows[2][2] == ""


def test_parse_skips_blank_lines(polish_csv):
    headers, rows = parse_csv_table(polish_csv + b"\n,,\n")

    assert headers == ["Tytuł", "Imię", "Nazwisko"]
    assert len(rows) == 3


def test_positional_fallback_reads_from_parsed_file():
    resolved = load_records("Name,Surname,Degree\nJan,Kowalski,mgr\nAnna,Nowak,dr\n")

    assert resolved.positional is True
    assert [r.display_name for r in resolved] == ["mgr Jan Kowalski", "dr Anna Nowak"]


def test_short_rows_read_as_empty_cells():
    resolved = load_records("firstName,lastName,title\nJan,Kowalski\n")

    assert resolved.records == (Record("Jan", "Kowalski", ""),)


def test_positional_fallback_with_blank_headers():
    resolved = load_records(",,\nJan,Kowalski,mgr\nAnna,Nowak,dr\n")

    assert resolved.positional is True
    assert resolved.records == (
        Record("Jan", "Kowalski", "mgr"),
        Record("Anna", "Nowak", "dr"),
    )


def test_positional_fallback_with_duplicate_headers():
    resolved = load_records("Name,Name,Degree\nJan,Kowalski,mgr\n")

    assert resolved.records == (Record("Jan", "Kowalski", "mgr"),)


def test_duplicate_named_header_uses_leftmost_column():
    resolved = load_records("firstName,lastName,lastName\nJan,Kowalski,Nowak\n")

    assert resolved.positional is False
    assert resolved.records == (Record("Jan", "Kowalski", ""),)


def test_surplus_cells_are_kept_in_parsed_rows():
    headers, rows = parse_csv_table("a,b\nJan,Kowalski,mgr,extra\n")

    assert headers == ["a", "b"]
    assert rows == [["Jan", "Kowalski", "mgr", "extra"]]


@pytest.mark.parametrize(
    "payload",
    [
        b"\xff\xfe\x00broken",
        b"",
        b"   \n  ",
        b'firstName,lastName\n"Jan"x,Kowalski\n',
    ],
)
def test_unreadable_input_raises_parse_failure(payload):
    with pytest.raises(ParseFailure):
        parse_csv_table(payload)
