from __future__ import annotations

import pytest
from reportlab.pdfbase import pdfmetrics

import font_resolver
from font_resolver import (
    BASE14_FALLBACK,
    FontEmbedError,
    bundled_font_path,
    default_font_path,
    embed_font,
    font_name_for,
    list_font_files,
    resolve_font,
)


def test_user_font_is_embedded(vera_font, capsys):
    name = resolve_font("doc1", vera_font)

    assert name == font_name_for(vera_font)
    assert name.startswith("CardFont-")
    assert pdfmetrics.stringWidth("Jan Kowalski", name, 12) > 0
    assert "[WARN]" not in capsys.readouterr().out


def test_same_font_content_shares_one_registration(vera_font):
    first = resolve_font("split0001", vera_font)
    before = len(pdfmetrics.getRegisteredFontNames())
    second = resolve_font("split0002", vera_font)

    assert first == second
    assert len(pdfmetrics.getRegisteredFontNames()) == before


def test_registry_stays_flat_across_many_documents(vera_font):
    resolve_font("warmup", vera_font)
    resolve_font("warmup")
    before = len(pdfmetrics.getRegisteredFontNames())

    for run in range(3):
        for idx in range(20):
            resolve_font(f"run{run}-split{idx + 1:04d}", vera_font)
            resolve_font(f"run{run}-default{idx + 1:04d}")

    assert len(pdfmetrics.getRegisteredFontNames()) == before


def test_corrupt_user_font_falls_back_to_default(capsys):
    name = resolve_font("doc2", b"definitely not a font")

    assert name == font_name_for(font_resolver.read_default_font())
    assert "[WARN] Custom font rejected: Cannot embed font for document doc2" in capsys.readouterr().out


def test_no_user_font_embeds_default():
    assert resolve_font("doc3") == font_name_for(default_font_path().read_bytes())


def test_missing_default_font_falls_back_to_base14(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("PLACECARDS_DEFAULT_FONT", str(tmp_path / "missing.ttf"))

    assert resolve_font("doc4", b"junk") == BASE14_FALLBACK
    assert "Falling back to 'Helvetica'" in capsys.readouterr().out


def test_default_font_prefers_first_existing_candidate(monkeypatch, tmp_path, vera_font):
    present = tmp_path / "DejaVuSans.ttf"
    present.write_bytes(vera_font)
    monkeypatch.delenv("PLACECARDS_DEFAULT_FONT", raising=False)
    monkeypatch.setattr(font_resolver, "DEFAULT_FONT_CANDIDATES", (tmp_path / "absent.ttf", present))

    assert default_font_path() == present


def test_default_font_without_candidates_uses_bundled_vera(monkeypatch, tmp_path):
    monkeypatch.delenv("PLACECARDS_DEFAULT_FONT", raising=False)
    monkeypatch.setattr(font_resolver, "DEFAULT_FONT_CANDIDATES", (tmp_path / "absent.ttf",))

    assert default_font_path() == bundled_font_path()
    assert default_font_path().name == "Vera.ttf"


def test_env_override_beats_candidates(monkeypatch, tmp_path):
    chosen = tmp_path / "Ubuntu-R.ttf"
    monkeypatch.setenv("PLACECARDS_DEFAULT_FONT", str(chosen))

    assert default_font_path() == chosen


def test_embed_font_raises_on_garbage():
    with pytest.raises(FontEmbedError):
        embed_font(b"\x00\x01\x00\x00garbage", "doc5")


def test_list_font_files_filters_extensions(tmp_path):
    (tmp_path / "b.otf").write_bytes(b"x")
    (tmp_path / "A.ttf").write_bytes(b"x")
    (tmp_path / "notes.txt").write_text("x")

    assert [p.name for p in list_font_files(tmp_path)] == ["A.ttf", "b.otf"]
    assert list_font_files(tmp_path / "nope") == []
