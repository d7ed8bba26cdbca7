"""End-to-end builds of small books into real EPUB archives."""

import logging
import os
import xml.etree.ElementTree as etree

import pytest

from conftest import read_archive
from mdepub.assets import PLACEHOLDER_PNG, digest
from mdepub.book import Book, Chapter, Separator
from mdepub.builders import epub as epub_module
from mdepub.builders.epub import EpubBuilder
from mdepub.config import BookConfig
from mdepub.errors import ArchiveError, AssetOpenError, CssOpenError
from mdepub.preprocess import include_files
from mdepub.render import ChapterRenderer
from mdepub.stylesheet import DEFAULT_CSS

DC = "{http://purl.org/dc/elements/1.1/}"


def _build(tmp_path, chapters, config=None, **kwargs):
    book = Book(str(tmp_path), "src", chapters)
    if config is None:
        config = {"title": "DummyBook"}
    config = BookConfig.from_dict(config, str(tmp_path))
    builder = EpubBuilder(config, book, output_dir=str(tmp_path / "out"), **kwargs)
    return builder, builder.build()


def _opf(archive):
    return etree.fromstring(archive["EPUB/content.opf"])


def _metas(opf):
    return {
        el.get("property") or el.get("name"): el.text or el.get("content")
        for el in opf.iter()
        if el.tag.endswith("meta")
    }


def test_dummy_book(tmp_path, offline, capsys):
    chapter = Chapter("Chapter 1", "# Chapter 1\n\nHello \"world\".\n", (1,), "chapter_1.md")
    builder, path = _build(tmp_path, [chapter])

    assert path == str(tmp_path / "out" / "dummybook.epub")
    assert os.path.isfile(path)
    assert f"✓ {path}" in capsys.readouterr().out

    archive = read_archive(path)
    assert archive["mimetype"] == b"application/epub+zip"
    assert archive["EPUB/stylesheet.css"] == DEFAULT_CSS
    assert archive["EPUB/chapter_1.html"] == ChapterRenderer().render(chapter).encode("utf-8")
    assert b"chapter_1.html" in archive["EPUB/nav.xhtml"]
    assert "EPUB/toc.ncx" in archive

    opf = _opf(archive)
    assert opf.find(f".//{DC}title").text == "DummyBook"
    assert opf.find(f".//{DC}language").text == "en"
    assert _metas(opf)["generator"] == "mdepub"


def test_metadata(tmp_path, offline):
    config = {
        "title": "Series Book",
        "authors": ["Ann", "Bob"],
        "description": "About things",
        "language": "de",
        "series": "Things",
        "series_number": 3,
    }
    _builder, path = _build(tmp_path, [Chapter("One", "x", (1,), "one.md")], config)
    opf = _opf(read_archive(path))

    assert opf.find(f".//{DC}creator").text == "Ann, Bob"
    assert opf.find(f".//{DC}description").text == "About things"
    assert opf.find(f".//{DC}language").text == "de"
    metas = _metas(opf)
    assert metas["belongs-to-collection"] == "Things"
    assert metas["group-position"] == "3"


def test_identifier_is_stable(tmp_path):
    config = BookConfig.from_dict({"title": "T", "authors": ["A"]}, str(tmp_path))
    book = Book(str(tmp_path), "src", [])
    first = EpubBuilder(config, book).identifier()
    assert first.startswith("urn:uuid:")
    assert EpubBuilder(config, book).identifier() == first


def test_missing_title_warns(tmp_path, offline, caplog):
    with caplog.at_level(logging.WARNING, logger="mdepub.builders.epub"):
        _builder, path = _build(tmp_path, [Chapter("One", "x", (1,), "one.md")], config={})
    assert "No title" in caplog.text
    assert path.endswith("book.epub")


def test_nested_chapters_and_drafts(tmp_path, offline):
    chapters = [
        Separator("Part One"),
        Chapter("One", "# One", (1,), "one.md", [
            Chapter("Deep", "# Deep", (1, 1), "part/deep.md"),
            Chapter("Draft", "", (1, 2), None),
        ]),
    ]
    builder, path = _build(tmp_path, chapters)
    archive = read_archive(path)

    assert b'href="../stylesheet.css"' in archive["EPUB/part/deep.html"]
    assert [doc.file_name for doc in builder.chapters] == ["one.html", "part/deep.html"]
    assert [doc.level for doc in builder.chapters] == [0, 1]
    assert [doc.title for doc in builder.chapters] == ["1. One", "1.1. Deep"]
    assert not any("Draft" in name for name in archive)

    (section, children), = builder.toc
    assert section.title == "1. One"
    assert section.href == "one.html"
    assert [child.file_name for child in children] == ["part/deep.html"]


def test_shared_asset_embedded_once(tmp_path, make_file, offline):
    make_file("src/img/a.png", b"PNG")
    chapters = [
        Chapter("One", "![a](img/a.png)", (1,), "one.md"),
        Chapter("Two", "![a](../img/a.png)", (2,), "part/two.md"),
    ]
    _builder, path = _build(tmp_path, chapters)
    archive = read_archive(path)

    assert [name for name in archive if name.endswith(".png")] == ["EPUB/img/a.png"]
    assert archive["EPUB/img/a.png"] == b"PNG"
    assert b'src="img/a.png"' in archive["EPUB/one.html"]
    assert b'src="../img/a.png"' in archive["EPUB/part/two.html"]


def test_unreachable_remote_image_uses_placeholder(tmp_path, offline):
    url = "https://unreachable.invalid/a.png"
    chapters = [Chapter("One", f"![a]({url})", (1,), "one.md")]
    _builder, path = _build(tmp_path, chapters)
    archive = read_archive(path)

    name = digest(url) + ".png"
    assert archive[f"EPUB/{name}"] == PLACEHOLDER_PNG
    assert f'src="{name}"'.encode() in archive["EPUB/one.html"]
    assert offline.calls[0][0] == url


def test_missing_local_image_leaves_no_output(tmp_path, offline):
    chapters = [Chapter("One", "![gone](gone.png)", (1,), "one.md")]
    with pytest.raises(AssetOpenError):
        _build(tmp_path, chapters)
    assert not os.path.exists(tmp_path / "out")


def test_missing_stylesheet_leaves_no_output(tmp_path, offline):
    chapters = [Chapter("One", "text", (1,), "one.md")]
    with pytest.raises(CssOpenError):
        _build(tmp_path, chapters, {"epub": {"additional_css": ["nope.css"]}})
    assert not os.path.exists(tmp_path / "out")


def test_cover_css_and_resources(tmp_path, make_file, offline):
    make_file("src/cover.jpg", b"JPEG")
    make_file("theme.css", "p { color: blue; }\n")
    make_file("src/fonts/serif.ttf", b"TTF")
    config = {
        "title": "Dressed",
        "epub": {
            "cover_image": "cover.jpg",
            "additional_css": ["theme.css"],
            "additional_resources": ["fonts/serif.ttf"],
        },
    }
    builder, path = _build(tmp_path, [Chapter("One", "text", (1,), "one.md")], config)
    archive = read_archive(path)

    assert archive["EPUB/cover.jpg"] == b"JPEG"
    assert builder.archive.get_item_with_id("cover-img").media_type == "image/jpeg"
    assert archive["EPUB/stylesheet.css"] == DEFAULT_CSS + b"p { color: blue; }\n"
    assert archive["EPUB/fonts/serif.ttf"] == b"TTF"
    assert _metas(_opf(archive))["cover"] == "cover-img"


def test_custom_template(tmp_path, make_file, offline):
    make_file("templates/chapter.html", "<html><title>{{ title }}</title>{{ body }}</html>")
    config = {"title": "T", "epub": {"template": "templates/chapter.html"}}
    _builder, path = _build(tmp_path, [Chapter("One", "hi", (1,), "one.md")], config)
    assert read_archive(path)["EPUB/one.html"] == b"<html><title>One</title><p>hi</p></html>"


def test_missing_template(tmp_path):
    config = BookConfig.from_dict({"epub": {"template": "none.html"}}, str(tmp_path))
    with pytest.raises(AssetOpenError):
        EpubBuilder(config, Book(str(tmp_path), "src", []))


def test_preprocessors_run_in_order_on_copies(tmp_path, offline):
    def first(chapter, book):
        chapter.content += " first"

    def second(chapter, book):
        chapter.content += " second"

    chapter = Chapter("One", "start", (1,), "one.md")
    _builder, path = _build(tmp_path, [chapter], preprocessors=[first, second])

    assert b"<p>start first second</p>" in read_archive(path)["EPUB/one.html"]
    assert chapter.content == "start"


def test_resource_referenced_in_content_is_embedded_once(tmp_path, make_file, offline):
    make_file("src/img/a.png", b"PNG")
    config = {"title": "T", "epub": {"additional_resources": ["img/a.png"]}}
    _builder, path = _build(tmp_path, [Chapter("One", "![a](img/a.png)", (1,), "one.md")], config)
    archive = read_archive(path)

    assert [name for name in archive if name.endswith(".png")] == ["EPUB/img/a.png"]
    assert b'src="img/a.png"' in archive["EPUB/one.html"]


def test_cover_shown_inline_is_embedded_once(tmp_path, make_file, offline):
    make_file("src/cover.jpg", b"JPEG")
    chapters = [
        Chapter("Title page", "![cover](cover.jpg)", (1,), "title.md"),
        Chapter("Deep", "![cover](../cover.jpg)", (2,), "part/deep.md"),
    ]
    config = {"title": "T", "epub": {"cover_image": "cover.jpg"}}
    _builder, path = _build(tmp_path, chapters, config)
    archive = read_archive(path)

    assert [name for name in archive if name.endswith(".jpg")] == ["EPUB/cover.jpg"]
    assert b'src="cover.jpg"' in archive["EPUB/title.html"]
    assert b'src="../cover.jpg"' in archive["EPUB/part/deep.html"]


def test_included_images_are_embedded(tmp_path, make_file, offline):
    make_file("src/img/a.png", b"PNG")
    make_file("src/part.md", "![a](img/a.png)\n")
    chapter = Chapter("One", "{{#include part.md}}\n", (1,), "one.md")
    _builder, path = _build(tmp_path, [chapter], preprocessors=[include_files])
    archive = read_archive(path)

    assert archive["EPUB/img/a.png"] == b"PNG"
    assert b'src="img/a.png"' in archive["EPUB/one.html"]
    assert chapter.content == "{{#include part.md}}\n"


def test_included_missing_image_is_fatal(tmp_path, make_file, offline):
    make_file("src/part.md", "![a](img/gone.png)\n")
    chapter = Chapter("One", "{{#include part.md}}\n", (1,), "one.md")
    with pytest.raises(AssetOpenError):
        _build(tmp_path, [chapter], preprocessors=[include_files])
    assert not os.path.exists(tmp_path / "out")


def test_preprocessors_run_once_per_chapter(tmp_path, offline):
    seen = []

    def record(chapter, book):
        seen.append(chapter.path)

    chapters = [Chapter("One", "x", (1,), "one.md", [Chapter("Sub", "y", (1, 1), "sub.md")])]
    _build(tmp_path, chapters, preprocessors=[record])
    assert seen == ["one.md", "sub.md"]


def test_same_name_for_cover_and_resource_is_an_error(tmp_path, make_file, offline):
    make_file("src/cover.jpg", b"JPEG")
    config = {
        "title": "T",
        "epub": {"cover_image": "cover.jpg", "additional_resources": ["cover.jpg"]},
    }
    with pytest.raises(ArchiveError) as excinfo:
        _build(tmp_path, [Chapter("One", "text", (1,), "one.md")], config)
    assert "cover.jpg" in str(excinfo.value)
    assert not os.path.exists(tmp_path / "out")


def test_validate_option(tmp_path, offline, monkeypatch):
    seen = []
    monkeypatch.setattr(epub_module, "validate_epub", lambda path, verbose: seen.append(path))
    _builder, path = _build(tmp_path, [Chapter("One", "x", (1,), "one.md")], validate=True)
    assert seen == [path]
