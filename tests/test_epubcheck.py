import subprocess
from unittest import mock

from mdepub import epubcheck
from mdepub.epubcheck import find_epubcheck, parse_output, validate_epub


OUTPUT_OK = """\
Validating using EPUB version 3.3 rules.
No errors or warnings detected.
Messages: 0 fatals / 0 errors / 0 warnings / 0 infos

EPUBCheck completed
"""

OUTPUT_BAD = """\
Validating using EPUB version 3.3 rules.
ERROR(RSC-005): book.epub/EPUB/chapter_1.html(5,3): Error while parsing file
WARNING(OPF-053): book.epub/EPUB/content.opf(7,50): Date value "" does not follow recommended syntax
Messages: 0 fatals / 1 error / 1 warning / 0 infos
"""


def test_parse_clean_output():
    result = parse_output(0, OUTPUT_OK)
    assert result.valid
    assert (result.fatals, result.errors, result.warnings) == (0, 0, 0)
    assert result.messages == []


def test_parse_errors_and_warnings():
    result = parse_output(1, OUTPUT_BAD)
    assert not result.valid
    assert (result.fatals, result.errors, result.warnings) == (0, 1, 1)
    assert len(result.messages) == 2
    assert result.messages[0].startswith("ERROR(RSC-005)")


def test_parse_without_summary_uses_returncode():
    assert not parse_output(2, "java: command failed").valid
    assert parse_output(0, "").valid


def test_find_epubcheck_from_env(tmp_path, monkeypatch):
    jar = tmp_path / "epubcheck.jar"
    jar.write_bytes(b"")
    monkeypatch.setenv("EPUBCHECK_JAR", str(jar))
    assert find_epubcheck() == ("jar", str(jar))


def test_validate_skipped_when_unavailable(monkeypatch):
    monkeypatch.setattr(epubcheck, "find_epubcheck", lambda: (None, None))
    assert validate_epub("book.epub") is None


def test_validate_runs_command(monkeypatch, capsys):
    monkeypatch.setattr(epubcheck, "find_epubcheck", lambda: ("cmd", "epubcheck"))
    completed = subprocess.CompletedProcess(["epubcheck"], 1, stdout=OUTPUT_BAD, stderr="")

    with mock.patch.object(epubcheck.subprocess, "run", return_value=completed) as run:
        result = validate_epub("book.epub")

    run.assert_called_once_with(["epubcheck", "book.epub"], capture_output=True, text=True)
    assert result.errors == 1
    out = capsys.readouterr().out
    assert "✗ epubcheck: 0 fatal, 1 error(s), 1 warning(s)" in out
    assert "ERROR(RSC-005)" in out


def test_validate_without_java(monkeypatch):
    monkeypatch.setattr(epubcheck, "find_epubcheck", lambda: ("jar", "/opt/epubcheck.jar"))
    with mock.patch.object(epubcheck.subprocess, "run", side_effect=FileNotFoundError("java")):
        assert validate_epub("book.epub") is None
