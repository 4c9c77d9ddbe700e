from __future__ import annotations

import json
import logging

import pytest
from uvicorn.config import LOGGING_CONFIG

import chapterize.cli as cli
from chapterize.library import document_id_for_text, load_document
from chapterize.logging_utils import PACKAGE_LOGGER, build_uvicorn_log_config, set_debug_logging


def _write_book(tmp_path, name: str = "book.txt"):
    text = "".join(f"第{idx}章 标题{idx}\n" + "内容。" * 100 + "\n" for idx in range(1, 4))
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path, text


def test_segment_json_output(tmp_path, capsys) -> None:
    path, text = _write_book(tmp_path)
    store = tmp_path / "store"

    exit_code = cli.main(["segment", str(path), "--store", str(store), "--json"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["document_id"] == document_id_for_text(text)
    assert payload["title"] == "book"
    assert [c["title"] for c in payload["chapters"]] == ["第1章 标题1", "第2章 标题2", "第3章 标题3"]


def test_show_and_clear_use_the_store(tmp_path, capsys) -> None:
    path, text = _write_book(tmp_path)
    store = tmp_path / "store"
    cli.main(["segment", str(path), "--store", str(store), "--json"])
    capsys.readouterr()
    document_id = document_id_for_text(text)

    assert cli.main(["show", document_id, "--store", str(store), "--json"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert len(shown) == 3

    assert cli.main(["clear", document_id, "--store", str(store)]) == 0
    assert "Cleared" in capsys.readouterr().out
    assert cli.main(["show", document_id, "--store", str(store)]) == 1


def test_segment_table_output(tmp_path, capsys) -> None:
    path, _ = _write_book(tmp_path)
    assert cli.main(["segment", str(path)]) == 0
    out = capsys.readouterr().out
    assert "第2章 标题2" in out


def test_segment_directory_of_books(tmp_path, capsys) -> None:
    books = tmp_path / "books"
    books.mkdir()
    _write_book(books, "a.txt")
    (books / "b.txt").write_text("plain prose only\n", encoding="utf-8")
    (books / "skip.bin").write_bytes(b"\x00")

    assert cli.main(["segment", str(books), "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert [entry["title"] for entry in payload] == ["a", "b"]
    assert payload[1]["fallback"] is True


def test_missing_file_exits_nonzero(tmp_path, capsys) -> None:
    assert cli.main(["segment", str(tmp_path / "missing.txt"), "--json"]) == 1


def test_invalid_numeric_flag_exits(tmp_path) -> None:
    path, _ = _write_book(tmp_path)
    with pytest.raises(SystemExit):
        cli.main(["segment", str(path), "--part-chars", "0"])


def test_version_flag(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--version"])
    assert excinfo.value.code == 0
    assert "chapterize" in capsys.readouterr().out


def test_serve_builds_app_and_runs_uvicorn(monkeypatch, tmp_path) -> None:
    calls: dict[str, object] = {}

    def _fake_run(app, **kwargs):
        calls["app"] = app
        calls.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", _fake_run)
    assert cli.main(["serve", "--store", str(tmp_path), "--port", "9999"]) == 0
    assert calls["port"] == 9999
    assert PACKAGE_LOGGER in calls["log_config"]["loggers"]
    calls["app"].state.manager.shutdown()


def test_load_document_decodes_gb18030_and_crlf(tmp_path) -> None:
    path = tmp_path / "gbk.txt"
    path.write_bytes("第一章 开始\r\n内容\r\n".encode("gb18030"))
    document = load_document(path)
    assert document.content == "第一章 开始\n内容\n"
    assert document.title == "gbk"


def test_uvicorn_log_config_is_a_copy() -> None:
    config = build_uvicorn_log_config(debug=True)
    assert config["loggers"][PACKAGE_LOGGER]["level"] == "DEBUG"
    assert PACKAGE_LOGGER not in LOGGING_CONFIG.get("loggers", {})


def test_debug_logging_installs_one_handler() -> None:
    logger = set_debug_logging(True)
    set_debug_logging(True)
    rich_handlers = [h for h in logger.handlers if h.get_name() == "chapterize-rich"]
    assert len(rich_handlers) == 1
    assert logger.level == logging.DEBUG
    set_debug_logging(False)
    assert logger.level == logging.WARNING
