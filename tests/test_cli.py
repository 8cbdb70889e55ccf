from __future__ import annotations

import json
import logging

import pytest
import requests

from conftest import example_routes, make_session

from waczgen import cli
from waczgen.storage import RequestStore
from waczgen.types import RequestStatus


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def dirs(tmp_path):
    return ["--output_dir", str(tmp_path / "out"), "--store_dir", str(tmp_path / "store")]


@pytest.fixture
def offline_site(monkeypatch):
    session = make_session(example_routes())
    monkeypatch.setattr(requests, "Session", lambda: session)
    return session


def test_submit_list_status_and_stats(dirs, tmp_path, capsys):
    assert cli.main(dirs + ["submit", "example.com", "--title", "Example", "--max_pages", "3"]) == 0
    request_id = capsys.readouterr().out.strip().splitlines()[-1]

    store = RequestStore(tmp_path / "store")
    request = store.get_request(request_id)
    assert request.url == "https://example.com"
    assert request.max_pages == 3
    assert request.status == RequestStatus.PENDING

    assert cli.main(dirs + ["list", "--status", "pending"]) == 0
    assert request_id in capsys.readouterr().out

    assert cli.main(dirs + ["status", request_id]) == 0
    out = capsys.readouterr().out
    assert "status: pending" in out
    assert "progress: 0/3" in out

    assert cli.main(dirs + ["stats"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["pending"] == 1
    assert stats["total"] == 1

    assert (tmp_path / "out" / "logs" / "waczgen.log").exists()


def test_archive_command_runs_end_to_end(dirs, tmp_path, offline_site, capsys):
    code = cli.main(
        dirs
        + [
            "archive",
            "https://example.com/",
            "--title",
            "Example",
            "--max_depth",
            "1",
            "--max_pages",
            "5",
            "--crawl_delay_ms",
            "0",
        ]
    )

    assert code == 0
    out = capsys.readouterr().out
    assert "=== Archive Complete ===" in out
    assert list((tmp_path / "out").glob("wacz_Example_*.wacz"))


def test_worker_processes_pending(dirs, offline_site, capsys):
    cli.main(
        dirs
        + [
            "submit",
            "https://example.com/",
            "--title",
            "Example",
            "--max_pages",
            "2",
            "--crawl_delay_ms",
            "0",
        ]
    )
    capsys.readouterr()

    assert cli.main(dirs + ["worker"]) == 0
    assert "=== Archive Complete ===" in capsys.readouterr().out


def test_failed_archive_returns_one(dirs, monkeypatch, capsys):
    monkeypatch.setattr(requests, "Session", lambda: make_session({}))
    args = ["archive", "https://unreachable.invalid/", "--title", "Nowhere", "--crawl_delay_ms", "0"]
    code = cli.main(dirs + args)
    assert code == 1
    assert "=== Archive Failed ===" in capsys.readouterr().out


def test_bad_request_and_unknown_id_return_two(dirs):
    assert cli.main(dirs + ["submit", "https://example.com", "--title", "ab"]) == 2
    assert cli.main(dirs + ["status", "deadbeef"]) == 2
    assert cli.main(dirs + ["cleanup", "--days", "-1"]) == 2


def test_bad_config_returns_two(tmp_path):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"unknown_key": 1}), encoding="utf-8")
    assert cli.main(["--config", str(config), "stats"]) == 2


def test_reset_stuck_dry_run(dirs, tmp_path, capsys):
    cli.main(dirs + ["submit", "https://example.com", "--title", "Example"])
    request_id = capsys.readouterr().out.strip().splitlines()[-1]
    store = RequestStore(tmp_path / "store")
    request = store.get_request(request_id)
    request.status = RequestStatus.PROCESSING
    store.save_request(request)

    assert cli.main(dirs + ["reset-stuck", "--dry_run"]) == 0
    assert "1 request(s) would reset" in capsys.readouterr().out
    assert store.get_request(request_id).status == RequestStatus.PROCESSING

    assert cli.main(dirs + ["reset-stuck"]) == 0
    assert store.get_request(request_id).status == RequestStatus.PENDING


def test_delete_command(dirs, tmp_path, capsys):
    cli.main(dirs + ["submit", "https://example.com", "--title", "Example"])
    request_id = capsys.readouterr().out.strip().splitlines()[-1]

    assert cli.main(dirs + ["delete", request_id]) == 0
    assert not RequestStore(tmp_path / "store").has_request(request_id)
