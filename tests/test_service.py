from __future__ import annotations

from datetime import timedelta
import json
from pathlib import Path
import threading
import zipfile
from unittest import mock

import pytest

from conftest import example_routes, make_session

from waczgen.archive import verify_digest
from waczgen.errors import InvalidRequestError, PersistenceError, RequestNotFoundError
from waczgen.fetcher import Fetcher
from waczgen.service import ZERO_PAGES_MESSAGE, WaczService
from waczgen.storage import RequestStore
from waczgen.types import CrawlRequest, RequestStatus, utc_now

REQUIRED_PATHS = {
    "datapackage.json",
    "datapackage-digest.json",
    "archive/data.warc.gz",
    "indexes/index.cdx",
    "pages/pages.jsonl",
}


@pytest.fixture
def make_service(app_config):
    def _factory(session) -> WaczService:
        return WaczService(
            app_config,
            store=RequestStore(app_config.store_dir),
            fetcher=Fetcher(app_config, session=session),
            sleep=mock.Mock(),
        )

    return _factory


def _submit(service: WaczService, url: str = "https://example.com/") -> str:
    return service.submit(
        {"url": url, "title": "Example", "maxDepth": 1, "maxPages": 5, "crawlDelay": 0}
    )


def test_end_to_end_archive(make_service, site_session, app_config):
    service = make_service(site_session)
    request_id = _submit(service)

    result = service.run_crawl_and_archive(request_id)

    assert result.success, result.error_message
    assert result.page_count == 5
    request = service.get_status(request_id)
    assert request.status == RequestStatus.COMPLETED
    assert request.completed_at is not None
    assert request.file_path == result.file_path
    assert request.file_size == result.file_size

    with zipfile.ZipFile(result.file_path) as archive:
        assert archive.testzip() is None
        assert REQUIRED_PATHS <= set(archive.namelist())
        pages = [
            json.loads(line)
            for line in archive.read("pages/pages.jsonl").decode("utf-8").splitlines()
        ]
        digest = json.loads(archive.read("datapackage-digest.json"))

    assert pages[0]["format"] == "json-pages-1.0"
    assert any(record.get("url") == "https://example.com/" for record in pages[1:])
    assert verify_digest(digest)
    assert service.store.count_pages(request_id) == 5
    assert not list(app_config.temp_root.glob(f"wacz_{request_id}_*"))


def test_unreachable_host_fails_cleanly(make_service, app_config):
    service = make_service(make_session({}))
    request_id = _submit(service, "https://unreachable.invalid/")

    result = service.run_crawl_and_archive(request_id)

    assert not result.success
    request = service.get_status(request_id)
    assert request.status == RequestStatus.FAILED
    assert request.error_message
    assert request.error_message.startswith(ZERO_PAGES_MESSAGE + " (ConnectionError")
    assert request.completed_at is not None
    assert not list(app_config.output_dir.glob("*.wacz"))
    assert not list(app_config.temp_root.glob(f"wacz_{request_id}_*"))


def test_archive_stage_failure_marks_request_failed(make_service, site_session, app_config):
    app_config.output_dir.parent.mkdir(parents=True, exist_ok=True)
    app_config.output_dir.write_text("occupied")
    service = make_service(site_session)
    request_id = _submit(service)

    result = service.run_crawl_and_archive(request_id)

    assert not result.success
    request = service.get_status(request_id)
    assert request.status == RequestStatus.FAILED
    assert "Failed to create archive" in request.error_message
    assert not list(app_config.temp_root.glob(f"wacz_{request_id}_*"))


def test_submit_validates_payload(make_service, site_session):
    service = make_service(site_session)
    with pytest.raises(InvalidRequestError):
        service.submit({"url": "https://example.com", "title": "Example", "maxPages": 0})
    assert service.list_by_status() == []


def test_finished_requests_are_not_reprocessed(make_service, site_session):
    service = make_service(site_session)
    request_id = _submit(service)
    service.run_crawl_and_archive(request_id)
    calls = site_session.get.call_count

    result = service.run_crawl_and_archive(request_id)

    assert not result.success
    assert "not processable" in result.error_message
    assert site_session.get.call_count == calls
    assert service.get_status(request_id).status == RequestStatus.COMPLETED


def test_live_lease_blocks_reclaim(make_service, site_session):
    service = make_service(site_session)
    request_id = _submit(service)
    request = service.get_status(request_id)
    request.status = RequestStatus.PROCESSING
    request.started_at = utc_now()
    request.heartbeat_at = utc_now()
    service.store.save_request(request)

    result = service.run_crawl_and_archive(request_id)

    assert not result.success
    site_session.get.assert_not_called()
    assert service.get_status(request_id).status == RequestStatus.PROCESSING


def _processing(service: WaczService, minutes_ago: float | None, title: str = "Example") -> str:
    request = CrawlRequest(url="https://example.com/", title=title, max_pages=5, crawl_delay_ms=0)
    request.status = RequestStatus.PROCESSING
    if minutes_ago is not None:
        request.started_at = utc_now() - timedelta(minutes=minutes_ago)
    service.store.add_request(request)
    return request.id


def test_stuck_request_detection_and_reset(make_service, site_session):
    service = make_service(site_session)
    old = _processing(service, 45)
    young = _processing(service, 5)
    never = _processing(service, None)

    stuck = {request.id for request in service.find_stuck_requests(30)}
    assert stuck == {old, never}

    preview = service.reset_stuck_requests(30, dry_run=True)
    assert {request.id for request in preview} == {old, never}
    assert service.get_status(old).status == RequestStatus.PROCESSING

    service.reset_stuck_requests(30)
    reset = service.get_status(old)
    assert reset.status == RequestStatus.PENDING
    assert reset.started_at is None and reset.heartbeat_at is None
    assert service.get_status(young).status == RequestStatus.PROCESSING

    forced = service.reset_stuck_requests(30, force=True)
    assert [request.id for request in forced] == [young]
    assert service.get_status(young).status == RequestStatus.PENDING


def test_heartbeat_extends_the_lease(make_service, site_session):
    service = make_service(site_session)
    request_id = _processing(service, 45)
    request = service.get_status(request_id)
    request.heartbeat_at = utc_now() - timedelta(minutes=1)
    service.store.save_request(request)

    assert service.find_stuck_requests(30) == []


def test_expired_lease_is_reclaimed(make_service, site_session):
    service = make_service(site_session)
    request_id = _processing(service, 45)

    result = service.run_crawl_and_archive(request_id)

    assert result.success
    assert service.get_status(request_id).status == RequestStatus.COMPLETED


def test_progress_statistics_and_delete(make_service, site_session):
    service = make_service(site_session)
    done = _submit(service)
    pending = _submit(service)
    result = service.run_crawl_and_archive(done)

    progress = service.get_progress(done)
    assert progress["pages_crawled"] == 5
    assert progress["max_pages"] == 5
    assert progress["percent"] == 100.0
    assert progress["successful_pages"] + progress["error_pages"] == 5

    stats = service.get_statistics()
    assert stats["completed"] == 1
    assert stats["pending"] == 1
    assert stats["total"] == 2
    assert [r.id for r in service.list_by_status("pending")] == [pending]

    assert service.delete(done)
    assert not Path(result.file_path).exists()
    with pytest.raises(RequestNotFoundError):
        service.get_status(done)


def test_cleanup_old_requests(make_service, site_session):
    service = make_service(site_session)
    old = _submit(service)
    service.run_crawl_and_archive(old)
    request = service.get_status(old)
    request.completed_at = utc_now() - timedelta(days=40)
    service.store.save_request(request)
    recent = _submit(service)
    service.run_crawl_and_archive(recent)
    pending = _submit(service)

    removed = service.cleanup_old_requests(30)

    assert removed == [old]
    assert service.store.has_request(recent)
    assert service.store.has_request(pending)


def test_process_pending_runs_oldest_first(make_service, site_session):
    service = make_service(site_session)
    first = _submit(service)
    second = _submit(service)
    later = service.get_status(second)
    later.created_at = service.get_status(first).created_at + timedelta(seconds=1)
    service.store.save_request(later)

    results = service.process_pending(limit=1)

    assert [result.request_id for result in results] == [first]
    assert service.get_status(second).status == RequestStatus.PENDING
    assert [result.request_id for result in service.process_pending()] == [second]


def test_concurrent_runs_of_one_request_crawl_it_once(app_config):
    sessions = [make_session(example_routes()), make_session(example_routes())]
    services = [
        WaczService(
            app_config,
            store=RequestStore(app_config.store_dir),
            fetcher=Fetcher(app_config, session=session),
            sleep=mock.Mock(),
        )
        for session in sessions
    ]
    request_id = _submit(services[0])
    barrier = threading.Barrier(len(services))
    results = []

    def _run(service: WaczService) -> None:
        barrier.wait()
        results.append(service.run_crawl_and_archive(request_id))

    threads = [threading.Thread(target=_run, args=(service,)) for service in services]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(result.success for result in results) == [False, True]
    loser = next(result for result in results if not result.success)
    assert "not processable" in loser.error_message
    assert sorted(session.get.call_count == 0 for session in sessions) == [False, True]
    assert services[0].get_status(request_id).status == RequestStatus.COMPLETED
    assert len(list(app_config.output_dir.glob("*.wacz"))) == 1


def test_claim_failure_leaves_request_pending(make_service, site_session):
    service = make_service(site_session)
    request_id = _submit(service)

    with mock.patch.object(
        service.store, "clear_pages", side_effect=PersistenceError("disk full")
    ):
        result = service.run_crawl_and_archive(request_id)

    assert not result.success
    assert "Could not claim" in result.error_message
    site_session.get.assert_not_called()
    assert service.get_status(request_id).status == RequestStatus.PENDING


def test_archive_removed_when_completion_cannot_be_saved(make_service, site_session, app_config):
    service = make_service(site_session)
    request_id = _submit(service)
    save_request = service.store.save_request

    def _save(request):
        if request.status == RequestStatus.COMPLETED:
            raise PersistenceError("store unavailable")
        save_request(request)

    with mock.patch.object(service.store, "save_request", side_effect=_save):
        result = service.run_crawl_and_archive(request_id)

    assert not result.success
    request = service.get_status(request_id)
    assert request.status == RequestStatus.FAILED
    assert request.file_path is None
    assert not list(app_config.output_dir.glob("*.wacz"))


def test_submit_rejects_uncrawlable_seed(make_service, site_session):
    service = make_service(site_session)
    with pytest.raises(InvalidRequestError):
        service.submit({"url": "https://example.com/a b", "title": "Example"})
    assert service.list_by_status() == []
