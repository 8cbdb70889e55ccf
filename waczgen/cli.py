"""CLI entrypoint for submitting, running and maintaining archive requests."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any

from .config import AppConfig, load_config
from .constants import DEFAULT_CRAWL_DELAY_MS, DEFAULT_MAX_DEPTH, DEFAULT_MAX_PAGES
from .errors import RequestNotFoundError
from .service import WaczService
from .types import ArchiveResult, CrawlRequest, RequestStatus


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl websites and package them as WACZ web archives.",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML application config.",
    )
    parser.add_argument(
        "--output_dir",
        type=Path,
        default=None,
        help="Directory for finished .wacz files and logs.",
    )
    parser.add_argument(
        "--store_dir",
        type=Path,
        default=None,
        help="Directory holding request and page records.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("archive", "Submit a request and process it immediately."),
        ("submit", "Submit a request without processing it."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("url", help="Seed URL (https:// is assumed when missing).")
        sub.add_argument("--title", required=True)
        sub.add_argument("--description", default=None)
        sub.add_argument("--max_depth", type=int, default=DEFAULT_MAX_DEPTH)
        sub.add_argument("--max_pages", type=int, default=DEFAULT_MAX_PAGES)
        sub.add_argument(
            "--crawl_delay_ms",
            type=int,
            default=DEFAULT_CRAWL_DELAY_MS,
            help="Delay between fetches; 0 disables it.",
        )
        sub.add_argument("--user_agent", default=None)
        sub.add_argument("--follow_external_links", action="store_true")
        sub.add_argument("--no_images", action="store_true")
        sub.add_argument("--no_css", action="store_true")
        sub.add_argument("--no_js", action="store_true")
        sub.add_argument("--exclude_url", action="append", default=[])
        sub.add_argument(
            "--exclude_pattern",
            action="append",
            default=[],
            help="Glob pattern of URLs to skip (repeatable).",
        )
        sub.add_argument("--progress", action="store_true", help="Show a progress bar.")

    run = subparsers.add_parser("run", help="Process one submitted request.")
    run.add_argument("request_id")
    run.add_argument("--progress", action="store_true", help="Show a progress bar.")

    worker = subparsers.add_parser("worker", help="Process pending requests oldest first.")
    worker.add_argument("--limit", type=int, default=None)

    status = subparsers.add_parser("status", help="Show one request and its progress.")
    status.add_argument("request_id")

    listing = subparsers.add_parser("list", help="List requests.")
    listing.add_argument(
        "--status",
        type=str,
        choices=[item.value for item in RequestStatus],
        default=None,
    )

    delete = subparsers.add_parser("delete", help="Delete a request and its archive.")
    delete.add_argument("request_id")

    reset = subparsers.add_parser("reset-stuck", help="Return stuck requests to pending.")
    reset.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Stuck threshold in minutes (default comes from config).",
    )
    reset.add_argument("--dry_run", action="store_true")
    reset.add_argument(
        "--force",
        action="store_true",
        help="Reset every processing request regardless of its lease.",
    )

    subparsers.add_parser("stats", help="Count requests per status.")

    cleanup = subparsers.add_parser("cleanup", help="Delete old finished requests.")
    cleanup.add_argument("--days", type=int, default=30)

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AppConfig:
    config = load_config(args.config) if args.config is not None else AppConfig()
    payload = config.to_dict()

    if args.output_dir is not None:
        payload["output_dir"] = str(args.output_dir)
    if args.store_dir is not None:
        payload["store_dir"] = str(args.store_dir)
    if getattr(args, "progress", False):
        payload["show_progress"] = True

    return AppConfig.from_dict(payload)


def request_payload(args: argparse.Namespace) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "url": args.url,
        "title": args.title,
        "description": args.description,
        "max_depth": args.max_depth,
        "max_pages": args.max_pages,
        "crawl_delay_ms": args.crawl_delay_ms,
        "options": {
            "follow_external_links": args.follow_external_links,
            "include_images": not args.no_images,
            "include_css": not args.no_css,
            "include_js": not args.no_js,
            "exclude_urls": list(args.exclude_url),
            "exclude_patterns": list(args.exclude_pattern),
        },
    }
    if args.user_agent:
        payload["user_agent"] = args.user_agent
    return payload


def setup_logging(output_dir: Path, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "waczgen.log"

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # Connection pool chatter drowns out per-page lines at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_result(result: ArchiveResult) -> None:
    print("\n=== Archive Complete ===" if result.success else "\n=== Archive Failed ===")
    print(f"request_id: {result.request_id}")
    print(f"pages: {result.page_count}")
    if result.success:
        print(f"file: {result.file_path}")
        print(f"size: {result.file_size}")
    else:
        print(f"error: {result.error_message}")


def print_request(request: CrawlRequest, progress: dict[str, Any] | None = None) -> None:
    record = request.to_json()
    for key in (
        "id",
        "url",
        "title",
        "status",
        "created_at",
        "started_at",
        "heartbeat_at",
        "completed_at",
        "error_message",
        "file_path",
        "file_size",
    ):
        if record.get(key) is not None:
            print(f"{key}: {record[key]}")
    if progress is not None:
        print(
            f"progress: {progress['pages_crawled']}/{progress['max_pages']} "
            f"({progress['percent']}%), ok={progress['successful_pages']} "
            f"errors={progress['error_pages']}"
        )


def run_command(args: argparse.Namespace, service: WaczService) -> int:
    command = args.command

    if command in {"archive", "submit"}:
        request_id = service.submit(request_payload(args))
        if command == "submit":
            print(request_id)
            return 0
        result = service.run_crawl_and_archive(request_id)
        print_result(result)
        return 0 if result.success else 1

    if command == "run":
        result = service.run_crawl_and_archive(args.request_id)
        print_result(result)
        return 0 if result.success else 1

    if command == "worker":
        results = service.process_pending(args.limit)
        for result in results:
            print_result(result)
        logging.info("Processed %d request(s)", len(results))
        return 0 if all(result.success for result in results) else 1

    if command == "status":
        print_request(service.get_status(args.request_id), service.get_progress(args.request_id))
        return 0

    if command == "list":
        for request in service.list_by_status(args.status):
            print(f"{request.id}  {request.status.value:<10}  {request.url}  {request.title}")
        return 0

    if command == "delete":
        service.delete(args.request_id)
        print(f"deleted: {args.request_id}")
        return 0

    if command == "reset-stuck":
        stuck = service.reset_stuck_requests(
            args.timeout,
            dry_run=args.dry_run,
            force=args.force,
        )
        verb = "would reset" if args.dry_run else "reset"
        for request in stuck:
            print(f"{verb}: {request.id} (lease {request.lease_started_at})")
        print(f"{len(stuck)} request(s) {verb}")
        return 0

    if command == "stats":
        print(json.dumps(service.get_statistics(), indent=2, sort_keys=True))
        return 0

    if command == "cleanup":
        removed = service.cleanup_old_requests(args.days)
        print(f"removed {len(removed)} request(s)")
        return 0

    raise ValueError(f"Unsupported command: {command}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = build_config(args)
    except Exception as exc:
        logging.basicConfig(level=logging.INFO)
        logging.error("Failed to build config: %s", exc)
        return 2

    setup_logging(config.output_dir, verbose=args.verbose)

    try:
        with WaczService(config) as service:
            return run_command(args, service)
    except KeyboardInterrupt:
        logging.error("Interrupted by user")
        return 130
    except (ValueError, RequestNotFoundError) as exc:
        logging.error("%s", exc)
        return 2
    except Exception:
        logging.exception("Command %s failed", args.command)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
