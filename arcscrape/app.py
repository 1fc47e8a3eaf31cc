import argparse
from concurrent.futures import wait
from pathlib import Path

from tqdm import tqdm

from . import __version__
from .cleanup import cleanup_stale_outputs
from .collector import FORMATS
from .config import Settings
from .env import load_env
from .errors import EnumerationError
from .job import JobState, ScrapeJob
from .logger import get_logger
from .storage import list_job_records, save_job_record

POLL_SECONDS = 0.5
CLEANUP_WAIT_SECONDS = 10.0


def _load_settings(args: argparse.Namespace) -> Settings:
    try:
        return Settings.from_env().override(
            output_dir=getattr(args, "output", None),
            max_workers=getattr(args, "workers", None),
            request_timeout=getattr(args, "timeout", None),
            output_format=getattr(args, "format", None),
            db_path=getattr(args, "db", None),
        )
    except ValueError as e:
        raise SystemExit(f"Invalid configuration: {e}")


def _wait_with_progress(job: ScrapeJob, future) -> None:
    """Poll the job's live status into a progress bar until it settles."""
    bar = None
    try:
        while not future.done():
            wait([future], timeout=POLL_SECONDS)
            status = job.status()
            if bar is None and status.state not in (JobState.CREATED, JobState.ENUMERATING_IDS):
                bar = tqdm(total=status.total, unit="batch", desc=status.layer_name or "layer")
            if bar is not None:
                bar.n = status.done
                bar.set_postfix_str(status.state.value)
                bar.refresh()
    except KeyboardInterrupt:
        print("Stopping job...")
        job.stop()
        wait([future])
    finally:
        if bar is not None:
            bar.close()


def cmd_scrape(args: argparse.Namespace) -> None:
    url = args.url
    if not url.startswith(("http://", "https://")):
        raise SystemExit("Provide a full layer URL, e.g. https://host/arcgis/rest/services/Name/FeatureServer/0")
    if url.rstrip("/").endswith("/query"):
        raise SystemExit("Pass the layer URL without the trailing /query")

    settings = _load_settings(args)
    if settings.output_format not in FORMATS:
        raise SystemExit(f"Unsupported format. Use one of: {', '.join(sorted(FORMATS))}")
    logger = get_logger()
    logger.set_level(settings.log_level)

    job = ScrapeJob(url, settings=settings)
    future = job.submit()
    _wait_with_progress(job, future)

    try:
        status = future.result()
    except EnumerationError as e:
        save_job_record(job.status(), settings.db_path)
        raise SystemExit(f"Couldn't start job: {e}")

    if job.collector is not None:
        # chunk deletion runs on a daemon thread; let it finish before exit
        job.collector.wait_for_cleanup(CLEANUP_WAIT_SECONDS)

    save_job_record(status, settings.db_path)
    logger.log_metrics_summary()

    print(f"Layer: {status.layer_name}")
    print(f"Batches: {status.done}/{status.total}")
    if status.output:
        print(f"Output: {status.output}")
    if status.failed:
        print(f"Finished with errors: {status.fail_message}")
        raise SystemExit(2)


def cmd_history(args: argparse.Namespace) -> None:
    settings = _load_settings(args)
    records = list_job_records(settings.db_path, limit=args.limit)
    if not records:
        print("No scrape runs recorded.")
        return
    print(f"Last {len(records)} runs in {settings.db_path}:\n")
    for r in records:
        flag = "FAILED" if r["failed"] else "ok"
        print(f"#{r['id']} {r['layer_name'] or '?'} [{r['state']}, {flag}]")
        print(f"  URL: {r['layer_url']}")
        print(f"  Batches: {r['done']}/{r['total']}")
        if r["fail_message"]:
            print(f"  Error: {r['fail_message']}")
        if r["output_path"]:
            print(f"  Output: {r['output_path']}")
        print(f"  Started: {r['created_at']:%Y-%m-%d %H:%M:%S}")
        print(f"  Finished: {r['finished_at']:%Y-%m-%d %H:%M:%S}")
        print()


def cmd_cleanup(args: argparse.Namespace) -> None:
    settings = _load_settings(args)
    before, after = cleanup_stale_outputs(Path(settings.db_path), days=args.days)
    print(f"Done. removed={before - after} remaining={after}")


def main():
    # Load .env if present (ARCSCRAPE_* settings)
    load_env()
    parser = argparse.ArgumentParser(prog="arcscrape", description="Download every feature of an ArcGIS layer")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    scr = subparsers.add_parser("scrape", help="Scrape a layer, convert it and zip the result")
    scr.add_argument("--url", required=True, help="Layer URL, e.g. .../FeatureServer/0 (no /query)")
    scr.add_argument("--output", help="Output folder (default: $ARCSCRAPE_OUTPUT_DIR or output)")
    scr.add_argument("--format", choices=sorted(FORMATS), help="Converted format (default: shapefile)")
    scr.add_argument("--workers", type=int, help="Concurrent batch requests (default: 8)")
    scr.add_argument("--timeout", type=float, help="Per-request timeout in seconds (default: 60)")
    scr.add_argument("--db", help="Job history database (default: data/jobs.db)")
    scr.set_defaults(func=cmd_scrape)

    hist = subparsers.add_parser("history", help="List recent scrape runs")
    hist.add_argument("--db", help="Job history database (default: data/jobs.db)")
    hist.add_argument("--limit", type=int, default=20, help="Number of runs to show (default: 20)")
    hist.set_defaults(func=cmd_history)

    cln = subparsers.add_parser("cleanup", help="Delete runs and archives older than N days")
    cln.add_argument("--db", help="Job history database (default: data/jobs.db)")
    cln.add_argument("--days", type=int, default=7, help="Keep runs newer than this many days (default: 7)")
    cln.set_defaults(func=cmd_cleanup)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
