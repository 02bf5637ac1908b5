"""Entry point: ``python -m rolesift``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time

from rolesift.ai.providers import ModelGateway
from rolesift.browser.base import BrowserSession, DetachedBrowser
from rolesift.browser.playwright_adapter import PlaywrightAdapter
from rolesift.events import FanOutEventSink, LoggingEventSink
from rolesift.exceptions import RoleSiftError
from rolesift.orchestrator import SitePipeline
from rolesift.reporting.console import ConsoleEventSink, print_banner, print_run_report
from rolesift.scheduler import build_trigger, run_on_schedule
from rolesift.settings import AppSettings, SiteSettings
from rolesift.sources.registry import get_extractor, get_source

logger = logging.getLogger("rolesift")


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rolesift", description="Scrape job boards and triage roles with AI.")
    parser.add_argument("--config", default=None, help="Path to settings.yaml (default: project root).")
    parser.add_argument(
        "--site",
        action="append",
        default=[],
        help="Site key to run; repeatable. Defaults to every configured site.",
    )
    parser.add_argument("--resume", default="", help="Session id to resume from its staged roles.")
    parser.add_argument("--keywords", default="", help="Comma-separated keywords overriding the site's list.")
    parser.add_argument(
        "--skip-batch-pause",
        action="store_true",
        help="Run keyword batches back-to-back.",
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Keep running on the schedule_cron pattern instead of once.",
    )
    return parser.parse_args(argv)


def _browser_for(settings: AppSettings, site: SiteSettings) -> BrowserSession:
    needs_browser = get_source(site.source).needs_browser or get_extractor(site.extractor_kind).needs_browser
    if not needs_browser:
        return DetachedBrowser()
    return PlaywrightAdapter(
        headless=settings.headless,
        user_data_dir=settings.user_data_dir,
        navigation_timeout_ms=settings.navigation_timeout_ms,
    )


async def _async_main(args: argparse.Namespace) -> int:
    settings = AppSettings.from_yaml(args.config)
    keys = [k.strip() for value in args.site for k in value.split(",") if k.strip()]
    sites = [settings.site(key) for key in keys] if keys else list(settings.sites)
    if not sites:
        logger.error("No sites configured.")
        return 1
    if args.resume and len(sites) != 1:
        logger.error("--resume needs exactly one --site.")
        return 2
    keywords = [k.strip() for k in args.keywords.split(",") if k.strip()] or None

    print_banner()
    sink = FanOutEventSink(ConsoleEventSink(), LoggingEventSink())
    gateway = ModelGateway.from_settings(settings.ai)
    try:
        for site in sites:
            started = time.monotonic()
            pipeline = SitePipeline(
                settings,
                site,
                gateway,
                browser=_browser_for(settings, site),
                sink=sink,
            )
            metrics = await pipeline.run(
                resume_session_id=args.resume or None,
                keywords=keywords,
                skip_batch_pause=args.skip_batch_pause,
            )
            print_run_report(metrics)
            logger.info("[%s] Finished in %.1fs (%s).", site.key, time.monotonic() - started, metrics.outcome)
    finally:
        await gateway.aclose()
    return 0


def _schedule(args: argparse.Namespace) -> int:
    if args.resume:
        logger.error("--resume cannot be combined with --schedule.")
        return 2
    settings = AppSettings.from_yaml(args.config)
    trigger = build_trigger(settings.schedule_cron, settings.timezone)
    logger.info("Scheduling runs with cron pattern %s (%s).", settings.schedule_cron, settings.timezone)
    run_on_schedule(lambda: asyncio.run(_async_main(args)), trigger, tz_name=settings.timezone)
    return 0


def main(argv: list[str] | None = None) -> None:
    _configure_logging()
    args = _parse_args(argv)
    try:
        code = _schedule(args) if args.schedule else asyncio.run(_async_main(args))
    except KeyboardInterrupt:
        logging.info("Interrupted by user.")
        sys.exit(130)
    except RoleSiftError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
