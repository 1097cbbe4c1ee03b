#!/usr/bin/env python3
"""
Main entry point for the gemini crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from gemcrawl import __version__
from gemcrawl.crawler.scheduler import CrawlerScheduler
from gemcrawl.crawler.url_resolver import InvalidAddress
from gemcrawl.storage.checkpoint import PersistenceError
from gemcrawl.utils.config import Config, load_config, validate_config
from gemcrawl.utils.logger import log_system_info, setup_logging
from gemcrawl.utils.monitoring import CrawlerMonitor, MetricsCollector


class CrawlerApp:
    """Main application class for the gemini crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                signal.signal(signum, lambda s, frame: signal_handler(s))

    def remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except NotImplementedError:
                signal.signal(signum, signal.SIG_DFL)

    async def run(self, config: Config, max_pages: Optional[int] = None,
                  max_duration: Optional[int] = None) -> int:
        """Run the crawler and return the process exit status."""
        self._shutdown_event = asyncio.Event()
        self.setup_signal_handlers()

        self.logger.info("=== GEMINI CRAWLER STARTING ===")
        self.logger.info(f"Start URL: {config.crawler.start_url}")
        self.logger.info(f"Max entries: {config.crawler.max_entries}")
        self.logger.info(f"Workers: {config.crawler.max_concurrent_requests}")
        self.logger.info(f"Request timeout: {config.crawler.request_timeout}s")
        self.logger.info(f"Checkpoint: {config.checkpoint.path} every {config.checkpoint.save_interval} entries")

        monitor = CrawlerMonitor(MetricsCollector(
            enable_prometheus=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port
        ))
        monitor.metrics.start_prometheus_server()

        try:
            self.scheduler = CrawlerScheduler(config, monitor=monitor)
            await self.scheduler.initialize()

            crawl_task = asyncio.create_task(
                self.scheduler.start_crawling(max_pages, max_duration)
            )
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())

            done, _ = await asyncio.wait(
                [crawl_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED
            )

            if shutdown_task in done:
                self.logger.info("Shutdown requested, stopping crawler...")
                await self.scheduler.stop_crawling()
            else:
                shutdown_task.cancel()

            # The crawl task performs the final checkpoint save.
            await crawl_task

        except (PersistenceError, InvalidAddress) as e:
            self.logger.error(f"Fatal error: {e}")
            return 1

        finally:
            if self.scheduler:
                await self.scheduler.close()
            self.remove_signal_handlers()
            self.logger.info("=== GEMINI CRAWLER FINISHED ===")

        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gemini Crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                    # Run with default config.yaml
  python main.py --url gemini://example.org/        # Crawl a different capsule
  python main.py --resume data/checkpoint.json      # Resume a previous crawl
  python main.py --max-entries 50 --insecure        # Small crawl, self-signed certs allowed
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml, built-in defaults if absent)'
    )
    parser.add_argument('--url', help='Start URL')
    parser.add_argument('--resume', metavar='CHECKPOINT', help='Resume from an existing checkpoint file')
    parser.add_argument('--output', metavar='PATH', help='Checkpoint output path')
    parser.add_argument('--max-entries', type=int, help='Maximum number of entries to discover')
    parser.add_argument('--max-pages', type=int, help='Maximum number of fetch attempts')
    parser.add_argument('--max-duration', type=int, help='Maximum crawl duration in seconds')
    parser.add_argument('--workers', type=int, help='Number of concurrent fetches')
    parser.add_argument(
        '--insecure',
        action='store_true',
        help='Do not verify server certificates (needed for self-signed capsules)'
    )
    parser.add_argument('--json-logs', action='store_true', help='Emit logs as JSON')
    parser.add_argument(
        '--version',
        action='version',
        version=f'Gemini Crawler {__version__}'
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command line flags on top of the loaded configuration."""
    if args.url:
        config.crawler.start_url = args.url
    if args.max_entries is not None:
        config.crawler.max_entries = args.max_entries
    if args.workers is not None:
        config.crawler.max_concurrent_requests = args.workers
    if args.insecure:
        config.crawler.insecure_skip_verify = True
    if args.resume:
        config.checkpoint.resume_from = args.resume
    if args.output:
        config.checkpoint.path = args.output
    if args.json_logs:
        config.logging.json = True

    validate_config(config)
    return config


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config_path = args.config if Path(args.config).exists() else None
    if config_path is None and args.config != 'config.yaml':
        print(f"Error: Configuration file '{args.config}' not found.")
        return 1

    try:
        config = apply_overrides(load_config(config_path), args)
    except (ValueError, TypeError) as e:
        print(f"Error: Invalid configuration: {e}")
        return 1

    setup_logging(config.logging)
    log_system_info()

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(
            config,
            max_pages=args.max_pages,
            max_duration=args.max_duration
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
