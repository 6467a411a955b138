"""
Main entry point for the feed watcher.

Usage: python main.py [watch-list.toml] [--once]

Polls every source of the watch list on a recurring schedule and calls the
configured hook whenever a source's newest content changes.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from utilities.config import config
from utilities.logger import setup_logging, get_logger
from utilities.watchlist import WatchListError, load_watch_list
from scheduler.models import SchedulerConfig
from scheduler.scheduler_service import SchedulerService


def parse_args(argv):
    """Return (watch list path, run once flag) from command line arguments."""
    run_once = False
    paths = []
    for arg in argv:
        if arg == "--once":
            run_once = True
        elif arg.startswith("-"):
            print(f"Unknown argument: {arg}")
            print("Usage: python main.py [watch-list.toml] [--once]")
            sys.exit(1)
        else:
            paths.append(arg)
    
    if len(paths) > 1:
        print("Usage: python main.py [watch-list.toml] [--once]")
        sys.exit(1)
    
    path = Path(paths[0]) if paths else config.get_watch_list_path()
    return path, run_once


async def main():
    """Main function to run the watcher."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger = get_logger(__name__)
    
    path, run_once = parse_args(sys.argv[1:])
    
    try:
        watch_list = load_watch_list(path)
    except WatchListError as e:
        logger.error("Failed to load watch list", path=str(e.path), error=e.reason)
        sys.exit(1)
    
    scheduler_config = SchedulerConfig(
        interval=watch_list.get_interval(config.default_interval_seconds),
        default_backoff=config.get_default_backoff(),
        safety_margin=config.get_safety_margin(),
        timezone=config.timezone,
        request_timeout=config.request_timeout,
        rate_limit_per_second=config.rate_limit_per_second,
        user_agent=config.user_agent
    )
    
    service = SchedulerService(watch_list, scheduler_config)
    await service.start(run_once=run_once)


if __name__ == "__main__":
    asyncio.run(main())
