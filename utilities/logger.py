"""
Structured logging setup using structlog.
Routes structlog output through the standard library so file handlers and
third-party loggers (httpx, apscheduler) share one stream.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union
import structlog
from structlog.stdlib import LoggerFactory


def _build_processors(log_format: str, debug: bool) -> List:
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())
    
    if log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Union[str, Path]] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging.
    
    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path, always written as plain rendered lines
        debug: Add call-site information to every event
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    
    structlog.configure(
        processors=_build_processors(log_format, debug),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)
    
    structlog.get_logger(__name__).info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class FetchLogger:
    """
    Specialized logger for per-source fetch operations and tick summaries.
    """
    
    def __init__(self, name: str = "watcher"):
        self.logger = structlog.get_logger(name)
    
    def log_tick_start(self, sources: int) -> None:
        """Log the start of a polling tick."""
        self.logger.info("Tick started", sources=sources)
    
    def log_tick_complete(
        self,
        fetched: int,
        skipped: int,
        changes: int,
        errors: int,
        duration_seconds: float,
        success: bool = True
    ) -> None:
        """Log tick completion, as a warning when any source failed."""
        level = "info" if success else "warning"
        getattr(self.logger, level)(
            "Tick completed",
            success=success,
            fetched=fetched,
            skipped=skipped,
            changes=changes,
            errors=errors,
            duration_seconds=round(duration_seconds, 3)
        )
    
    def log_skipped(self, source: str, next_eligible_time: str) -> None:
        """Log a source that is not due yet."""
        self.logger.debug(
            "Source not due, skipping",
            source=source,
            next_eligible_time=next_eligible_time
        )
    
    def log_fetch_result(self, source: str, status: str, decision: Optional[str] = None) -> None:
        """Log the outcome of a single fetch."""
        self.logger.debug(
            "Source fetched",
            source=source,
            status=status,
            decision=decision
        )
    
    def log_rate_limited(self, source: str, next_eligible_time: str) -> None:
        """Log a rate limited source."""
        self.logger.warning(
            "Source rate limited, backing off",
            source=source,
            next_eligible_time=next_eligible_time
        )
    
    def log_change(self, source: str) -> None:
        """Log a detected change."""
        self.logger.info("Change detected", source=source)
    
    def log_error(self, error: str, source: Optional[str] = None, kind: Optional[str] = None) -> None:
        """Log error with context."""
        self.logger.error(
            "Fetch error occurred",
            error=error,
            source=source,
            kind=kind
        )
    
    def log_notification(self, source: str, hook: str, success: bool = True, error: Optional[str] = None) -> None:
        """Log a notification attempt."""
        level = "info" if success else "error"
        getattr(self.logger, level)(
            "Hook triggered" if success else "Hook call failed",
            source=source,
            hook=hook,
            success=success,
            error=error
        )
