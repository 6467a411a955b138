"""
Configuration management using environment variables.
Handles process-level watcher settings with validation and defaults.
"""

from datetime import timedelta
from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from pathlib import Path


class WatcherConfig(BaseSettings):
    """
    Configuration class for watcher settings.
    Uses pydantic BaseSettings for environment variable management.
    """
    
    # Watch list
    watch_list_file: str = Field(default="feeds.toml", env="WATCH_LIST_FILE")
    default_interval_seconds: int = Field(default=30 * 60, env="DEFAULT_INTERVAL_SECONDS")
    
    # HTTP Configuration
    request_timeout: int = Field(default=30, env="REQUEST_TIMEOUT")
    rate_limit_per_second: float = Field(default=2.0, env="RATE_LIMIT_PER_SECOND")
    user_agent: str = Field(default="feed-watch/1.0 (+https://github.com/feed-watch)", env="USER_AGENT")
    
    # Backoff
    default_backoff_seconds: int = Field(default=6 * 60 * 60, env="DEFAULT_BACKOFF_SECONDS")
    safety_margin_seconds: int = Field(default=1, env="SAFETY_MARGIN_SECONDS")
    
    # Logging Configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")
    
    # Scheduler
    timezone: str = Field(default="UTC", env="TIMEZONE")
    
    # Development/Testing
    debug: bool = Field(default=False, env="DEBUG")
    
    @validator('default_interval_seconds')
    def validate_interval(cls, v):
        """Ensure the polling interval is positive."""
        if v < 1:
            raise ValueError('default_interval_seconds must be at least 1')
        return v
    
    @validator('request_timeout')
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 1 or v > 300:
            raise ValueError('request_timeout must be between 1 and 300 seconds')
        return v
    
    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Ensure rate limit is reasonable."""
        if v < 0.1 or v > 100:
            raise ValueError('rate_limit_per_second must be between 0.1 and 100')
        return v
    
    @validator('default_backoff_seconds', 'safety_margin_seconds')
    def validate_non_negative(cls, v):
        """Backoff durations cannot be negative."""
        if v < 0:
            raise ValueError('backoff durations must not be negative')
        return v
    
    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()
    
    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()
    
    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env
    
    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None
    
    def get_watch_list_path(self) -> Path:
        return Path(self.watch_list_file)
    
    def get_default_backoff(self) -> timedelta:
        return timedelta(seconds=self.default_backoff_seconds)
    
    def get_safety_margin(self) -> timedelta:
        return timedelta(seconds=self.safety_margin_seconds)


# Global configuration instance
config = WatcherConfig()
