"""
Webhook notification sink.

Calls the configured hook of a feed when its source changed. Failures are
logged per hook and never interrupt the polling loop.
"""

import httpx
import structlog

from utilities.logger import FetchLogger
from utilities.watchlist import FeedConfig

logger = structlog.get_logger(__name__)


class WebhookNotifier:
    """POSTs to a feed's hook with its configured headers and JSON body."""
    
    def __init__(self, client: httpx.AsyncClient):
        """
        Initialize the notifier.
        
        Args:
            client: Shared HTTP client
        """
        self.client = client
        self.fetch_logger = FetchLogger("webhook_notifier")
    
    async def notify(self, feed: FeedConfig) -> bool:
        """
        Trigger the hook of ``feed``.
        
        Args:
            feed: Feed entry whose source changed
            
        Returns:
            True if the hook accepted the call, False otherwise
        """
        request_kwargs = {"headers": feed.headers}
        if feed.body is not None:
            request_kwargs["json"] = feed.body
        
        try:
            response = await self.client.post(feed.hook, **request_kwargs)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.fetch_logger.log_notification(feed.feed, feed.hook, success=False, error=str(e))
            return False
        
        self.fetch_logger.log_notification(feed.feed, feed.hook)
        return True
