"""
Fetcher package: conditional fetching of watched sources.

This package contains:
- Source and schedule models
- Conditional caching header negotiation
- Backoff planning after each fetch
- Source readers for syndication feeds and registry tag listings
"""

__version__ = "1.0.0"
