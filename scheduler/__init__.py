"""
Scheduler package for polling watched sources.

This package contains:
- Tick scheduler with per-source backoff plans
- Content fingerprinting and change decisions
- Webhook notifications
"""

__version__ = "1.0.0"
