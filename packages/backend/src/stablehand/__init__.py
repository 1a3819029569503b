"""Stablehand — realtime backend for the horse-management dashboard.

Pushes domain events (horse updates, document uploads, task completions)
to connected browsers over server-sent events, and gates inbound API
traffic with an in-memory rate limiter.
"""

__version__ = "0.1.0"
