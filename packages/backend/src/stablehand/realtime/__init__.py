"""Real-time infrastructure — in-process SSE broker.

Learn: Events flow in one direction:
1. Routers → broker.publish(channel, event, payload) after a write succeeds
2. Broker → each subscribed connection's transport → SSE response → browser

Every connection listens on "global" and on its owner's "user:<id>"
channel. A short per-channel history lets a reconnecting browser backfill
what it missed. Nothing is persisted and nothing crosses process
boundaries: one process, one broker.
"""
