"""Publishing helpers for the dashboard's business-logic routers.

Learn: Routers don't pick channels themselves. After a successful write
they call publish_module_event("horses", "created", horse, owner_id) and
the naming convention does the rest:

    event name:  <module>:<action>          e.g. horses:created
    channel:     user:<owner_id>            when the record has an owner
                 <module>                   otherwise (module-wide feed)

Admin broadcasts go to the "global" channel, which every connection
listens on.
"""

from typing import Any, Optional

from stablehand.realtime.broker import (
    GLOBAL_CHANNEL,
    RealtimeBroker,
    RealtimeEvent,
    user_channel,
)


def module_event_name(module: str, action: str) -> str:
    return f"{module}:{action}"


def publish_module_event(
    broker: RealtimeBroker,
    module: str,
    action: str,
    payload: Any,
    owner_id: Optional[int] = None,
) -> RealtimeEvent:
    """Publish a `<module>:<action>` event to its owner or module channel."""
    channel = user_channel(owner_id) if owner_id is not None else module
    return broker.publish(channel, module_event_name(module, action), payload)


def publish_global(
    broker: RealtimeBroker,
    event_name: str,
    payload: Any,
) -> RealtimeEvent:
    """Broadcast to every connected client."""
    return broker.publish(GLOBAL_CHANNEL, event_name, payload)
