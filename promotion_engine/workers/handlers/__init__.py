from promotion_engine.workers.handlers.notification_handler import (
    handle_promotion_initiated,
    handle_promotion_resolved,
)

HANDLERS = {
    "promotion.initiated.v1": handle_promotion_initiated,
    "promotion.resolved.v1": handle_promotion_resolved,
}

def get_handler_for_event_type(event_type: str):
    handler = HANDLERS.get(event_type)
    if not handler:
        raise ValueError(f"Unknown event type: {event_type}")
    return handler
