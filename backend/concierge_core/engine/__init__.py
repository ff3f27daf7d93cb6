from concierge_core.engine.event_bus import Event, EventBus, PublishResult, event_bus

__all__ = ["Event", "EventBus", "PublishResult", "event_bus"]
