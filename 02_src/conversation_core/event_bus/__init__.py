from .event_bus import ALL_EVENTS, EventBus, EventHandler, IEventBus

__all__ = ["ALL_EVENTS", "EventBus", "EventHandler", "IEventBus"]
