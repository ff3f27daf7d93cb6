"""
事件发布 - 业务服务通过这里向事件总线发布领域事件
"""
from datetime import datetime

from concierge_core.engine import Event, PublishResult, event_bus
from concierge.models.events import BaseEventData, EventType


def publish_event(event_type: EventType, data: BaseEventData, source: str) -> PublishResult:
    return event_bus.publish(Event(
        event_type=event_type.value,
        timestamp=datetime.now(),
        data=data.to_dict(),
        source=source,
    ))
