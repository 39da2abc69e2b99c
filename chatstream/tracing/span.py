"""Span model for per-topic diagnostic traces."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class SpanStatus(str, Enum):
    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


def new_span_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass
class Span:
    """
    One timed unit of work inside a topic trace.

    Children point to their parent by id only. ``end`` takes effect once;
    later calls return False and leave the first end untouched.
    """
    name: str
    topic_id: str
    id: str = field(default_factory=new_span_id)
    parent_id: Optional[str] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    status: SpanStatus = SpanStatus.UNSET
    status_message: Optional[str] = None

    @property
    def ended(self) -> bool:
        return self.end_time is not None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def end(self, status: SpanStatus = SpanStatus.OK, message: Optional[str] = None,
            end_time: Optional[float] = None) -> bool:
        if self.end_time is not None:
            return False
        self.end_time = end_time if end_time is not None else time.time()
        self.status = status
        self.status_message = message
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "topic_id": self.topic_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "attributes": dict(self.attributes),
            "status": self.status.value,
            "status_message": self.status_message,
        }
