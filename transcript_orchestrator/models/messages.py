"""
Inter-Actor Message Envelope

Messages are append-only event records: frozen once created.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

from .constants import MessageType
from .tasks import utc_now


@dataclass(frozen=True)
class AgentMessage:
    """Envelope for communication between supervisor, managers and workers."""

    id: str
    type: MessageType
    sender: str
    recipients: Tuple[str, ...] = ()
    content: Dict[str, Any] = field(default_factory=dict)
    broadcast: bool = False
    reply_to: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def action(self) -> Optional[str]:
        """The ``action`` or ``event`` key of the content, if any."""
        return self.content.get("action") or self.content.get("event")

    @property
    def task_type(self) -> Optional[str]:
        """Task type the message declares, from content or metadata."""
        declared = self.content.get("task_type") or self.metadata.get("task_type")
        if declared is None and isinstance(self.content.get("task"), dict):
            declared = self.content["task"].get("type")
        return declared

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "sender": self.sender,
            "recipients": list(self.recipients),
            "broadcast": self.broadcast,
            "content": self.content,
            "reply_to": self.reply_to,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


def create_message(
    message_type: MessageType,
    sender: str,
    recipients: Sequence[str] = (),
    content: Optional[Dict[str, Any]] = None,
    reply_to: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    broadcast: bool = False,
) -> AgentMessage:
    """
    Build a new AgentMessage with a fresh id and timestamp.

    Example:
        ```python
        message = create_message(
            MessageType.NOTIFICATION,
            sender="manager-topics",
            recipients=["supervisor"],
            content={"event": "manager_registration", "expertise": ["topic_analysis"]},
        )
        ```
    """
    return AgentMessage(
        id=f"msg-{uuid.uuid4().hex}",
        type=message_type,
        sender=sender,
        recipients=tuple(recipients),
        content=dict(content or {}),
        broadcast=broadcast,
        reply_to=reply_to,
        metadata=dict(metadata or {}),
    )
