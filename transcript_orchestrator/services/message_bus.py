"""
Inter-Actor Message Bus

In-process dispatcher connecting the supervisor, managers and workers.

Delivery model:
- Every (sender, recipient) pair gets its own asyncio queue and worker task,
  so messages between the same pair arrive in send order while a slow handler
  for one pair never stalls another pair.
- Each delivery carries a per-pair sequence number.
- Broadcast messages fan out to every subscriber except the sender.
- Messages for recipients without a subscriber are kept in ``dead_letters``.
- A handler exception is logged and the pair worker keeps going.

Usage:
    ```python
    bus = MessageBus()
    bus.subscribe("supervisor", supervisor.handle_message)
    await bus.send(create_message(MessageType.NOTIFICATION, "manager-1", ["supervisor"], {...}))
    await bus.join()   # wait until every queued message has been handled
    await bus.close()
    ```
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..models.messages import AgentMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[AgentMessage], Awaitable[None]]


@dataclass(frozen=True)
class Delivery:
    """A message on its way to one recipient."""

    sequence: int
    recipient: str
    message: AgentMessage


class MessageBus:
    """Per-pair ordered async dispatcher."""

    def __init__(self):
        self._handlers: Dict[str, MessageHandler] = {}
        self._queues: Dict[Tuple[str, str], asyncio.Queue] = {}
        self._workers: Dict[Tuple[str, str], asyncio.Task] = {}
        self._sequences: Dict[Tuple[str, str], int] = {}
        self._in_flight = 0
        self._idle: Optional[asyncio.Event] = None
        self.history: List[AgentMessage] = []
        self.dead_letters: List[Delivery] = []

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, actor_id: str, handler: MessageHandler) -> None:
        if actor_id in self._handlers:
            logger.warning(f"[MessageBus] Replacing handler for {actor_id}")
        self._handlers[actor_id] = handler

    def unsubscribe(self, actor_id: str) -> None:
        self._handlers.pop(actor_id, None)

    @property
    def subscribers(self) -> List[str]:
        return list(self._handlers)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, message: AgentMessage) -> List[Delivery]:
        """
        Queue a message for every recipient.

        Args:
            message: Message to deliver

        Returns:
            The deliveries queued (dead letters excluded)
        """
        self.history.append(message)

        if message.broadcast:
            recipients = [actor for actor in self._handlers if actor != message.sender]
        else:
            recipients = list(dict.fromkeys(message.recipients))

        deliveries: List[Delivery] = []
        for recipient in recipients:
            pair = (message.sender, recipient)
            sequence = self._sequences.get(pair, 0) + 1
            self._sequences[pair] = sequence
            delivery = Delivery(sequence=sequence, recipient=recipient, message=message)

            if recipient not in self._handlers:
                logger.warning(
                    f"[MessageBus] No subscriber for {recipient}, "
                    f"dropping {message.type.value} from {message.sender}"
                )
                self.dead_letters.append(delivery)
                continue

            self._mark_busy()
            self._queue_for(pair).put_nowait(delivery)
            deliveries.append(delivery)

        logger.debug(
            f"[MessageBus] {message.type.value} {message.sender} -> {recipients} "
            f"action={message.action}"
        )
        return deliveries

    def messages_to(self, recipient: str) -> List[AgentMessage]:
        """Sent messages addressed to a recipient (broadcasts excluded)."""
        return [m for m in self.history if recipient in m.recipients]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def join(self) -> None:
        """Wait until every queued message, including follow-ups, has been handled."""
        if self._in_flight == 0:
            return
        await self._idle_event().wait()

    async def close(self) -> None:
        """Cancel all pair workers."""
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        self._in_flight = 0
        self._idle_event().set()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _idle_event(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
            self._idle.set()
        return self._idle

    def _mark_busy(self) -> None:
        self._in_flight += 1
        self._idle_event().clear()

    def _mark_done(self) -> None:
        self._in_flight -= 1
        if self._in_flight <= 0:
            self._in_flight = 0
            self._idle_event().set()

    def _queue_for(self, pair: Tuple[str, str]) -> asyncio.Queue:
        queue = self._queues.get(pair)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[pair] = queue
            self._workers[pair] = asyncio.create_task(self._drain(pair, queue))
        return queue

    async def _drain(self, pair: Tuple[str, str], queue: asyncio.Queue) -> None:
        while True:
            delivery: Delivery = await queue.get()
            try:
                handler = self._handlers.get(delivery.recipient)
                if handler is None:
                    self.dead_letters.append(delivery)
                else:
                    await handler(delivery.message)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    f"[MessageBus] Handler for {delivery.recipient} failed on "
                    f"{delivery.message.type.value} #{delivery.sequence} from {pair[0]}"
                )
            finally:
                queue.task_done()
                self._mark_done()
