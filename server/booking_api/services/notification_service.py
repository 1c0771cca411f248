"""Notification effects collected by workflows and emitted after commit."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEffect:
    """A notification owed to a user once the current transaction commits."""

    user_id: UUID
    message: str
    type: NotificationType
    related_booking_id: Optional[UUID] = None


class EffectBuffer:
    """Ordered effects of one unit of work, discarded if it rolls back."""

    def __init__(self) -> None:
        self._effects: list[NotificationEffect] = []

    def add(self, effect: NotificationEffect) -> None:
        self._effects.append(effect)

    def drain(self) -> list[NotificationEffect]:
        effects, self._effects = self._effects, []
        return effects

    def clear(self) -> None:
        self._effects = []

    def __len__(self) -> int:
        return len(self._effects)


class NotificationSink(ABC):
    """Destination for notification effects."""

    @abstractmethod
    async def emit(self, effects: Iterable[NotificationEffect]) -> None:
        """Deliver effects. Must not raise."""


class DatabaseNotificationSink(NotificationSink):
    """
    Persists effects as ``Notification`` rows in their own transaction.

    The business transaction has already committed when this runs, so a
    failure here is logged and dropped rather than reported to the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def emit(self, effects: Iterable[NotificationEffect]) -> None:
        effects = list(effects)
        if not effects:
            return

        try:
            async with self.session_factory() as session:
                session.add_all([
                    Notification(
                        user_id=effect.user_id,
                        message=effect.message,
                        type=effect.type.value,
                        related_booking_id=effect.related_booking_id,
                    )
                    for effect in effects
                ])
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to persist notifications",
                extra={"count": len(effects)}
            )
            return

        logger.debug("Notifications persisted", extra={"count": len(effects)})


class EffectPublisher:
    """Buffer plus sink: workflows queue effects and flush after commit."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink
        self.buffer = EffectBuffer()

    def queue(
        self,
        user_id: UUID,
        message: str,
        type: NotificationType,
        related_booking_id: Optional[UUID] = None,
    ) -> None:
        self.buffer.add(NotificationEffect(user_id, message, type, related_booking_id))

    def discard(self) -> None:
        self.buffer.clear()

    async def flush(self) -> None:
        await self.sink.emit(self.buffer.drain())
