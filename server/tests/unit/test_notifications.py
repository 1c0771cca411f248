"""Tests for notification effects."""

import pytest
from sqlalchemy import select

from booking_api.models import Notification
from booking_api.models.notification import NotificationType
from booking_api.services.notification_service import (
    DatabaseNotificationSink,
    EffectBuffer,
    EffectPublisher,
    NotificationEffect,
)

from conftest import RecordingSink


def test_buffer_drain_empties():
    buffer = EffectBuffer()
    effect = NotificationEffect(user_id=None, message="hi", type=NotificationType.BOOKING_CREATED)
    buffer.add(effect)

    assert len(buffer) == 1
    assert buffer.drain() == [effect]
    assert len(buffer) == 0


@pytest.mark.asyncio
async def test_publisher_discard_drops_queued_effects():
    sink = RecordingSink()
    publisher = EffectPublisher(sink)

    publisher.queue(None, "dropped", NotificationType.BOOKING_CREATED)
    publisher.discard()
    publisher.queue(None, "kept", NotificationType.BOOKING_CANCELLED)
    await publisher.flush()

    assert [e.message for e in sink.effects] == ["kept"]


@pytest.mark.asyncio
async def test_flush_twice_emits_once():
    sink = RecordingSink()
    publisher = EffectPublisher(sink)

    publisher.queue(None, "once", NotificationType.BOOKING_CREATED)
    await publisher.flush()
    await publisher.flush()

    assert len(sink.effects) == 1


@pytest.mark.asyncio
async def test_database_sink_persists_rows(session_factory, test_session, world):
    sink = DatabaseNotificationSink(session_factory)

    await sink.emit([
        NotificationEffect(world.traveler.id, "Your booking has been confirmed.", NotificationType.BOOKING_CREATED),
        NotificationEffect(world.owner.id, "New reservation", NotificationType.NEW_RESERVATION),
    ])

    result = await test_session.execute(select(Notification).order_by(Notification.type))
    rows = list(result.scalars())
    assert [(row.user_id, row.type) for row in rows] == [
        (world.traveler.id, "booking_created"),
        (world.owner.id, "new_reservation"),
    ]
    assert all(row.is_read is False for row in rows)


@pytest.mark.asyncio
async def test_database_sink_swallows_storage_failures(session_factory, test_session, world):
    sink = DatabaseNotificationSink(session_factory)

    # message is NOT NULL
    await sink.emit([NotificationEffect(world.traveler.id, None, NotificationType.BOOKING_CREATED)])

    result = await test_session.execute(select(Notification))
    assert list(result.scalars()) == []
