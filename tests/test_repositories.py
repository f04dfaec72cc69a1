from datetime import datetime, timedelta, timezone

import pytest

from repositories import InMemoryBookingRepository, InMemoryMessageRepository, seed_sample_data
from schemas import Booking, Message, utcnow


def booking(days=0, status="pending"):
    return Booking(
        client_name="Client",
        client_email="client@example.com",
        client_phone="555",
        event_type="Wedding",
        event_date=datetime(2025, 6, 1, tzinfo=timezone.utc) + timedelta(days=days),
        package="Premium",
        status=status,
    )


def message(hours_ago=0, **fields):
    return Message(name="Ann", email="ann@example.com", message="Hi", date=utcnow() - timedelta(hours=hours_ago), **fields)


def test_bookings_keep_insertion_order():
    repo = InMemoryBookingRepository()
    first, second = repo.add(booking(days=5)), repo.add(booking(days=1))
    assert [b.id for b in repo.all()] == [first.id, second.id]
    assert [b.id for b in repo.list()] == [first.id, second.id]


def test_duplicate_booking_id_rejected():
    repo = InMemoryBookingRepository()
    item = repo.add(booking())
    with pytest.raises(ValueError):
        repo.add(item)


def test_confirm_sets_status_and_timestamp():
    repo = InMemoryBookingRepository()
    item = repo.add(booking())
    confirmed = repo.confirm(item.id)
    assert confirmed.status == "confirmed"
    assert confirmed.updated_at is not None
    assert confirmed.id == item.id
    assert repo.get(item.id) == confirmed


def test_booking_cannot_return_to_pending():
    repo = InMemoryBookingRepository()
    item = repo.add(booking(status="confirmed"))
    assert repo.update(item.id, status="pending").status == "confirmed"


def test_booking_id_is_immutable():
    repo = InMemoryBookingRepository()
    item = repo.add(booking())
    assert repo.update(item.id, id="other", package="Basic").id == item.id
    assert repo.get("other") is None


def test_missing_booking():
    repo = InMemoryBookingRepository()
    assert repo.get("nope") is None
    assert repo.confirm("nope") is None


def test_message_filters():
    repo = InMemoryMessageRepository()
    unread = repo.add(message(hours_ago=1))
    read = repo.add(message(hours_ago=2, read=True))
    archived = repo.add(message(hours_ago=0, archived=True))

    assert [m.id for m in repo.list()] == [unread.id, read.id]
    assert [m.id for m in repo.list(include_archived=True)] == [archived.id, unread.id, read.id]
    assert [m.id for m in repo.list(unread_only=True)] == [unread.id]


def test_read_flag_is_one_way():
    repo = InMemoryMessageRepository()
    item = repo.add(message())
    marked = repo.mark_read(item.id)
    assert marked.read is True
    assert marked.read_at is not None
    assert repo.update(item.id, read=False).read is True


def test_seed_sample_data():
    bookings, messages = InMemoryBookingRepository(), InMemoryMessageRepository()
    seed_sample_data(bookings, messages)
    assert sorted(b.status for b in bookings.all()) == ["confirmed", "pending"]
    assert len(messages.list()) == 2
    assert len(messages.list(unread_only=True)) == 1
