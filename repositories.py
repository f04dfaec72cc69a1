"""
Booking and message repositories

Route handlers only see the abstract interfaces; the in-memory
implementations keep records in insertion order for the life of the process.
"""
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional

from schemas import Booking, Message, utcnow


class BookingRepository(ABC):
    @abstractmethod
    def add(self, booking: Booking) -> Booking: ...

    @abstractmethod
    def list(self, status: Optional[str] = None) -> List[Booking]:
        """Bookings matching `status` (case-insensitive), latest event first."""

    @abstractmethod
    def all(self) -> List[Booking]:
        """Every booking in insertion order."""

    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]: ...

    @abstractmethod
    def update(self, booking_id: str, **changes) -> Optional[Booking]: ...

    def confirm(self, booking_id: str) -> Optional[Booking]:
        return self.update(booking_id, status="confirmed", updated_at=utcnow())


class MessageRepository(ABC):
    @abstractmethod
    def add(self, message: Message) -> Message: ...

    @abstractmethod
    def list(self, include_archived: bool = False, unread_only: bool = False) -> List[Message]:
        """Messages newest first, archived ones only when asked for."""

    @abstractmethod
    def get(self, message_id: str) -> Optional[Message]: ...

    @abstractmethod
    def update(self, message_id: str, **changes) -> Optional[Message]: ...

    def mark_read(self, message_id: str) -> Optional[Message]:
        return self.update(message_id, read=True, read_at=utcnow())


class InMemoryBookingRepository(BookingRepository):
    def __init__(self):
        self._items: List[Booking] = []
        self._lock = threading.Lock()

    def add(self, booking: Booking) -> Booking:
        with self._lock:
            if any(b.id == booking.id for b in self._items):
                raise ValueError(f"Duplicate booking id {booking.id}")
            self._items.append(booking)
        return booking

    def list(self, status: Optional[str] = None) -> List[Booking]:
        with self._lock:
            items = list(self._items)
        if status:
            items = [b for b in items if b.status.lower() == status.lower()]
        items.sort(key=lambda b: b.event_date, reverse=True)
        return items

    def all(self) -> List[Booking]:
        with self._lock:
            return list(self._items)

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            return next((b for b in self._items if b.id == booking_id), None)

    def update(self, booking_id: str, **changes) -> Optional[Booking]:
        changes.pop("id", None)
        with self._lock:
            for index, booking in enumerate(self._items):
                if booking.id == booking_id:
                    if booking.status == "confirmed" and changes.get("status") == "pending":
                        # no confirmed -> pending transition
                        changes.pop("status")
                    self._items[index] = booking.model_copy(update=changes)
                    return self._items[index]
        return None


class InMemoryMessageRepository(MessageRepository):
    def __init__(self):
        self._items: List[Message] = []
        self._lock = threading.Lock()

    def add(self, message: Message) -> Message:
        with self._lock:
            if any(m.id == message.id for m in self._items):
                raise ValueError(f"Duplicate message id {message.id}")
            self._items.append(message)
        return message

    def list(self, include_archived: bool = False, unread_only: bool = False) -> List[Message]:
        with self._lock:
            items = list(self._items)
        if not include_archived:
            items = [m for m in items if not m.archived]
        if unread_only:
            items = [m for m in items if not m.read]
        items.sort(key=lambda m: m.date, reverse=True)
        return items

    def get(self, message_id: str) -> Optional[Message]:
        with self._lock:
            return next((m for m in self._items if m.id == message_id), None)

    def update(self, message_id: str, **changes) -> Optional[Message]:
        changes.pop("id", None)
        if changes.get("read") is False:
            # read flag only ever goes false -> true
            changes.pop("read")
        with self._lock:
            for index, message in enumerate(self._items):
                if message.id == message_id:
                    self._items[index] = message.model_copy(update=changes)
                    return self._items[index]
        return None


def seed_sample_data(bookings: BookingRepository, messages: MessageRepository) -> None:
    now = utcnow()
    bookings.add(Booking(
        client_name="John Doe",
        client_email="john@example.com",
        client_phone="555-0101",
        event_type="Wedding",
        event_date=now + timedelta(days=7),
        package="Premium",
        additional_notes="Outdoor ceremony requested",
    ))
    bookings.add(Booking(
        client_name="Jane Smith",
        client_email="jane@example.com",
        client_phone="555-0202",
        event_type="Portrait",
        event_date=now + timedelta(days=14),
        package="Basic",
        status="confirmed",
    ))
    messages.add(Message(
        name="Sarah Johnson",
        email="sarah@example.com",
        subject="Wedding Inquiry",
        message="I would like information about your wedding packages.",
    ))
    messages.add(Message(
        name="Mike Brown",
        email="mike@example.com",
        subject="Availability Question",
        message="Are you available for a corporate event on June 15th?",
        date=now - timedelta(days=2),
        read=True,
    ))
