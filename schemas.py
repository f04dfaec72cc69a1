"""
Schemas

Pydantic models for the records the site keeps (bookings, contact messages,
admin sessions) and for the public request bodies. JSON uses camelCase keys,
Python attributes stay snake_case.
"""
from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# Site records
class Booking(CamelModel):
    id: str = Field(default_factory=new_id, description="Opaque booking identifier")
    client_name: str = Field(..., description="Client full name")
    client_email: str = Field(..., description="Client email address")
    client_phone: str = Field(..., description="Client phone number")
    event_type: str = Field(..., description="Wedding, Portrait, ...")
    event_date: datetime = Field(..., description="Event start, UTC")
    package: str = Field(..., description="Selected package tier")
    start_time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM")
    location: Optional[str] = None
    additional_notes: str = ""
    status: Literal["pending", "confirmed"] = "pending"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Message(CamelModel):
    id: str = Field(default_factory=new_id, description="Opaque message identifier")
    name: str = Field(..., description="Sender name")
    email: str = Field(..., description="Sender email address")
    phone: str = ""
    subject: str = "General Inquiry"
    message: str = Field(..., description="Message body")
    date: datetime = Field(default_factory=utcnow, description="Received at")
    read: bool = False
    archived: bool = False
    read_at: Optional[datetime] = None


# Sessions
class Principal(CamelModel):
    username: str
    role: Literal["admin"] = "admin"
    expires_at: datetime


class SessionRecord(CamelModel):
    id: str = Field(..., description="Opaque session token")
    csrf_secret: Optional[str] = None
    principal: Optional[Principal] = None
    expires_at: datetime = Field(..., description="When the session expires")


# Request bodies
class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class ContactSubmission(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: str


class BookingSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: EmailStr
    phone: str
    event_type: str = Field(..., alias="eventType")
    date: str
    package: str
    start_time: str = Field(..., alias="startTime")
    end_time: str = Field(..., alias="endTime")
    location: str
    details: Optional[str] = None
