"""Reminder domain schemas - Pydantic models for API responses"""

from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

UNKNOWN_CLIENT_NAME = "Cliente Sconosciuto"
GENERIC_SERVICE = "Generico"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class DispatchRunResponse(BaseModel):
    """Outcome of one daily-confirmations run"""

    success: bool
    message: Optional[str] = None
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)


class MessageLogEntry(BaseModel):
    """One dispatch record, as shown in the admin message log"""

    id: str
    client_name: str
    client_phone: str
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None
    service: str
    message_status: str
    message_content: str
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def from_row(cls, record, client=None, appointment=None) -> "MessageLogEntry":
        return cls(
            id=record.id,
            client_name=f"{client.first_name} {client.last_name}" if client else UNKNOWN_CLIENT_NAME,
            client_phone=(client.phone if client else None) or record.phone_number or "",
            appointment_date=appointment.date if appointment else None,
            appointment_time=appointment.time if appointment else None,
            service=(appointment.treatment if appointment else None) or GENERIC_SERVICE,
            message_status=record.status,
            message_content=record.message_content,
            sent_at=record.sent_at,
            error_message=record.error_message,
        )
