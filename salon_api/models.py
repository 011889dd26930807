"""
Salon Models
Tenant-scoped tables for clients, appointments and WhatsApp reminders.

Every salon account shares the same schema shape; the physical table names
carry a per-tenant prefix (e.g. "isabelle_clients"). The empty prefix is the
default tenant.
"""

import re
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

# Dispatch record statuses. "delivered" is reserved for a delivery-receipt consumer.
STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_DELIVERED = "delivered"

APPOINTMENT_PENDING = "pending"

PROVIDER_CLOUD_API = "cloud_api"
PROVIDER_TWILIO = "twilio"

TABLE_PREFIX_PATTERN = re.compile(r"^[a-z0-9_]{0,32}$")


def generate_uuid() -> str:
    return str(uuid.uuid4())


def is_valid_table_prefix(table_prefix: str) -> bool:
    """Table prefixes end up in DDL, so only lowercase identifiers are accepted"""
    return bool(TABLE_PREFIX_PATTERN.match(table_prefix))


@dataclass(frozen=True)
class TenantModels:
    """ORM classes bound to one tenant's table namespace"""

    table_prefix: str
    base: Any
    ReminderConfig: Any
    MessageTemplate: Any
    Client: Any
    Appointment: Any
    DispatchRecord: Any

    def create_all(self, bind) -> None:
        self.base.metadata.create_all(bind=bind, checkfirst=True)


@lru_cache(maxsize=None)
def get_tenant_models(table_prefix: str = "") -> TenantModels:
    """Build (once per prefix) the ORM classes for a tenant namespace"""
    if not is_valid_table_prefix(table_prefix):
        raise ValueError(f"Invalid table prefix: {table_prefix!r}")

    Base = declarative_base()
    clients_table = f"{table_prefix}clients"
    messages_table = f"{table_prefix}whatsapp_messages"

    class ReminderConfig(Base):
        """WhatsApp provider credentials; exactly one row is active"""

        __tablename__ = f"{table_prefix}whatsapp_config"

        id = Column(String(36), primary_key=True, default=generate_uuid)
        provider = Column(String(20), nullable=False, default=PROVIDER_CLOUD_API)

        # Cloud API: base URL + bearer token. Twilio: account SID + auth token + sender.
        # Secrets may be Fernet-encrypted (see CREDENTIALS_ENCRYPTION_KEY)
        api_url = Column(Text, nullable=True)
        api_token = Column(Text, nullable=False)
        account_sid = Column(Text, nullable=True)
        from_number = Column(String(40), nullable=True)
        phone_number_id = Column(String(64), nullable=True)
        business_account_id = Column(String(64), nullable=True)

        is_active = Column(Boolean, default=False, nullable=False)

        created_at = Column(DateTime(timezone=True), server_default=func.now())
        updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    class MessageTemplate(Base):
        __tablename__ = f"{table_prefix}message_templates"

        id = Column(String(36), primary_key=True, default=generate_uuid)
        name = Column(String(100), nullable=False)
        content = Column(Text, nullable=False)
        is_default = Column(Boolean, default=False, nullable=False)

        created_at = Column(DateTime(timezone=True), server_default=func.now())

    class Client(Base):
        __tablename__ = clients_table

        id = Column(String(36), primary_key=True, default=generate_uuid)
        first_name = Column("nome", String(100), nullable=False)
        last_name = Column("cognome", String(100), nullable=False)
        phone = Column("telefono", String(30), nullable=True)

        created_at = Column(DateTime(timezone=True), server_default=func.now())

    class Appointment(Base):
        __tablename__ = f"{table_prefix}appointments"

        id = Column(String(36), primary_key=True, default=generate_uuid)
        client_id = Column(String(36), ForeignKey(f"{clients_table}.id"), nullable=False, index=True)
        date = Column("data", Date, nullable=False, index=True)
        time = Column("ora", String(8), nullable=True)
        treatment = Column("tipo_trattamento", String(200), nullable=True)
        status = Column(String(20), nullable=False, default=APPOINTMENT_PENDING)

        created_at = Column(DateTime(timezone=True), server_default=func.now())

        client = relationship("Client")

    class DispatchRecord(Base):
        """One reminder send attempt: pending -> sent | failed"""

        __tablename__ = messages_table
        __table_args__ = (
            # At most one successful send per appointment
            Index(
                f"uq_{messages_table}_sent_appointment",
                "appointment_id",
                unique=True,
                postgresql_where=text("status = 'sent'"),
                sqlite_where=text("status = 'sent'"),
            ),
        )

        id = Column(String(36), primary_key=True, default=generate_uuid)
        client_id = Column(String(36), nullable=False, index=True)
        appointment_id = Column(String(36), nullable=False, index=True)
        phone_number = Column(String(30), nullable=False)
        message_content = Column(Text, nullable=False)
        status = Column(String(20), nullable=False, default=STATUS_PENDING)
        error_message = Column(Text, nullable=True)
        provider_message_id = Column(String(255), nullable=True)

        created_at = Column(DateTime(timezone=True), server_default=func.now())
        sent_at = Column(DateTime(timezone=True), nullable=True)
        updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    return TenantModels(
        table_prefix=table_prefix,
        base=Base,
        ReminderConfig=ReminderConfig,
        MessageTemplate=MessageTemplate,
        Client=Client,
        Appointment=Appointment,
        DispatchRecord=DispatchRecord,
    )
