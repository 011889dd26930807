"""Reminder repository - Database operations for WhatsApp reminders"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import APPOINTMENT_PENDING, STATUS_SENT, TenantModels


@dataclass(frozen=True)
class Candidate:
    """An appointment joined with its client, eligible for a reminder"""

    appointment_id: str
    client_id: str
    appointment_date: date
    appointment_time: Optional[str]
    treatment: Optional[str]
    first_name: str
    last_name: str
    phone: str


class ReminderRepository:
    """Repository for reminder database operations"""

    @staticmethod
    def get_active_configs(db: Session, models: TenantModels, limit: int = 2) -> list:
        """Active provider configs; callers only need to know if there are 0, 1 or more"""
        ReminderConfig = models.ReminderConfig
        return db.query(ReminderConfig).filter(ReminderConfig.is_active.is_(True)).limit(limit).all()

    @staticmethod
    def get_template_by_name(db: Session, models: TenantModels, name: str):
        MessageTemplate = models.MessageTemplate
        return (
            db.query(MessageTemplate)
            .filter(MessageTemplate.name == name)
            .order_by(MessageTemplate.is_default.desc(), MessageTemplate.created_at.asc())
            .first()
        )

    @staticmethod
    def get_default_templates(db: Session, models: TenantModels) -> list:
        MessageTemplate = models.MessageTemplate
        return (
            db.query(MessageTemplate)
            .filter(MessageTemplate.is_default.is_(True))
            .order_by(MessageTemplate.created_at.asc())
            .all()
        )

    @staticmethod
    def get_candidates(db: Session, models: TenantModels, target_date: date) -> list[Candidate]:
        """
        Pending appointments on target_date whose client has a phone number.

        The inner join drops appointments whose client row cannot be resolved.
        """
        Appointment, Client = models.Appointment, models.Client
        rows = (
            db.query(Appointment, Client)
            .join(Client, Client.id == Appointment.client_id)
            .filter(
                Appointment.date == target_date,
                Appointment.status == APPOINTMENT_PENDING,
                Client.phone.isnot(None),
            )
            .order_by(Appointment.time.asc(), Appointment.id.asc())
            .all()
        )
        return [
            Candidate(
                appointment_id=appointment.id,
                client_id=client.id,
                appointment_date=appointment.date,
                appointment_time=appointment.time,
                treatment=appointment.treatment,
                first_name=client.first_name,
                last_name=client.last_name,
                phone=client.phone,
            )
            for appointment, client in rows
        ]

    @staticmethod
    def has_sent_message(db: Session, models: TenantModels, appointment_id: str) -> bool:
        DispatchRecord = models.DispatchRecord
        return (
            db.query(DispatchRecord.id)
            .filter(
                DispatchRecord.appointment_id == appointment_id,
                DispatchRecord.status == STATUS_SENT,
            )
            .first()
            is not None
        )

    @staticmethod
    def create_message(db: Session, models: TenantModels, **message_data):
        """Insert a dispatch record and commit"""
        record = models.DispatchRecord(**message_data)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def update_message(db: Session, record, **updates):
        for key, value in updates.items():
            setattr(record, key, value)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def get_message_logs(db: Session, models: TenantModels, limit: int = 100) -> list[tuple]:
        """Newest dispatch records with their (possibly missing) client and appointment"""
        DispatchRecord = models.DispatchRecord
        Client, Appointment = models.Client, models.Appointment
        return (
            db.query(DispatchRecord, Client, Appointment)
            .outerjoin(Client, Client.id == DispatchRecord.client_id)
            .outerjoin(Appointment, Appointment.id == DispatchRecord.appointment_id)
            .order_by(DispatchRecord.created_at.desc(), DispatchRecord.id.desc())
            .limit(limit)
            .all()
        )
