"""
Reminder service - Daily WhatsApp appointment confirmations

Selects tomorrow's pending appointments, renders the reminder, sends it through
the active provider and records the outcome. A "sent" record per appointment is
never created twice, even across overlapping or repeated runs.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Iterator, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ... import config
from ...credentials import CredentialError, decrypt_credential, get_cipher
from ...models import (
    PROVIDER_CLOUD_API,
    PROVIDER_TWILIO,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SENT,
    TenantModels,
)
from .exceptions import AlreadySent, ConfigMissing, PersistenceError, ReminderError, SelectionError
from .providers import ProviderAdapter, ProviderSettings, SendResult, build_provider, mask_phone
from .repository import Candidate, ReminderRepository
from .templates import DEFAULT_TEMPLATE_CONTENT, DEFAULT_TEMPLATE_NAME, render_message

logger = logging.getLogger(__name__)

PRODUCTION_MODE = "production"
ALREADY_SENT_NOTE = "Already sent for this appointment by another run"


@dataclass
class DispatchSummary:
    """Outcome tally for one run: sent + failed + skipped == selected"""

    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def selected(self) -> int:
        return self.sent + self.failed + self.skipped

    def record_sent(self) -> None:
        self.sent += 1

    def record_skipped(self) -> None:
        self.skipped += 1

    def record_failed(self, client_name: str, error: str) -> None:
        self.failed += 1
        self.errors.append(f"{client_name}: {error}")

    def as_dict(self) -> dict:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class ResolvedConfig:
    provider: ProviderSettings
    template_name: str
    template_content: str


def whatsapp_sender(number: Optional[str]) -> Optional[str]:
    if not number:
        return number
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"


def tomorrow_in(tz_name: str, now: Optional[datetime] = None) -> date:
    """The calendar day after "now" in the salon's timezone"""
    tz = ZoneInfo(tz_name)
    current = now.astimezone(tz) if now else datetime.now(tz)
    return current.date() + timedelta(days=1)


class ReminderService:
    """Runs the reminder pipeline for one tenant namespace"""

    def __init__(
        self,
        db: Session,
        models: TenantModels,
        location: Optional[str] = None,
        timezone_name: Optional[str] = None,
        pacing_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cipher=None,
    ):
        self.db = db
        self.models = models
        self.repo = ReminderRepository()
        self.location = location if location is not None else config.SALON_LOCATION
        self.timezone_name = timezone_name or config.SALON_TIMEZONE
        self.pacing_seconds = (
            pacing_seconds if pacing_seconds is not None else config.REMINDER_PACING_SECONDS
        )
        self.sleep = sleep
        self.transport = transport
        self.cipher = cipher

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def resolve_config(self, template_name: Optional[str] = None) -> ResolvedConfig:
        """Load the provider configuration and message template once per run"""
        self._check_timezone()
        provider = self.resolve_provider_settings()
        name, content = self.resolve_template(template_name)
        return ResolvedConfig(provider=provider, template_name=name, template_content=content)

    def _check_timezone(self) -> None:
        try:
            ZoneInfo(self.timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigMissing(f"Unknown salon timezone: {self.timezone_name}") from e

    def _get_cipher(self):
        if self.cipher is not None:
            return self.cipher
        try:
            return get_cipher(config.CREDENTIALS_ENCRYPTION_KEY)
        except ValueError as e:
            raise ConfigMissing("Invalid CREDENTIALS_ENCRYPTION_KEY") from e

    def resolve_provider_settings(self) -> ProviderSettings:
        if config.WHATSAPP_MODE == PRODUCTION_MODE:
            settings = self._settings_from_environment()
        else:
            settings = self._settings_from_database()
        self._validate_settings(settings)
        logger.info(f"📱 Using {settings.provider} provider ({config.WHATSAPP_MODE} mode)")
        return settings

    def _settings_from_environment(self) -> ProviderSettings:
        account_sid = config.TWILIO_ACCOUNT_SID
        auth_token = config.TWILIO_AUTH_TOKEN
        phone_number = config.TWILIO_PHONE_NUMBER
        if not account_sid or not auth_token or not phone_number:
            raise ConfigMissing("Missing Twilio configuration in environment variables")
        return ProviderSettings(
            provider=PROVIDER_TWILIO,
            api_token=auth_token,
            account_sid=account_sid,
            from_number=whatsapp_sender(phone_number),
        )

    def _settings_from_database(self) -> ProviderSettings:
        try:
            configs = self.repo.get_active_configs(self.db, self.models)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ConfigMissing(f"Error loading WhatsApp configuration: {e}") from e

        if not configs:
            raise ConfigMissing("WhatsApp configuration not found or inactive")
        if len(configs) > 1:
            raise ConfigMissing("Multiple active WhatsApp configurations found")

        row = configs[0]
        cipher = self._get_cipher()
        try:
            return ProviderSettings(
                provider=row.provider,
                api_token=decrypt_credential(row.api_token, cipher),
                api_url=row.api_url,
                account_sid=decrypt_credential(row.account_sid, cipher),
                from_number=whatsapp_sender(row.from_number),
            )
        except CredentialError as e:
            raise ConfigMissing(str(e)) from e

    @staticmethod
    def _validate_settings(settings: ProviderSettings) -> None:
        if not settings.api_token:
            raise ConfigMissing("WhatsApp configuration has no API token")
        if settings.provider == PROVIDER_TWILIO:
            if not settings.account_sid or not settings.from_number:
                raise ConfigMissing("Twilio configuration requires an account SID and a sender number")
        elif settings.provider == PROVIDER_CLOUD_API:
            if not settings.api_url:
                raise ConfigMissing("Cloud API configuration requires an API URL")
        else:
            raise ConfigMissing(f"Unsupported WhatsApp provider: {settings.provider}")

    def resolve_template(self, template_name: Optional[str] = None) -> tuple[str, str]:
        """Named template, else the default one, else the built-in text"""
        try:
            template = None
            if template_name:
                template = self.repo.get_template_by_name(self.db, self.models, template_name)
                if template is None:
                    logger.warning(f"⚠️ Template '{template_name}' not found, using default")
            if template is None:
                defaults = self.repo.get_default_templates(self.db, self.models)
                if len(defaults) > 1:
                    logger.warning(f"⚠️ {len(defaults)} default templates found, using the oldest")
                template = defaults[0] if defaults else None
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ConfigMissing(f"Error fetching template: {e}") from e

        if template is None:
            return DEFAULT_TEMPLATE_NAME, DEFAULT_TEMPLATE_CONTENT
        return template.name, template.content

    # ------------------------------------------------------------------
    # Selection and dedup
    # ------------------------------------------------------------------

    def target_date(self, now: Optional[datetime] = None) -> date:
        return tomorrow_in(self.timezone_name, now)

    def select_candidates(self, target_date: date) -> Iterator[Candidate]:
        """Run the candidate query once; the result can be consumed once"""
        try:
            candidates = self.repo.get_candidates(self.db, self.models, target_date)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SelectionError(f"Error fetching appointments: {e}") from e
        logger.info(f"📅 {len(candidates)} appointment(s) to process for {target_date.isoformat()}")
        return iter(candidates)

    def already_sent(self, appointment_id: str) -> bool:
        try:
            return self.repo.has_sent_message(self.db, self.models, appointment_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Error checking previous messages: {e}") from e

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_pending(self, candidate: Candidate, body: str):
        try:
            return self.repo.create_message(
                self.db,
                self.models,
                client_id=candidate.client_id,
                appointment_id=candidate.appointment_id,
                phone_number=candidate.phone,
                message_content=body,
                status=STATUS_PENDING,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Error saving message: {e}") from e

    def finalize(self, record, result: SendResult):
        """Move a pending record to sent or failed. Raises AlreadySent on a duplicate send."""
        now = datetime.now(timezone.utc)
        if result.success:
            updates = {
                "status": STATUS_SENT,
                "sent_at": now,
                "updated_at": now,
                "provider_message_id": result.provider_message_id,
            }
        else:
            updates = {
                "status": STATUS_FAILED,
                "error_message": result.error,
                "updated_at": now,
            }

        try:
            return self.repo.update_message(self.db, record, **updates)
        except IntegrityError as e:
            self.db.rollback()
            if not result.success:
                raise PersistenceError(f"Error updating message: {e}") from e
            logger.warning(f"⏭️ Appointment {record.appointment_id} was already sent by another run")
            self._close_duplicate(record)
            raise AlreadySent(ALREADY_SENT_NOTE) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Error updating message: {e}") from e

    def _close_duplicate(self, record) -> None:
        try:
            self.repo.update_message(
                self.db,
                record,
                status=STATUS_FAILED,
                error_message=ALREADY_SENT_NOTE,
                updated_at=datetime.now(timezone.utc),
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Could not close duplicate record {record.id}: {e}")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self, candidates: Iterable[Candidate], adapter: ProviderAdapter, template: str
    ) -> DispatchSummary:
        """Process candidates one at a time; no single candidate can abort the run"""
        summary = DispatchSummary()
        has_sent_before = False

        for candidate in candidates:
            record = None
            try:
                if self.already_sent(candidate.appointment_id):
                    logger.info(f"⏭️ Message already sent for appointment {candidate.appointment_id}")
                    summary.record_skipped()
                    continue

                body = render_message(template, candidate, self.location)
                record = self.record_pending(candidate, body)

                # Pace consecutive provider calls
                if has_sent_before:
                    await self.sleep(self.pacing_seconds)
                has_sent_before = True

                result = await adapter.send(candidate.phone, body)
                self.finalize(record, result)

                if result.success:
                    summary.record_sent()
                    logger.info(f"✅ Message sent successfully to {candidate.first_name}")
                else:
                    summary.record_failed(candidate.first_name, result.error or "Unknown error")
                    logger.warning(
                        f"❌ Failed to send message to {candidate.first_name} "
                        f"({mask_phone(candidate.phone)}): {result.error}"
                    )
            except AlreadySent:
                summary.record_skipped()
            except Exception as e:
                error = str(e) if isinstance(e, ReminderError) else f"{e.__class__.__name__}: {e}"
                summary.record_failed(candidate.first_name, error)
                logger.error(f"❌ Error processing appointment {candidate.appointment_id}: {error}")
                if record is not None:
                    self._close_failed(record, error)

        return summary

    def _close_failed(self, record, error: str) -> None:
        """Best-effort close of a record left pending by an unexpected error"""
        try:
            if record.status == STATUS_PENDING:
                self.finalize(record, SendResult(success=False, error=error))
        except (ReminderError, SQLAlchemyError) as e:
            self.db.rollback()
            logger.error(f"❌ Could not close pending record: {e}")

    async def run(self, template_name: Optional[str] = None) -> DispatchSummary:
        """
        Run the whole pipeline.

        Raises:
            ConfigMissing: no usable provider configuration (nothing is sent)
            SelectionError: the appointment query failed (nothing is sent)
        """
        prefix = self.models.table_prefix or "(default)"
        logger.info(f"🚀 Starting WhatsApp daily confirmations for tenant {prefix}")

        resolved = self.resolve_config(template_name)
        candidates = self.select_candidates(self.target_date())

        async with httpx.AsyncClient(
            timeout=config.PROVIDER_TIMEOUT_SECONDS, transport=self.transport
        ) as client:
            adapter = build_provider(resolved.provider, client)
            summary = await self.dispatch(candidates, adapter, resolved.template_content)

        logger.info(f"✅ WhatsApp daily confirmations completed: {summary.as_dict()}")
        return summary
