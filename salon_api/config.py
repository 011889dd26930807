import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./salon.db")

# Salon details used when rendering reminders
# "Tomorrow" is computed in this timezone, not in UTC
SALON_TIMEZONE = os.getenv("SALON_TIMEZONE", "Europe/Rome")
SALON_LOCATION = os.getenv(
    "SALON_LOCATION", "Via Monsignor Enrico Montalbetti 5, Reggio Calabria"
)

# Reminder dispatch
REMINDER_PACING_SECONDS = float(os.getenv("REMINDER_PACING_SECONDS", "1.0"))
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10.0"))
REMINDER_CRON_HOUR = int(os.getenv("REMINDER_CRON_HOUR", "18"))
REMINDER_CRON_MINUTE = int(os.getenv("REMINDER_CRON_MINUTE", "0"))
# Comma separated table prefixes served by the scheduled job ("" is the default tenant)
REMINDER_TENANT_PREFIXES = [
    p.strip() for p in os.getenv("REMINDER_TENANT_PREFIXES", "").split(",")
]

# WhatsApp provider mode: "production" reads Twilio credentials from the environment,
# anything else reads the active row of the whatsapp_config table
WHATSAPP_MODE = os.getenv("WHATSAPP_MODE", "development")
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

# Fernet key for provider secrets stored in whatsapp_config
# (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
CREDENTIALS_ENCRYPTION_KEY = os.getenv("CREDENTIALS_ENCRYPTION_KEY")
