"""Runtime configuration read from the environment (and backend/.env when present)."""
import os
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _csv(name: str, default: str = "") -> list:
    raw = os.getenv(name, default) or ""
    return [part.strip() for part in raw.split(",") if part.strip()]


def _int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "lead_intake")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
CORS_ORIGINS = _csv("CORS_ORIGINS", "*")

# Sender identity
FROM_EMAIL = os.getenv("FROM_EMAIL", "intake@jacobscounsellaw.com")
FROM_NAME = os.getenv("FROM_NAME", "Jacobs Counsel")
BASE_URL = os.getenv("BASE_URL", "https://jacobscounsellaw.com").rstrip("/")
UNSUBSCRIBE_URL = os.getenv("UNSUBSCRIBE_URL", f"{BASE_URL}/unsubscribe")
INTAKE_NOTIFY_TO = _csv("INTAKE_NOTIFY_TO", FROM_EMAIL)
HIGH_VALUE_NOTIFY_TO = _csv("HIGH_VALUE_NOTIFY_TO")
HIGH_VALUE_ALERT_SCORE = _int("HIGH_VALUE_ALERT_SCORE", 80)

# Mail providers
MS_TENANT_ID = os.getenv("MS_TENANT_ID", "")
MS_CLIENT_ID = os.getenv("MS_CLIENT_ID", "")
MS_CLIENT_SECRET = os.getenv("MS_CLIENT_SECRET", "")
MS_GRAPH_SENDER = os.getenv("MS_GRAPH_SENDER", FROM_EMAIL)
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
POSTMARK_SERVER_TOKEN = os.getenv("POSTMARK_SERVER_TOKEN", "")
MAILGUN_API_KEY = os.getenv("MAILGUN_API_KEY", "")
MAILGUN_DOMAIN = os.getenv("MAILGUN_DOMAIN", "")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _int("SMTP_PORT", 587)
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")

# CRM (Clio Grow) and ESP (Kit)
CLIO_GROW_BASE = os.getenv("CLIO_GROW_BASE", "https://grow.clio.com").rstrip("/")
CLIO_GROW_INBOX_TOKEN = os.getenv("CLIO_GROW_INBOX_TOKEN", "")
KIT_API_KEY = os.getenv("KIT_API_KEY", "")
KIT_API_BASE = os.getenv("KIT_API_BASE", "https://api.kit.com/v4").rstrip("/")
KIT_FORM_ID = os.getenv("KIT_FORM_ID", "")

# Calendly
CALENDLY_WEBHOOK_SECRET = os.getenv("CALENDLY_WEBHOOK_SECRET", "")
CALENDLY_LINKS = {
    "estate": os.getenv("CALENDLY_LINK_ESTATE", "https://calendly.com/jacobscounsel/wealth-protection-consultation"),
    "business": os.getenv("CALENDLY_LINK_BUSINESS", "https://calendly.com/jacobscounsel/business-protection-consultation"),
    "brand": os.getenv("CALENDLY_LINK_BRAND", "https://calendly.com/jacobscounsel/brand-protection-consultation"),
    "counsel": os.getenv("CALENDLY_LINK_COUNSEL", "https://calendly.com/jacobscounsel/outside-counsel-consultation"),
    "gaming": os.getenv("CALENDLY_LINK_GAMING", "https://calendly.com/jacobscounsel/gaming-consultation"),
    "priority": os.getenv("CALENDLY_LINK_PRIORITY", "https://calendly.com/jacobscounsel/priority-consultation"),
    "general": os.getenv("CALENDLY_LINK_GENERAL", "https://calendly.com/jacobscounsel/general-consultation"),
}

# Dispatcher worker
DISPATCH_INTERVAL_SECONDS = _int("DISPATCH_INTERVAL_SECONDS", 60)
DISPATCH_BATCH_SIZE = _int("DISPATCH_BATCH_SIZE", 50)
DISPATCH_MAX_ATTEMPTS = _int("DISPATCH_MAX_ATTEMPTS", 3)
DISPATCH_BACKOFF_SECONDS = _int("DISPATCH_BACKOFF_SECONDS", 5)
RESUME_STAGGER_HOURS = _int("RESUME_STAGGER_HOURS", 24)

# Intake
INTAKE_RATE_LIMIT_MAX = _int("INTAKE_RATE_LIMIT_MAX", 60)
INTAKE_RATE_LIMIT_WINDOW_MINUTES = _int("INTAKE_RATE_LIMIT_WINDOW_MINUTES", 15)
INTAKE_FANOUT_CONCURRENCY = _int("INTAKE_FANOUT_CONCURRENCY", 8)
INTAKE_DEADLINE_SECONDS = _int("INTAKE_DEADLINE_SECONDS", 30)
EXTERNAL_CALL_TIMEOUT_SECONDS = _int("EXTERNAL_CALL_TIMEOUT_SECONDS", 10)
MAX_ATTACHMENTS = _int("MAX_ATTACHMENTS", 15)
MAX_ATTACHMENT_BYTES = _int("MAX_ATTACHMENT_BYTES", 5 * 1024 * 1024)
