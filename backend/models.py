from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class SubmissionKind(str, Enum):
    ESTATE = "estate"
    BUSINESS_FORMATION = "business_formation"
    BRAND_PROTECTION = "brand_protection"
    OUTSIDE_COUNSEL = "outside_counsel"
    LEGAL_STRATEGY = "legal_strategy"
    LEGAL_RISK_ASSESSMENT = "legal_risk_assessment"
    NEWSLETTER = "newsletter"
    RESOURCE_GUIDE = "resource_guide"
    GAMING_LEGAL = "gaming_legal"
    SUBSCRIBER = "subscriber"

    @property
    def slug(self) -> str:
        return self.value.replace("_", "-")

class ResourceVariant(str, Enum):
    GENERAL = "general"
    BUSINESS = "business"
    BRAND = "brand"
    ESTATE = "estate"

class Priority(str, Enum):
    STANDARD = "standard"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class ClientProfile(str, Enum):
    ATHLETE = "athlete"
    CREATOR = "creator"
    STARTUP = "startup"
    FAMILY = "family"
    BUSINESS_OWNER = "business_owner"
    GENERIC = "generic"

class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class MessageStatus(str, Enum):
    PENDING = "pending"
    PAUSED = "paused"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

class BookingKind(str, Enum):
    GENERAL = "general"
    ESTATE = "estate"
    BUSINESS = "business"
    BRAND = "brand"
    COUNSEL = "counsel"
    VIP = "vip"

class BookingStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class BookingSource(str, Enum):
    WEBHOOK = "webhook"
    MANUAL = "manual"

class InteractionKind(str, Enum):
    FORM_SUBMITTED = "form_submitted"
    EMAIL_SENT = "email_sent"
    EMAIL_SEND_FAILED = "email_send_failed"
    INTERNAL_ALERT_SENT = "internal_alert_sent"
    INTERNAL_ALERT_FAILED = "internal_alert_failed"
    CLIENT_CONFIRMATION_SENT = "client_confirmation_sent"
    CLIENT_CONFIRMATION_FAILED = "client_confirmation_failed"
    CRM_CREATED = "crm_created"
    CRM_FAILED = "crm_failed"
    ESP_TAGGED = "esp_tagged"
    ESP_FAILED = "esp_failed"
    ENROLLMENT_CREATED = "enrollment_created"
    ENROLLMENT_CANCELLED = "enrollment_cancelled"
    ENROLLMENT_PAUSED = "enrollment_paused"
    ENROLLMENT_RESUMED = "enrollment_resumed"
    BOOKING_CREATED = "booking_created"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str, at: Optional[datetime] = None) -> str:
    """Opaque ids in the form PREFIX-YYYYmmddHHMMSS-XXXXXX."""
    stamp = (at or utc_now()).strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:6].upper()}"

# ============================================================================
# PERSISTED ENTITIES
# ============================================================================

class Lead(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: new_id("LEAD"))
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    business_name: Optional[str] = None
    submission_kind: SubmissionKind
    resource_variant: Optional[ResourceVariant] = None
    score: int = 0
    priority: Priority = Priority.STANDARD
    score_factors: List[str] = Field(default_factory=list)
    profile: ClientProfile = ClientProfile.GENERIC
    form_data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

class Interaction(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: new_id("INT"))
    lead_id: Optional[str] = None
    kind: InteractionKind
    detail: Dict[str, Any] = Field(default_factory=dict)
    at: datetime = Field(default_factory=utc_now)

class Enrollment(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: new_id("ENR"))
    lead_id: str
    email: str
    pathway_name: str
    trigger: str
    score: int = 0
    profile: ClientProfile = ClientProfile.GENERIC
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    pause_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

class ScheduledMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: new_id("MSG"))
    enrollment_id: Optional[str] = None  # None for one-off confirmations
    lead_id: Optional[str] = None
    email: str
    first_name: Optional[str] = None
    step_index: int = 0
    subject_template: str
    body_template_id: str
    send_at: datetime
    status: MessageStatus = MessageStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None
    provider: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

class Booking(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: new_id("BKG"))
    email: str
    kind: BookingKind = BookingKind.GENERAL
    status: BookingStatus = BookingStatus.SCHEDULED
    scheduled_at: Optional[datetime] = None
    source: BookingSource = BookingSource.WEBHOOK
    payload: Dict[str, Any] = Field(default_factory=dict)
    event_key: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
