from pydantic import BaseModel, EmailStr, ConfigDict, Field
from typing import Optional, List, Dict
from datetime import datetime

from eventcheckin.core.permissions import Role

# ------------------------------------------------------------------------------
# Attendees
# ------------------------------------------------------------------------------

class AttendeeCreate(BaseModel):
    # Plain strings: the service trims, truncates and validates
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None

class AttendeeResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    qr_token: str
    registration_type: str
    checked_in: bool
    first_checked_in_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class CheckInInstanceResponse(BaseModel):
    id: int
    attendee_id: int
    qr_token: str
    ordinal: int
    guest_type: str
    checked_in_at: datetime
    checked_in_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class AttendeeDetailResponse(AttendeeResponse):
    checkins: List[CheckInInstanceResponse] = []

class ImportRowError(BaseModel):
    line: int
    email: str
    error: str

class BatchUploadResponse(BaseModel):
    total_processed: int
    success_count: int
    skipped_emails: List[str]
    errors: List[ImportRowError] = []

class BulkDeleteRequest(BaseModel):
    attendee_ids: List[int] = Field(..., min_length=1)

class BulkDeleteResponse(BaseModel):
    deleted: int

class SendQREmailRequest(BaseModel):
    # Any of these may use {attendeeName}; unset fields keep the default wording
    subject: Optional[str] = Field(None, max_length=200)
    header_title: Optional[str] = Field(None, max_length=200)
    greeting: Optional[str] = Field(None, max_length=200)
    qr_instructions: Optional[str] = Field(None, max_length=500)
    closing_message: Optional[str] = Field(None, max_length=1000)
    custom_message: Optional[str] = Field(None, max_length=2000)

class SendQREmailResponse(BaseModel):
    success: bool
    message: str

# ------------------------------------------------------------------------------
# Check-in
# ------------------------------------------------------------------------------

class CheckInRequest(BaseModel):
    qr_token: str  # The decoded QR string

class CheckInResponse(BaseModel):
    ordinal: int
    guest_type: str
    guest_label: str
    attendee_name: str
    attendee_id: int
    qr_token: str
    checked_in_at: datetime

class RepairResponse(BaseModel):
    fixed: int

# ------------------------------------------------------------------------------
# Self-registration
# ------------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    token: str = ""
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    company: Optional[str] = None

class RegisterResponse(BaseModel):
    success: bool
    qr_token: str
    message: str

class RegistrationTokenCreate(BaseModel):
    expires_in_hours: Optional[int] = Field(None, gt=0)
    max_uses: int = Field(1, ge=1)
    notes: Optional[str] = None
    token: Optional[str] = Field(None, min_length=4, max_length=64)

class RegistrationTokenResponse(BaseModel):
    id: int
    token: str
    created_by: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    max_uses: int
    current_uses: int
    remaining_uses: int
    is_active: bool
    used_at: Optional[datetime] = None
    used_by_email: Optional[str] = None
    notes: Optional[str] = None
    registration_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

# ------------------------------------------------------------------------------
# Staff
# ------------------------------------------------------------------------------

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None

class StaffResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    role: Role
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: StaffResponse

class MeResponse(StaffResponse):
    permissions: List[str]

class InvitationCreate(BaseModel):
    email: EmailStr
    role: Role = Role.USER

class InvitationResponse(BaseModel):
    id: int
    email: str
    role: Role
    invited_by: Optional[str] = None
    invited_at: datetime
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    status: str

    model_config = ConfigDict(from_attributes=True)

class RoleUpdate(BaseModel):
    role: Role

# ------------------------------------------------------------------------------
# Activity log and reports
# ------------------------------------------------------------------------------

class ActivityLogResponse(BaseModel):
    id: int
    timestamp: datetime
    type: str
    action: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    details: Optional[str] = None
    status: str
    metadata: Dict = Field(default_factory=dict, validation_alias="extra")

    model_config = ConfigDict(from_attributes=True)

class ReportSummary(BaseModel):
    total_attendees: int
    checked_in: int
    pending: int
    checkin_rate: int
    pre_registered: int
    walk_in: int
    total_scans: int
    original_guests: int
    plus_guests_by_type: Dict[str, int]
    total_plus_guests: int
    tokens_with_plus_guests: int
