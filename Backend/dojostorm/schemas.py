"""
Request and response models.

Wire names are camelCase (``entityType``, ``createdAt``); Python attributes
stay snake_case. Response models read straight from ORM rows.
"""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SuccessResponse(CamelModel):
    success: bool = True


# ────────────────────────────────────────────────────────────────
# Staff auth
# ────────────────────────────────────────────────────────────────

class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None
    remember_me: bool = False


class StaffUserOut(CamelModel):
    id: str
    email: Optional[str] = None
    name: str
    role: str
    permissions: list[str] = Field(default_factory=list)


class LoginResponse(CamelModel):
    user: StaffUserOut
    must_change_password: bool = False


class MeResponse(CamelModel):
    user: StaffUserOut


# ────────────────────────────────────────────────────────────────
# Audit log
# ────────────────────────────────────────────────────────────────

class AuditLogOut(CamelModel):
    id: str
    entity_type: str
    entity_id: str
    action: str
    summary: str
    changes: Optional[Any] = None
    created_at: datetime

    @field_validator("changes", mode="before")
    @classmethod
    def parse_changes(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError:
                return value
        return value


class AuditLogPage(CamelModel):
    logs: list[AuditLogOut]
    total: int


# ────────────────────────────────────────────────────────────────
# Email templates
# ────────────────────────────────────────────────────────────────

class EmailTemplateOut(CamelModel):
    id: Optional[str] = None
    event_key: str
    name: str
    subject: str
    body_html: str
    variables: list[str] = Field(default_factory=list)
    is_custom: bool = False
    enabled: bool = True
    updated_at: Optional[datetime] = None

    @field_validator("variables", mode="before")
    @classmethod
    def parse_variables(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError:
                return []
            return parsed if isinstance(parsed, list) else []
        return list(value or [])


class EmailTemplateUpdate(CamelModel):
    event_key: Optional[str] = None
    name: Optional[str] = None
    subject: Optional[str] = None
    body_html: Optional[str] = None


class EmailTemplateToggle(CamelModel):
    event_key: Optional[str] = None
    # Kept loose so "true" and 1 are rejected instead of coerced.
    enabled: Any = None


# ────────────────────────────────────────────────────────────────
# Staff resources
# ────────────────────────────────────────────────────────────────

class EnrollmentSubmissionOut(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    selected_plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    status: str
    created_at: datetime


class GiftCertificateOut(CamelModel):
    id: str
    code: str
    amount_cents: int
    balance_cents: int
    status: str
    recipient_name: Optional[str] = None
    purchaser_name: Optional[str] = None
    created_at: datetime


class GiftCertificateList(CamelModel):
    certificates: list[GiftCertificateOut]


class GiftCertificateLookup(CamelModel):
    code: str
    balance_cents: int
    amount_cents: int
    recipient_name: Optional[str] = None


class ProgramOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    is_active: bool


class ProgramList(CamelModel):
    programs: list[ProgramOut]


class WaiverMemberSummary(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str


class PendingWaiverOut(CamelModel):
    id: str
    template_name: str
    signed_at: datetime
    member: WaiverMemberSummary


class PendingWaiverList(CamelModel):
    pending_waivers: list[PendingWaiverOut]


class SignedWaiverOut(CamelModel):
    id: str
    template_name: str
    signed_at: datetime
    signature_data: Optional[str] = None
    pdf_data: Optional[str] = None


class SignedWaiverList(CamelModel):
    waivers: list[SignedWaiverOut]


class PaymentConfigOut(CamelModel):
    stripe_configured: bool


# ────────────────────────────────────────────────────────────────
# Portal
# ────────────────────────────────────────────────────────────────

class PortalLoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SetPasswordRequest(CamelModel):
    password: Optional[str] = None


class PortalMembershipSummary(CamelModel):
    id: str
    status: str
    start_date: datetime
    end_date: Optional[datetime] = None
    plan_name: Optional[str] = None
    billing_cycle: Optional[str] = None


class PortalMeResponse(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str
    member_number: Optional[int] = None
    waiver_signed: bool
    active_membership: Optional[PortalMembershipSummary] = None
    must_set_password: bool
    has_pending_waiver: bool


class InvoiceOut(CamelModel):
    id: str
    invoice_number: Optional[str] = None
    amount_cents: int
    status: str
    due_date: Optional[datetime] = None
    created_at: datetime
    plan_name: Optional[str] = None


class MembershipPlanOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    price_cents: int
    billing_cycle: str
    auto_renew: bool
    trial_days: Optional[int] = None
    contract_length_months: Optional[int] = None
    cancellation_notice_days: Optional[int] = None
    sort_order: int = 0


class MembershipPlanDetail(CamelModel):
    name: str
    price_cents: int
    billing_cycle: str
    auto_renew: bool
    description: Optional[str] = None
    contract_length_months: Optional[int] = None
    cancellation_notice_days: Optional[int] = None


class MembershipOut(CamelModel):
    id: str
    status: str
    start_date: datetime
    end_date: Optional[datetime] = None
    membership_plan: MembershipPlanDetail


class LineItemOut(CamelModel):
    id: str
    item_name: str
    quantity: int
    unit_price_cents: int


class OrderOut(CamelModel):
    id: str
    payment_method: str
    status: str
    total_cents: int
    created_at: datetime
    line_items: list[LineItemOut] = Field(default_factory=list)


class OrderList(CamelModel):
    orders: list[OrderOut]


class TrialPassOut(CamelModel):
    id: str
    classes_used: int
    max_classes: int
    expires_at: Optional[datetime] = None
    status: str
    created_at: datetime


class TrialResponse(CamelModel):
    trial: Optional[TrialPassOut] = None


# ────────────────────────────────────────────────────────────────
# Public
# ────────────────────────────────────────────────────────────────

class WaiverDataOut(CamelModel):
    waiver_content: Optional[str] = None
    gym_settings: Optional[str] = None
    gym_logo: Optional[str] = None
    waiver_options: Optional[str] = None
