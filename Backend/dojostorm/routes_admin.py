"""
Staff (admin) API routes.

Every route here is tenant-scoped: the tenant comes from the request's
routing data, the staff session must have been issued for that tenant, and
the session must hold the permission key mapped to the route prefix.

    GET   /audit-log                    - Paginated audit trail
    POST  /auth/login                   - Staff login, sets admin_session
    POST  /auth/logout                  - Clears admin_session
    GET   /auth/me                      - Current staff user
    GET   /email-templates              - All templates (seeds defaults once)
    PUT   /email-templates              - Customize a template
    PATCH /email-templates              - Enable or disable a template
    GET   /email-templates/{key}        - One template, default as fallback
    POST  /email-templates/{key}/reset  - Restore the default content
    GET   /enrollment-submissions       - Online enrollment applications
    GET   /gift-certificates            - All certificates
    GET   /gift-certificates/lookup     - Balance check by code
    GET   /programs                     - Active programs
    GET   /waivers/pending              - Waivers awaiting confirmation
    GET   /waivers/signed/{member_id}   - One member's signed waivers
    GET   /export/members               - Member roster as CSV
    GET   /payments/config              - Whether Stripe is configured
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .auth import (
    AUDIT_TEMPLATE_RESET,
    AUDIT_TEMPLATE_TOGGLED,
    AUDIT_TEMPLATE_UPDATED,
    AdminSession,
    authenticate_staff,
    clear_admin_session_cookie,
    compute_changes,
    create_admin_session_token,
    log_audit,
    require_staff,
    set_admin_session_cookie,
)
from .core.db import get_session
from .core.responses import (
    ApiError,
    NotFound,
    Unauthorized,
    ValidationFailed,
    internal_error,
)
from .csv_export import csv_response, to_csv
from .email_template_defaults import DEFAULT_EMAIL_TEMPLATES, get_default_template
from .models import (
    AuditLog,
    EmailTemplate,
    EnrollmentSubmission,
    GiftCertificate,
    GiftCertificateStatus,
    Member,
    Membership,
    MembershipPlan,
    Program,
    SignedWaiver,
    User,
)
from .payments import get_stripe_client
from .permissions import get_permission_for_route, get_role_permissions
from .schemas import (
    AuditLogOut,
    AuditLogPage,
    EmailTemplateOut,
    EmailTemplateToggle,
    EmailTemplateUpdate,
    EnrollmentSubmissionOut,
    GiftCertificateList,
    GiftCertificateLookup,
    GiftCertificateOut,
    LoginRequest,
    LoginResponse,
    MeResponse,
    PaymentConfigOut,
    PendingWaiverList,
    PendingWaiverOut,
    ProgramList,
    ProgramOut,
    SignedWaiverList,
    SignedWaiverOut,
    StaffUserOut,
    SuccessResponse,
)
from .tenancy import (
    Pagination,
    TenantContext,
    Where,
    count_where,
    fetch_names_by_ids,
    fetch_page,
    first_where,
    list_where,
    resolve_tenant,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])

ENTITY_EMAIL_TEMPLATE = "EMAIL_TEMPLATE"


async def staff_scope(request: Request, session: AsyncSession) -> tuple[TenantContext, AdminSession]:
    """Resolve the tenant and the staff session allowed to act on this route."""
    tenant = await resolve_tenant(request, session)
    admin = require_staff(request, tenant, get_permission_for_route(request.url.path))
    return tenant, admin


# ────────────────────────────────────────────────────────────────
# Audit log
# ────────────────────────────────────────────────────────────────

@router.get("/audit-log", response_model=AuditLogPage)
async def list_audit_log(
    request: Request,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    search: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    """
    Tenant audit trail, newest first.

    ``entityType`` is an exact match, ``search`` a literal substring of the
    summary. ``total`` counts every entry matching the same filters.
    """
    try:
        tenant, _ = await staff_scope(request, session)
        pagination = Pagination.parse(limit, offset)

        where = (
            Where.for_tenant(AuditLog, tenant.client_id)
            .equals(AuditLog.entity_type, entity_type or None)
            .contains(AuditLog.summary, search)
        )
        page = await fetch_page(
            session, AuditLog, where, [AuditLog.created_at.desc(), AuditLog.id.desc()], pagination
        )
        return AuditLogPage(
            logs=[AuditLogOut.model_validate(entry) for entry in page.items],
            total=page.total,
        )
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /audit-log", "Failed to load audit log")


# ────────────────────────────────────────────────────────────────
# Staff auth
# ────────────────────────────────────────────────────────────────

@router.post("/auth/login", response_model=LoginResponse)
async def staff_login(
    payload: LoginRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    try:
        tenant = await resolve_tenant(request, session)
        if not payload.email or not payload.password:
            raise ValidationFailed("Email and password are required")

        user = await authenticate_staff(session, tenant.client_id, payload.email, payload.password)
        if not user:
            logger.info(f"Failed staff login for client {tenant.client_id}")
            raise Unauthorized("Invalid email or password")

        permissions = await get_role_permissions(session, tenant.client_id, user.role)
        token = create_admin_session_token(
            user_id=user.id,
            client_id=tenant.client_id,
            role=user.role,
            name=user.name,
            permissions=permissions,
            remember_me=payload.remember_me,
        )
        body = LoginResponse(
            user=StaffUserOut(
                id=user.id, email=user.email, name=user.name, role=user.role, permissions=permissions
            ),
            must_change_password=user.must_change_password,
        )
        response = JSONResponse(body.model_dump(mode="json", by_alias=True))
        set_admin_session_cookie(response, token, payload.remember_me)
        logger.info(f"Staff user {user.id} logged in to client {tenant.client_id}")
        return response
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "POST /auth/login", "Internal server error")


@router.post("/auth/logout", response_model=SuccessResponse)
async def staff_logout():
    response = JSONResponse({"success": True})
    clear_admin_session_cookie(response)
    return response


@router.get("/auth/me", response_model=MeResponse)
async def staff_me(request: Request, session: AsyncSession = Depends(get_session)):
    """
    Current staff user.

    Name, email and role are read fresh from the database. Permissions are
    the ones granted to the session at login.
    """
    try:
        tenant, admin = await staff_scope(request, session)
        user = await first_where(
            session, User, Where.for_tenant(User, tenant.client_id).equals(User.id, admin.user_id)
        )
        if not user:
            raise NotFound("User not found")

        return MeResponse(
            user=StaffUserOut(
                id=user.id,
                email=user.email,
                name=user.name,
                role=user.role,
                permissions=list(admin.permissions),
            )
        )
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /auth/me", "Failed to load user")


# ────────────────────────────────────────────────────────────────
# Email templates
# ────────────────────────────────────────────────────────────────

def _template_row(client_id: str, event_key: str) -> Where:
    return Where.for_tenant(EmailTemplate, client_id).equals(EmailTemplate.event_key, event_key)


async def seed_default_templates(session: AsyncSession, client_id: str) -> None:
    """Insert the default template set for a tenant that has none yet."""
    if await count_where(session, EmailTemplate, Where.for_tenant(EmailTemplate, client_id)):
        return

    for default in DEFAULT_EMAIL_TEMPLATES:
        session.add(
            EmailTemplate(
                client_id=client_id,
                event_key=default.event_key,
                name=default.name,
                subject=default.subject,
                body_html=default.body_html,
                variables=json.dumps(list(default.variables)),
                is_custom=False,
            )
        )
    try:
        await session.commit()
        logger.info(f"Seeded {len(DEFAULT_EMAIL_TEMPLATES)} default email templates for client {client_id}")
    except IntegrityError:
        # Another request seeded the same tenant first.
        await session.rollback()


@router.get("/email-templates", response_model=list[EmailTemplateOut])
async def list_email_templates(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        tenant, _ = await staff_scope(request, session)
        await seed_default_templates(session, tenant.client_id)
        templates = await list_where(
            session,
            EmailTemplate,
            Where.for_tenant(EmailTemplate, tenant.client_id),
            [EmailTemplate.event_key.asc()],
        )
        return [EmailTemplateOut.model_validate(t) for t in templates]
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /email-templates", "Failed to load email templates")


@router.put("/email-templates", response_model=EmailTemplateOut)
async def update_email_template(
    payload: EmailTemplateUpdate,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Upsert a tenant's customized template. The row is marked custom."""
    try:
        tenant, _ = await staff_scope(request, session)
        if not payload.event_key or not payload.subject or not payload.body_html:
            raise ValidationFailed("eventKey, subject, and bodyHtml are required")

        template = await first_where(session, EmailTemplate, _template_row(tenant.client_id, payload.event_key))
        if template:
            before = {"subject": template.subject, "is_custom": template.is_custom}
            template.subject = payload.subject
            template.body_html = payload.body_html
            template.is_custom = True
        else:
            before = {}
            default = get_default_template(payload.event_key)
            template = EmailTemplate(
                client_id=tenant.client_id,
                event_key=payload.event_key,
                name=payload.name or (default.name if default else payload.event_key),
                subject=payload.subject,
                body_html=payload.body_html,
                variables=json.dumps(list(default.variables)) if default else "[]",
                is_custom=True,
            )
            session.add(template)
        await session.flush()

        await log_audit(
            session,
            client_id=tenant.client_id,
            entity_type=ENTITY_EMAIL_TEMPLATE,
            entity_id=template.id,
            action=AUDIT_TEMPLATE_UPDATED,
            summary=f"Updated email template {template.event_key}",
            changes=compute_changes(
                before,
                {"subject": template.subject, "is_custom": template.is_custom},
                ["subject", "is_custom"],
            ),
        )
        await session.commit()
        return EmailTemplateOut.model_validate(template)
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "PUT /email-templates", "Failed to save email template")


@router.patch("/email-templates", response_model=EmailTemplateOut)
async def toggle_email_template(
    payload: EmailTemplateToggle,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    try:
        tenant, _ = await staff_scope(request, session)
        if not payload.event_key or not isinstance(payload.enabled, bool):
            raise ValidationFailed("eventKey and enabled (boolean) are required")

        template = await first_where(session, EmailTemplate, _template_row(tenant.client_id, payload.event_key))
        if not template:
            raise NotFound("Template not found")

        previous = template.enabled
        template.enabled = payload.enabled
        await log_audit(
            session,
            client_id=tenant.client_id,
            entity_type=ENTITY_EMAIL_TEMPLATE,
            entity_id=template.id,
            action=AUDIT_TEMPLATE_TOGGLED,
            summary=f"{'Enabled' if payload.enabled else 'Disabled'} email template {template.event_key}",
            changes=compute_changes({"enabled": previous}, {"enabled": payload.enabled}, ["enabled"]),
        )
        await session.commit()
        return EmailTemplateOut.model_validate(template)
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "PATCH /email-templates", "Failed to update email template")


@router.get("/email-templates/{event_key}", response_model=EmailTemplateOut)
async def get_email_template(
    event_key: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """The tenant's row for ``event_key``, or the unsaved default."""
    try:
        tenant, _ = await staff_scope(request, session)
        template = await first_where(session, EmailTemplate, _template_row(tenant.client_id, event_key))
        if template:
            return EmailTemplateOut.model_validate(template)

        default = get_default_template(event_key)
        if not default:
            raise NotFound("Template not found")
        return EmailTemplateOut(
            event_key=default.event_key,
            name=default.name,
            subject=default.subject,
            body_html=default.body_html,
            variables=list(default.variables),
            is_custom=False,
        )
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, f"GET /email-templates/{event_key}", "Failed to load email template")


@router.post("/email-templates/{event_key}/reset", response_model=EmailTemplateOut)
async def reset_email_template(
    event_key: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """
    Restore a template to its built-in content.

    Unknown keys are a 404 and write nothing. An existing row keeps its id,
    name and enabled flag; a missing row is created from the default.
    """
    try:
        tenant, _ = await staff_scope(request, session)
        default = get_default_template(event_key)
        if not default:
            raise NotFound("No default template for this key")

        template = await first_where(session, EmailTemplate, _template_row(tenant.client_id, event_key))
        if template:
            template.subject = default.subject
            template.body_html = default.body_html
            template.is_custom = False
        else:
            template = EmailTemplate(
                client_id=tenant.client_id,
                event_key=default.event_key,
                name=default.name,
                subject=default.subject,
                body_html=default.body_html,
                variables=json.dumps(list(default.variables)),
                is_custom=False,
            )
            session.add(template)
        await session.flush()

        await log_audit(
            session,
            client_id=tenant.client_id,
            entity_type=ENTITY_EMAIL_TEMPLATE,
            entity_id=template.id,
            action=AUDIT_TEMPLATE_RESET,
            summary=f"Reset email template {event_key} to default",
        )
        await session.commit()
        return EmailTemplateOut.model_validate(template)
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, f"POST /email-templates/{event_key}/reset", "Failed to reset email template")


# ────────────────────────────────────────────────────────────────
# Members & enrollment
# ────────────────────────────────────────────────────────────────

@router.get("/enrollment-submissions", response_model=list[EnrollmentSubmissionOut])
async def list_enrollment_submissions(request: Request, session: AsyncSession = Depends(get_session)):
    """Applications, newest first, with the chosen plan's name resolved in one lookup."""
    try:
        tenant, _ = await staff_scope(request, session)
        submissions = await list_where(
            session,
            EnrollmentSubmission,
            Where.for_tenant(EnrollmentSubmission, tenant.client_id),
            [EnrollmentSubmission.created_at.desc()],
        )
        plan_names = await fetch_names_by_ids(
            session, MembershipPlan, (s.selected_plan_id for s in submissions), tenant.client_id
        )

        results = []
        for submission in submissions:
            out = EnrollmentSubmissionOut.model_validate(submission)
            out.plan_name = plan_names.get(submission.selected_plan_id) if submission.selected_plan_id else None
            results.append(out)
        return results
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /enrollment-submissions", "Failed to load enrollments")


@router.get("/export/members")
async def export_members(
    request: Request,
    status: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    try:
        tenant, _ = await staff_scope(request, session)
        members = await list_where(
            session,
            Member,
            Where.for_tenant(Member, tenant.client_id).contains(Member.status, status),
            [Member.last_name.asc(), Member.first_name.asc()],
        )

        active_plans: dict[str, str] = {}
        member_ids = [m.id for m in members]
        if member_ids:
            result = await session.execute(
                select(Membership.member_id, MembershipPlan.name)
                .join(MembershipPlan, Membership.membership_plan_id == MembershipPlan.id)
                .where(
                    MembershipPlan.client_id == tenant.client_id,
                    Membership.member_id.in_(member_ids),
                    Membership.status == "ACTIVE",
                )
                .order_by(Membership.start_date.desc())
            )
            for member_id, plan_name in result:
                active_plans.setdefault(member_id, plan_name)

        headers = [
            "Member #",
            "First Name",
            "Last Name",
            "Email",
            "Phone",
            "Status",
            "Join Date",
            "Active Plan",
            "Waiver Signed",
        ]
        rows = [
            [
                str(m.member_number) if m.member_number is not None else "",
                m.first_name,
                m.last_name,
                m.email or "",
                m.phone or "",
                m.status,
                m.created_at.strftime("%Y-%m-%d") if m.created_at else "",
                active_plans.get(m.id, ""),
                "Yes" if m.waiver_signed else "No",
            ]
            for m in members
        ]

        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        logger.info(f"Exported {len(rows)} members for client {tenant.client_id}")
        return csv_response(to_csv(headers, rows), f"members-{today}.csv")
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /export/members", "Failed to export members")


# ────────────────────────────────────────────────────────────────
# Point of sale
# ────────────────────────────────────────────────────────────────

@router.get("/gift-certificates", response_model=GiftCertificateList)
async def list_gift_certificates(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        tenant, _ = await staff_scope(request, session)
        certificates = await list_where(
            session,
            GiftCertificate,
            Where.for_tenant(GiftCertificate, tenant.client_id),
            [GiftCertificate.created_at.desc()],
        )
        return GiftCertificateList(certificates=[GiftCertificateOut.model_validate(c) for c in certificates])
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /gift-certificates", "Failed to load gift certificates")


@router.get("/gift-certificates/lookup", response_model=GiftCertificateLookup)
async def lookup_gift_certificate(
    request: Request,
    code: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    """Check a certificate's redeemable balance. Codes are matched upper-cased."""
    try:
        tenant, _ = await staff_scope(request, session)
        if not code or not code.strip():
            raise ValidationFailed("Gift certificate code is required")

        certificate = await first_where(
            session,
            GiftCertificate,
            Where.for_tenant(GiftCertificate, tenant.client_id).equals(
                GiftCertificate.code, code.strip().upper()
            ),
        )
        if not certificate:
            raise NotFound("Gift certificate not found")
        if certificate.status == GiftCertificateStatus.VOIDED.value:
            raise ValidationFailed("This gift certificate has been voided")
        if certificate.status == GiftCertificateStatus.REDEEMED.value or certificate.balance_cents <= 0:
            raise ValidationFailed("This gift certificate has no remaining balance")

        return GiftCertificateLookup.model_validate(certificate)
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /gift-certificates/lookup", "Failed to look up gift certificate")


# ────────────────────────────────────────────────────────────────
# Classes
# ────────────────────────────────────────────────────────────────

@router.get("/programs", response_model=ProgramList)
async def list_programs(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        tenant, _ = await staff_scope(request, session)
        programs = await list_where(
            session,
            Program,
            Where.for_tenant(Program, tenant.client_id).equals(Program.is_active, True),
            [Program.name.asc()],
        )
        return ProgramList(programs=[ProgramOut.model_validate(p) for p in programs])
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /programs", "Failed to load programs")


# ────────────────────────────────────────────────────────────────
# Waivers
# ────────────────────────────────────────────────────────────────

@router.get("/waivers/pending", response_model=PendingWaiverList)
async def list_pending_waivers(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        tenant, _ = await staff_scope(request, session)
        waivers = await list_where(
            session,
            SignedWaiver,
            Where.for_tenant(SignedWaiver, tenant.client_id).equals(SignedWaiver.confirmed, False),
            [SignedWaiver.signed_at.desc()],
            options=[selectinload(SignedWaiver.member)],
        )
        return PendingWaiverList(pending_waivers=[PendingWaiverOut.model_validate(w) for w in waivers])
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /waivers/pending", "Failed to fetch")


@router.get("/waivers/signed/{member_id}", response_model=SignedWaiverList)
async def list_signed_waivers(
    member_id: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """
    Signed waiver documents for one member.

    Filtered by the member id AND the tenant, so a member id from another
    tenant returns an empty list.
    """
    try:
        tenant, _ = await staff_scope(request, session)
        waivers = await list_where(
            session,
            SignedWaiver,
            Where.for_tenant(SignedWaiver, tenant.client_id).equals(SignedWaiver.member_id, member_id),
            [SignedWaiver.signed_at.desc()],
        )
        return SignedWaiverList(waivers=[SignedWaiverOut.model_validate(w) for w in waivers])
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, f"GET /waivers/signed/{member_id}", "Failed to load waivers")


# ────────────────────────────────────────────────────────────────
# Payments
# ────────────────────────────────────────────────────────────────

@router.get("/payments/config", response_model=PaymentConfigOut)
async def payment_config(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        tenant, _ = await staff_scope(request, session)
        client = await get_stripe_client(session, tenant.client_id)
        return PaymentConfigOut(stripe_configured=client is not None)
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /payments/config", "Failed to load payment settings")
