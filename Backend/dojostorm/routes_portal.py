"""
Member portal routes.

Login is tenant-scoped (a member signs in to the gym whose subdomain they
are on). Everything after login reads by the session's member id only.

    POST /portal/auth/login         - Password login, sets portal_session
    POST /portal/auth/logout        - Ends the session
    GET  /portal/auth/me            - Profile, active membership, flags
    POST /portal/auth/set-password  - Set or change the portal password
    GET  /portal/invoices           - Latest 50 invoices
    GET  /portal/memberships        - All memberships with plan details
    GET  /portal/store/orders       - Completed online store orders
    GET  /portal/trial              - Current trial pass, if any
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .auth import AUDIT_PASSWORD_SET, log_audit
from .core.db import get_session
from .core.responses import ApiError, NotFound, Unauthorized, ValidationFailed, internal_error
from .models import (
    Invoice,
    Member,
    Membership,
    PosTransaction,
    SignedWaiver,
    TrialPass,
    TrialPassStatus,
)
from .passwords import check_password_policy, hash_password
from .portal_auth import (
    authenticate_member,
    clear_session_cookie,
    create_member_session,
    destroy_member_session,
    get_session_token_from_request,
    require_member,
    set_session_cookie,
)
from .schemas import (
    InvoiceOut,
    MembershipOut,
    OrderList,
    OrderOut,
    PortalLoginRequest,
    PortalMeResponse,
    PortalMembershipSummary,
    SetPasswordRequest,
    SuccessResponse,
    TrialPassOut,
    TrialResponse,
)
from .tenancy import Where, count_where, first_where, list_where, resolve_tenant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["portal"])

PORTAL_LIST_LIMIT = 50
STORE_PAYMENT_METHOD = "STRIPE"
COMPLETED_STATUS = "COMPLETED"


# ────────────────────────────────────────────────────────────────
# Auth
# ────────────────────────────────────────────────────────────────

@router.post("/auth/login", response_model=SuccessResponse)
async def portal_login(
    payload: PortalLoginRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    try:
        tenant = await resolve_tenant(request, session)
        if not payload.email or not payload.password:
            raise ValidationFailed("Email and password are required")

        member = await authenticate_member(session, tenant.client_id, payload.email, payload.password)
        if not member:
            raise Unauthorized("Invalid email or password")

        token = await create_member_session(session, member.id)
        await session.commit()

        response = JSONResponse({"success": True, "session": True})
        set_session_cookie(response, token)
        logger.info(f"Member {member.id} signed in to the portal of client {tenant.client_id}")
        return response
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "POST /portal/auth/login", "Failed to sign in")


@router.post("/auth/logout", response_model=SuccessResponse)
async def portal_logout(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        token = get_session_token_from_request(request)
        if token:
            await destroy_member_session(session, token)
        response = JSONResponse({"success": True})
        clear_session_cookie(response)
        return response
    except Exception:
        return internal_error(logger, "POST /portal/auth/logout", "Failed to sign out")


@router.get("/auth/me", response_model=PortalMeResponse)
async def portal_me(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        auth = await require_member(request, session)
        member = await session.get(Member, auth.member_id)
        if not member:
            raise NotFound("Member not found")

        membership = await first_where(
            session,
            Membership,
            Where.for_member(Membership, auth.member_id).equals(Membership.status, "ACTIVE"),
            [Membership.start_date.desc()],
            options=[selectinload(Membership.membership_plan)],
        )
        pending_waivers = await count_where(
            session,
            SignedWaiver,
            Where.for_member(SignedWaiver, auth.member_id).equals(SignedWaiver.confirmed, False),
        )

        active_membership = None
        if membership:
            active_membership = PortalMembershipSummary(
                id=membership.id,
                status=membership.status,
                start_date=membership.start_date,
                end_date=membership.end_date,
                plan_name=membership.membership_plan.name,
                billing_cycle=membership.membership_plan.billing_cycle,
            )

        return PortalMeResponse(
            id=member.id,
            first_name=member.first_name,
            last_name=member.last_name,
            email=member.email,
            phone=member.phone,
            status=member.status,
            member_number=member.member_number,
            waiver_signed=member.waiver_signed,
            active_membership=active_membership,
            must_set_password=not member.portal_password_hash,
            has_pending_waiver=pending_waivers > 0,
        )
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /portal/auth/me", "Failed to load profile")


@router.post("/auth/set-password", response_model=SuccessResponse)
async def portal_set_password(
    payload: SetPasswordRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    try:
        auth = await require_member(request, session)
        password = check_password_policy(payload.password)

        member = await session.get(Member, auth.member_id)
        if not member:
            raise NotFound("Member not found")

        member.portal_password_hash = hash_password(password)
        await log_audit(
            session,
            client_id=member.client_id,
            entity_type="MEMBER",
            entity_id=member.id,
            action=AUDIT_PASSWORD_SET,
            summary="Member set a portal password",
        )
        await session.commit()
        return SuccessResponse()
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "POST /portal/auth/set-password", "Failed to set password")


# ────────────────────────────────────────────────────────────────
# Self-service reads
# ────────────────────────────────────────────────────────────────

@router.get("/invoices", response_model=list[InvoiceOut])
async def portal_invoices(request: Request, session: AsyncSession = Depends(get_session)):
    """The member's newest invoices with the billed plan's name."""
    try:
        auth = await require_member(request, session)
        invoices = await list_where(
            session,
            Invoice,
            Where.for_member(Invoice, auth.member_id),
            [Invoice.created_at.desc()],
            limit=PORTAL_LIST_LIMIT,
            options=[selectinload(Invoice.membership).selectinload(Membership.membership_plan)],
        )

        results = []
        for invoice in invoices:
            out = InvoiceOut.model_validate(invoice)
            if invoice.membership:
                out.plan_name = invoice.membership.membership_plan.name
            results.append(out)
        return results
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /portal/invoices", "Failed to load invoices")


@router.get("/memberships", response_model=list[MembershipOut])
async def portal_memberships(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        auth = await require_member(request, session)
        memberships = await list_where(
            session,
            Membership,
            Where.for_member(Membership, auth.member_id),
            [Membership.start_date.desc()],
            options=[selectinload(Membership.membership_plan)],
        )
        return [MembershipOut.model_validate(m) for m in memberships]
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /portal/memberships", "Failed to load memberships")


@router.get("/store/orders", response_model=OrderList)
async def portal_store_orders(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        auth = await require_member(request, session)
        orders = await list_where(
            session,
            PosTransaction,
            Where.for_member(PosTransaction, auth.member_id)
            .equals(PosTransaction.payment_method, STORE_PAYMENT_METHOD)
            .equals(PosTransaction.status, COMPLETED_STATUS),
            [PosTransaction.created_at.desc()],
            limit=PORTAL_LIST_LIMIT,
            options=[selectinload(PosTransaction.line_items)],
        )
        return OrderList(orders=[OrderOut.model_validate(o) for o in orders])
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /portal/store/orders", "Failed to load orders")


@router.get("/trial", response_model=TrialResponse)
async def portal_trial(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        auth = await require_member(request, session)
        trial = await first_where(
            session,
            TrialPass,
            Where.for_member(TrialPass, auth.member_id).equals(TrialPass.status, TrialPassStatus.ACTIVE.value),
            [TrialPass.created_at.desc()],
        )
        return TrialResponse(trial=TrialPassOut.model_validate(trial) if trial else None)
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /portal/trial", "Failed to load trial")
