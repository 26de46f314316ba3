"""
Unauthenticated routes. They still need a tenant, and only return data
that is safe to show on a gym's public pages.

    GET /portal/plans        - Active membership plans for enrollment
    GET /public/waiver-data  - Settings the waiver signing page needs
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .core.db import get_session
from .core.responses import ApiError, internal_error
from .models import MembershipPlan, Setting
from .schemas import MembershipPlanOut, WaiverDataOut
from .tenancy import Where, list_where, resolve_tenant

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public"])

# Setting key -> response field. Nothing outside this list is exposed.
WAIVER_SETTING_FIELDS = {
    "waiver_content": "waiver_content",
    "gym_settings": "gym_settings",
    "gymLogo": "gym_logo",
    "waiver_options": "waiver_options",
}


@router.get("/portal/plans", response_model=list[MembershipPlanOut])
async def list_public_plans(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        tenant = await resolve_tenant(request, session)
        plans = await list_where(
            session,
            MembershipPlan,
            Where.for_tenant(MembershipPlan, tenant.client_id).equals(MembershipPlan.is_active, True),
            [MembershipPlan.sort_order.asc(), MembershipPlan.name.asc()],
        )
        return [MembershipPlanOut.model_validate(p) for p in plans]
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /portal/plans", "Failed to load plans")


@router.get("/public/waiver-data", response_model=WaiverDataOut)
async def get_waiver_data(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        tenant = await resolve_tenant(request, session)
        settings = await list_where(
            session,
            Setting,
            Where.for_tenant(Setting, tenant.client_id).in_list(Setting.key, WAIVER_SETTING_FIELDS),
        )
        values = {WAIVER_SETTING_FIELDS[s.key]: s.value or None for s in settings}
        return WaiverDataOut(**values)
    except ApiError as exc:
        return exc.to_response()
    except Exception:
        return internal_error(logger, "GET /public/waiver-data", "Failed to load waiver data")
