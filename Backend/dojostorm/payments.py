"""
Payment provider client factory.

The tenant's own Stripe key (``payment_stripe_secret_key`` setting) wins over
the process-wide STRIPE_SECRET_KEY. No key anywhere means payments are not
configured and callers get None.
"""

import logging
from typing import Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .models import Setting

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY_SETTING = "payment_stripe_secret_key"


async def get_stripe_secret_key(session: AsyncSession, client_id: str) -> Optional[str]:
    result = await session.execute(
        select(Setting.value).where(
            Setting.client_id == client_id,
            Setting.key == STRIPE_SECRET_KEY_SETTING,
        )
    )
    key = result.scalar_one_or_none()
    return key or get_settings().stripe_secret_key or None


async def get_stripe_client(session: AsyncSession, client_id: str) -> Optional[stripe.StripeClient]:
    key = await get_stripe_secret_key(session, client_id)
    if not key:
        logger.debug(f"No Stripe key configured for client {client_id}")
        return None
    return stripe.StripeClient(key)
