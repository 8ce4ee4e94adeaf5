"""
Seed a development database and Stripe account.

Creates a test owner with a team, and the Base and Plus monthly plans in
Stripe. Run from the backend directory:

    python -m infrastructure.database.seed
"""

import asyncio
import logging

from sqlalchemy import select

from adapters.payments.stripe_adapter import StripeAdapter, create_stripe_adapter
from core.security.password import password_hasher
from infrastructure.database.connection import get_db_context, init_db
from infrastructure.database.models import Team, TeamMember, TeamMemberRole, User
from infrastructure.logging_config import setup_logging

logger = logging.getLogger(__name__)

SEED_EMAIL = "test@test.com"
SEED_PASSWORD = "admin123"

PLANS = [
    # (name, description, monthly amount in cents)
    ("Base", "Base subscription plan", 800),
    ("Plus", "Plus subscription plan", 1200),
]
PLAN_TRIAL_DAYS = 7


async def seed_team() -> None:
    async with get_db_context() as db:
        existing = await db.execute(select(User).where(User.email == SEED_EMAIL))
        if existing.scalar_one_or_none() is not None:
            logger.info("Seed user %s already exists, skipping", SEED_EMAIL)
            return

        user = User(
            email=SEED_EMAIL,
            password_hash=password_hasher.hash(SEED_PASSWORD),
            role=TeamMemberRole.OWNER.value,
        )
        team = Team(name="Test Team")
        db.add_all([user, team])
        await db.flush()

        db.add(TeamMember(team_id=team.id, user_id=user.id, role=TeamMemberRole.OWNER.value))
    logger.info("Initial user and team created")


async def seed_stripe_products(stripe: StripeAdapter) -> None:
    logger.info("Creating Stripe products and prices...")
    for name, description, amount in PLANS:
        product = await stripe.create_product(name=name, description=description)
        await stripe.create_price(
            product_id=product.id,
            unit_amount=amount,
            currency="usd",
            interval="month",
            trial_period_days=PLAN_TRIAL_DAYS,
        )
        logger.info("Created %s plan (%s)", name, product.id)
    logger.info("Stripe products and prices created successfully")


async def seed() -> None:
    await init_db()
    await seed_team()
    await seed_stripe_products(create_stripe_adapter())


if __name__ == "__main__":
    setup_logging(level="INFO")
    asyncio.run(seed())
