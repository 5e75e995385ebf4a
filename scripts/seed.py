"""
Seed Script

Populates the database with demo data for development and testing.
Creates the "Blue Door Coffee" tenant with authenticated and tip-only
employees and prints a bearer token for the owner.

Usage:
    python -m scripts.seed
"""

import asyncio
from uuid import uuid4

from backend.db.session import get_async_session
from backend.models.employee import TipEmployee, UserProfile
from backend.models.tenant import Tenant
from backend.services.auth import create_access_token


async def seed():
    """Create demo data."""
    async with get_async_session() as db:
        # ── Tenant ────────────────────────────────────────
        tenant = Tenant(
            id=uuid4(),
            name="Blue Door Coffee",
            slug="blue-door-coffee",
            is_active=True,
        )
        db.add(tenant)
        await db.flush()

        # ── Authenticated employees ───────────────────────
        owner = UserProfile(
            id=uuid4(),
            tenant_id=tenant.id,
            full_name="Maya Chen",
            email="maya@bluedoor.coffee",
            role="owner",
        )
        db.add(owner)

        profiles_data = [
            ("Jane Doe", "jane@bluedoor.coffee", "manager"),
            ("Luis Ortega", "luis@bluedoor.coffee", "employee"),
            ("Priya Nair", "priya@bluedoor.coffee", "employee"),
        ]
        for full_name, email, role in profiles_data:
            db.add(
                UserProfile(
                    id=uuid4(),
                    tenant_id=tenant.id,
                    full_name=full_name,
                    email=email,
                    role=role,
                )
            )

        # ── Tip-only employees ────────────────────────────
        tip_names = ["Sam Park", "Jane D.", "Alex Rivera"]
        for name in tip_names:
            db.add(TipEmployee(id=uuid4(), tenant_id=tenant.id, name=name))

        await db.flush()

        token = create_access_token(
            sub=str(owner.id),
            email=owner.email,
            tenant_id=str(tenant.id),
            role=owner.role,
        )

        print(f"Seeded tenant: {tenant.name} (ID: {tenant.id})")
        print(f"Owner: {owner.email}")
        print(f"Owner bearer token: {token}")
        print(f"User profiles: {len(profiles_data) + 1}")
        print(f"Tip employees: {len(tip_names)}")


if __name__ == "__main__":
    asyncio.run(seed())
