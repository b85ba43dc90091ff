#!/usr/bin/env python3
"""Create a demo owner, a demo sitter and one walking service.

Prints the ids and access tokens the flow script needs.
"""

import asyncio

from sqlalchemy import select

from app.core.security import create_access_token
from app.database import get_db_context
from app.models.user import Service, User


async def get_or_create_user(session, email: str, name: str, role: str, policy: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        user.role = role
        user.cancellation_policy = policy
        user.is_active = True
        print(f"Updated existing user: {email}")
    else:
        user = User(email=email, name=name, role=role, cancellation_policy=policy)
        session.add(user)
        print(f"Created user: {email}")
    await session.flush()
    return user


async def seed(policy: str, price: int) -> None:
    async with get_db_context() as session:
        owner = await get_or_create_user(session, "owner@petlink.dev", "Demo Owner", "owner", "flexible")
        sitter = await get_or_create_user(session, "sitter@petlink.dev", "Demo Sitter", "sitter", policy)

        service = Service(sitter_id=sitter.id, service_type="walking", price=price)
        session.add(service)
        await session.flush()

        print(f"Owner:   {owner.id}")
        print(f"Sitter:  {sitter.id} ({policy} policy)")
        print(f"Service: {service.id} ({price} cents)")
        print(f"Owner token:  {create_access_token({'sub': str(owner.id)})}")
        print(f"Sitter token: {create_access_token({'sub': str(sitter.id)})}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed demo users and a service")
    parser.add_argument("--policy", default="flexible", choices=["flexible", "moderate", "strict"])
    parser.add_argument("--price", type=int, default=5000, help="Service price in cents")
    args = parser.parse_args()

    asyncio.run(seed(args.policy, args.price))
