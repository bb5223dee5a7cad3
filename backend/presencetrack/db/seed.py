"""
Seed script: creates a default admin and one sample employee.

Usage:
    python -m presencetrack.db.seed
"""

import asyncio
import uuid

from sqlalchemy import select

from presencetrack.core.security import hash_password
from presencetrack.db.models import User
from presencetrack.db.session import AsyncSessionLocal
from presencetrack.services.planning import relink_orphan_planning

SEED_USERS = (
    {
        "username": "admin",
        "password": "admin123",
        "role": "admin",
        "employee_code": "ADM001",
        "full_name": "Administrateur Système",
        "department": "Direction",
    },
    {
        "username": "employee",
        "password": "employee123",
        "role": "employee",
        "employee_code": "EMP001",
        "full_name": "Employé Démo",
        "department": "Monétique",
    },
)


async def ensure_user(session, entry: dict) -> User:
    result = await session.execute(select(User).where(User.username == entry["username"]))
    user = result.scalar_one_or_none()
    if user:
        print(f"User '{entry['username']}' already exists, skipping.")
        return user

    user = User(
        id=uuid.uuid4(),
        username=entry["username"],
        password_hash=hash_password(entry["password"]),
        role=entry["role"],
        employee_code=entry["employee_code"],
        full_name=entry["full_name"],
        department=entry["department"],
        is_active=True,
    )
    session.add(user)
    await session.flush()
    linked = await relink_orphan_planning(session, user)
    print(f"Created {entry['role']} '{entry['username']}': id={user.id}, linked planning rows={linked}")
    return user


async def main():
    async with AsyncSessionLocal() as session:
        async with session.begin():
            for entry in SEED_USERS:
                await ensure_user(session, entry)
            print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(main())
