"""Bootstrap script: create a staff account (admin, deal manager, ...).

Usage:
    python scripts/create_staff_user.py admin@saheminvest.com "Platform Admin" ADMIN

Prints a one-time password; the account must change it on first sign-in.
"""

import asyncio
import logging
import os
import sys

# Ensure src is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
logger = logging.getLogger(__name__)


async def create_staff_user(email: str, name: str, role: str) -> None:
    from sahem_invest.domain.enums import UserRole
    from sahem_invest.domain.models import User
    from sahem_invest.infra.database import async_session, init_db
    from sahem_invest.services.auth_service import get_user_by_email, hash_password
    from sahem_invest.services.onboarding_service import generate_temporary_password

    try:
        user_role = UserRole(role.upper())
    except ValueError:
        logger.error("Unknown role %s (expected one of %s)", role, ", ".join(r.value for r in UserRole))
        return

    await init_db()

    async with async_session() as session:
        if await get_user_by_email(session, email):
            logger.error("A user with email %s already exists.", email)
            return

        password = generate_temporary_password()
        session.add(
            User(
                email=email.strip(),
                name=name,
                role=user_role.value,
                password_hash=hash_password(password),
                is_active=True,
                email_verified=True,
                needs_password_change=True,
            )
        )
        await session.commit()

    logger.info("Created %s account %s", user_role.value, email)
    print(f"Temporary password: {password}")


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(1)
    asyncio.run(create_staff_user(*sys.argv[1:4]))
