#!/usr/bin/env python3
"""
Promote an existing user to ADMIN. Run on the server to bootstrap the first
administrator; every later role change goes through PUT /admin/users/{id}/role.

Usage:
    python demo/promote_admin.py admin@example.com
"""
import asyncio
import sys

from league_ledger.database import AsyncSessionLocal, engine
from league_ledger.logging_config import configure_logging
from league_ledger.services import privilege_service


async def promote(email: str):
    async with AsyncSessionLocal() as s:
        user = await privilege_service.bootstrap_admin(s, email)
        await s.commit()
        print(f"{user.email} is now {user.role.value} (version {user.version})")
    await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: promote_admin.py EMAIL")
    configure_logging()
    asyncio.run(promote(sys.argv[1]))
