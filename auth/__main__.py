"""Command line interface for account administration.

Usage:
    python -m auth promote <email>          Grant the admin role
    python -m auth role <email> <role>      Set any role (artist|admin)
"""
import argparse
import asyncio
import logging
import sys

from database import init_db, close as db_close
from . import AuthManager, AuthError, ROLES

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

async def set_role(email: str, role: str) -> int:
    await init_db()
    try:
        user = await AuthManager().set_role(email, role)
        print(f"{user['username']} <{user['email']}> is now {user['role']}")
        return 0
    except AuthError as e:
        logger.error(str(e))
        return 1
    finally:
        await db_close()

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="python -m auth")
    commands = parser.add_subparsers(dest="command", required=True)

    promote = commands.add_parser("promote", help="grant the admin role")
    promote.add_argument("email")

    role = commands.add_parser("role", help="set a user's role")
    role.add_argument("email")
    role.add_argument("role", choices=ROLES)

    args = parser.parse_args(argv)
    target_role = 'admin' if args.command == 'promote' else args.role
    return asyncio.run(set_role(args.email, target_role))

if __name__ == "__main__":
    sys.exit(main())
