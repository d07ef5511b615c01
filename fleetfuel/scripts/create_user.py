"""
Create an account (e.g. first admin). Run from project root:
  python -m fleetfuel.scripts.create_user EMAIL PASSWORD NAME [role]
Example:
  python -m fleetfuel.scripts.create_user admin@example.com 'S3cure!pass' "Fleet Admin" admin
"""
import argparse
import logging
import sys

from fleetfuel.core.config import get_settings
from fleetfuel.core.database import SessionLocal
from fleetfuel.core.security import AuthConfig
from fleetfuel.schemas.auth import ROLE_VALUES, Role
from fleetfuel.services.auth import AuthService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a Fleet Fuel account.")
    parser.add_argument("email", help="Email address (unique)")
    parser.add_argument("password", help="Password (8+ chars, upper, lower, digit, special)")
    parser.add_argument("name", help="Display name")
    parser.add_argument("role", nargs="?", default=Role.USER.value, choices=sorted(ROLE_VALUES))
    args = parser.parse_args(argv)

    config = AuthConfig.from_settings(get_settings())
    db = SessionLocal()
    try:
        result = AuthService(db, config).register(
            email=args.email.strip(),
            password=args.password,
            name=args.name.strip(),
            role=args.role,
        )
    finally:
        db.close()

    if not result.success:
        print(f"{result.code.value}: {result.error}", file=sys.stderr)
        return 1
    user = result.data.user
    print(f"Created account '{user.email}' (id={user.id}) with role '{user.role.value}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
