"""One-time script to create (or reset) a terminal operator.

Usage:
    python -m kenpos.create_admin
"""

from __future__ import annotations

import getpass

from sqlalchemy import func

from kenpos.app.core.database import SessionLocal
from kenpos.app.core.security import get_password_hash

# Import all models so SQLAlchemy resolves relationships
import kenpos.app.models.registry  # noqa: F401

from kenpos.app.models.user import RoleEnum, User


def main() -> None:
    username = input("Username [admin]: ").strip() or "admin"
    name = input("Display name [Administrator]: ").strip() or "Administrator"
    password = getpass.getpass("Password: ")
    if not password:
        print("Error: password cannot be empty.")
        return

    db = SessionLocal()
    try:
        existing = db.query(User).filter(
            func.lower(User.username) == username.lower()
        ).first()
        if existing:
            existing.hashed_password = get_password_hash(password)
            existing.is_active = True
            db.commit()
            print("Operator already exists, password reset.")
            print(f"  ID:       {existing.id}")
            print(f"  Username: {username}")
            return

        user = User(
            username=username,
            name=name,
            hashed_password=get_password_hash(password),
            role=RoleEnum.ADMIN,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        print("Operator created successfully!")
        print(f"  ID:       {user.id}")
        print(f"  Username: {username}")
        print(f"  Role:     {user.role.value}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
