import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, or_
from sqlalchemy.orm import Session, sessionmaker

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.models import User  # noqa: E402
from app.crm.security import hash_password  # noqa: E402
from app.crm.utils import utcnow  # noqa: E402


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True, pool_pre_ping=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the first admin account in an idempotent way.
    Does NOT overwrite an existing user's password or role.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///crm.db").strip()

    # Direct engine/session so release can seed without building the Flask app.
    with _session_scope(db_url) as s:
        user = (
            s.query(User)
            .filter(or_(User.username == admin_username, User.email == admin_email))
            .first()
        )
        if user:
            print(f"Admin user already present (username={user.username}); leaving it unchanged.")
            return
        now = utcnow()
        s.add(
            User(
                email=admin_email,
                username=admin_username,
                name=admin_name,
                role="admin",
                password_hash=hash_password(admin_password),
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        )

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
