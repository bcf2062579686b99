import os

from ptw.db import models
from ptw.db.init_db import ensure_admin
from ptw.db.session import SessionLocal, engine


def main() -> None:
    username = os.getenv("ADMIN_BOOTSTRAP_USERNAME")
    password = os.getenv("ADMIN_BOOTSTRAP_PASSWORD")
    if not username or not password:
        raise SystemExit("ADMIN_BOOTSTRAP_USERNAME und ADMIN_BOOTSTRAP_PASSWORD müssen gesetzt sein.")

    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        admin = ensure_admin(db, username.strip(), password)
        print(f"Admin aktiv: {admin.username}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
