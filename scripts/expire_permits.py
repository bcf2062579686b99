import logging

from ptw.db.session import SessionLocal
from ptw.workflow.service import expire_overdue

logging.basicConfig(level=logging.INFO)


def main() -> None:
    db = SessionLocal()
    try:
        count = expire_overdue(db)
        print(f"Abgelaufene Genehmigungen: {count}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
