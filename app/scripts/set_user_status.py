"""
Approve or reject a user from a shell (e.g. before any admin can sign in). Run from project root:
  python -m app.scripts.set_user_status SUBJECT approved|rejected [--actor NAME]
Example:
  python -m app.scripts.set_user_status 5f0c2a8e-... approved --actor ops@example.com
"""
import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import create_db_engine, create_session_factory
from app.models import USER_STATUSES
from app.services.users import UserDirectory, UserNotFoundError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Set a user's approval status.")
    parser.add_argument("subject", help="Identity-platform subject (sub claim)")
    parser.add_argument("status", choices=[s for s in USER_STATUSES if s != "pending"])
    parser.add_argument(
        "--actor",
        default="cli",
        help="Recorded as the audit actor (default: cli)",
    )
    args = parser.parse_args(argv)

    subject = args.subject.strip()
    if not subject:
        print("Subject must be non-empty.", file=sys.stderr)
        return 1

    settings = get_settings()
    engine = create_db_engine(settings)
    db = create_session_factory(engine)()
    try:
        directory = UserDirectory(db)
        user = directory.set_status(subject, args.status, actor=args.actor.strip() or "cli")
        print(f"User '{user.subject}' ({user.email}) is now {user.status}.")
        for entry in directory.audit_trail(subject):
            print(f"  {entry.created_at:%Y-%m-%d %H:%M:%S} {entry.action:<8} {entry.actor or '-'}")
        return 0
    except UserNotFoundError as e:
        print(e.message, file=sys.stderr)
        return 1
    except SQLAlchemyError as e:
        logger.error("Status change failed: %s", e)
        return 1
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
