"""Create a user in the configured database.

Usage:
  python scripts/create_user.py --username alice --password '...' --role admin

NOTE: This is the operator path for making the first admin; self-service
registration always creates plain users.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from fittrack.auth.crud import create_user
from fittrack.config import load_config
from fittrack.db import connect, init_db
from fittrack.errors import FitTrackError


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--username", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--role", choices=["user", "admin"], default="user")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    try:
        with connect(cfg.DB_DSN) as conn:
            u = create_user(conn, username=args.username, password=args.password, role=args.role)
    except FitTrackError as e:
        ap.exit(1, f"error: {e.message}\n")

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
