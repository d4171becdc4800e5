"""Drop and recreate every table of the ticketing database.

Usage:
    python scripts/reset_local_db.py [--seed-categories]

Environment:
    DATABASE_URL, JWT_SECRET_KEY and CRON_SECRET must be set in the current
    shell before running this script.
"""

from __future__ import annotations

import argparse

from service_ticketing.db import Base, get_engine, session_scope
from service_ticketing.models import Category

DEFAULT_CATEGORIES = ("Plumbing", "Electrical", "Air Conditioning", "Appliance Repair")


def reset_database(*, seed_categories: bool = False) -> None:
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    if seed_categories:
        with session_scope() as session:
            session.add_all(Category(name=name, is_active=True) for name in DEFAULT_CATEGORIES)
    print(f"Database reset ({engine.url.render_as_string(hide_password=True)}).")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed-categories", action="store_true", help="insert a starter set of categories")
    args = parser.parse_args()
    reset_database(seed_categories=args.seed_categories)
