"""Marketplace management CLI.

Database schema management plus the two scheduled maintenance jobs.

Usage:
    python src/manage.py setup-db          # Create all tables
    python src/manage.py drop-db           # Drop all tables
    python src/manage.py cleanup-payments  # Expire stale pending payments
    python src/manage.py auto-match        # Pair waiting deliveries with idle drivers
"""

import argparse
import sys


def _domain():
    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


def setup_database():
    """Create the database schema for the marketplace domain."""
    from marketplace.utils.db import setup_db

    domain = _domain()
    print("Creating marketplace database schema...")
    touched = setup_db(domain)
    print(f"  schema ready ({', '.join(touched) or 'no database providers'}).")
    print("Done.")


def drop_database():
    """Drop the database schema for the marketplace domain."""
    from marketplace.utils.db import drop_db

    domain = _domain()
    print("Dropping marketplace database schema...")
    touched = drop_db(domain)
    print(f"  schema dropped ({', '.join(touched) or 'no database providers'}).")
    print("Done.")


def cleanup_payments():
    from marketplace.maintenance import run_payment_cleanup

    domain = _domain()
    with domain.domain_context():
        report = run_payment_cleanup()
    print(f"Expired {len(report.expired)} payment(s); {len(report.failed)} failed.")
    return 1 if report.failed else 0


def auto_match():
    from marketplace.maintenance import run_auto_match

    domain = _domain()
    with domain.domain_context():
        report = run_auto_match()
    print(
        f"Assigned {len(report.assigned)} delivery(ies); "
        f"{len(report.failed)} failed; {len(report.unmatched_deliveries)} still waiting."
    )
    return 0


def main():
    parser = argparse.ArgumentParser(description="Marketplace management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("cleanup-payments", help="Expire pending payments past their window")
    subparsers.add_parser("auto-match", help="Assign waiting deliveries to idle drivers")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "cleanup-payments":
        sys.exit(cleanup_payments())
    elif args.command == "auto-match":
        sys.exit(auto_match())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
