"""Create the database schema for the recovery service."""

from otp_recovery.db.session import create_tables


def main() -> None:
    """Initialize the database by creating all tables."""
    create_tables()
    print("Database initialized.")


if __name__ == "__main__":
    main()
