"""
Apply the SQL migrations in migrations/ to the configured PostgreSQL database.
"""

from pathlib import Path

from database_postgres import get_connection

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def run_migration():
    """Apply every migration file in name order. Files are idempotent."""
    conn = get_connection()
    cursor = conn.cursor()

    try:
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            print(f"Running migration: {path.stem}")
            cursor.execute(path.read_text())
            print(f"✓ Applied {path.name}")

        conn.commit()
        print("\n✅ Migrations completed successfully!")

    except Exception as e:
        print(f"\n❌ Migration failed: {e}")
        conn.rollback()
        raise
    finally:
        cursor.close()
        conn.close()


if __name__ == "__main__":
    run_migration()
