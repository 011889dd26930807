"""
Add the "one sent reminder per appointment" unique index

Existing deployments created whatsapp_messages before the partial unique index
on (appointment_id) WHERE status = 'sent' existed. This migration creates it for
every tenant prefix given on the command line (default tenant when none given).

Run with: python migrations/add_whatsapp_messages_sent_index.py [prefix ...]
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text  # noqa: E402

from salon_api.database import engine  # noqa: E402
from salon_api.models import get_tenant_models  # noqa: E402


def find_duplicate_sends(conn, table_name: str) -> list:
    result = conn.execute(
        text(
            f"SELECT appointment_id, COUNT(*) FROM {table_name} "
            "WHERE status = 'sent' GROUP BY appointment_id HAVING COUNT(*) > 1"
        )
    )
    return list(result)


def upgrade(table_prefix: str = "") -> bool:
    """Create the index for one tenant; returns False when duplicates block it"""
    models = get_tenant_models(table_prefix)
    table = models.DispatchRecord.__table__

    with engine.begin() as conn:
        duplicates = find_duplicate_sends(conn, table.name)
        if duplicates:
            print(f"❌ {table.name}: {len(duplicates)} appointment(s) have more than one sent message")
            for appointment_id, count in duplicates[:20]:
                print(f"   - {appointment_id}: {count}")
            print("   Resolve these rows before creating the index")
            return False

        for index in table.indexes:
            if index.unique:
                index.create(bind=conn, checkfirst=True)
                print(f"✅ {index.name} ready")
    return True


if __name__ == "__main__":
    prefixes = sys.argv[1:] or [""]
    ok = all([upgrade(prefix) for prefix in prefixes])
    sys.exit(0 if ok else 1)
