import re
from pathlib import Path

MIGRATION = Path(__file__).resolve().parents[2] / "supabase" / "migrations" / "0001_checkout.sql"


def _sql() -> str:
    return MIGRATION.read_text(encoding="utf-8")


def test_membership_status_domain():
    sql = _sql()
    assert "membership_status text not null default 'none'" in sql
    assert re.search(r"check \(membership_status in \('active', 'expired', 'none'\)\)", sql)
    assert "'inactive'" not in sql

def test_missing_catalog_row_reported_as_not_found():
    sql = _sql()
    # Ligne absente et ligne pleine ont chacune leur code d'erreur
    assert "message = 'not_found'" in sql
    assert "'error', 'not_found'" in sql
    assert sql.index("message = 'not_found'") < sql.index("message = 'capacity_exceeded'")

def test_new_family_starts_without_membership(store):
    store.add_family("fam-9", "user-9")
    assert store.families["fam-9"]["membership_status"] == "none"
