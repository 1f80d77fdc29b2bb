import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select

from app.doctrack.identity import ActorContext
from app.doctrack.models import Base
from app.doctrack.modules.document_control.models import DocumentType
from app.doctrack.modules.document_control.numbering import create_document_type
from scripts._db_utils import script_session

DEFAULT_DOCUMENT_TYPES = (
    ("Form", "FORM", "Controlled forms and templates"),
    ("Procedure", "PROC", "Standard operating procedures"),
    ("Work Instruction", "WI", "Step-by-step work instructions"),
)


def seed_only(*, database_url: str | None = None, tenant_id: str | None = None) -> list[str]:
    """
    Seed the default document types for one tenant, idempotently.
    Existing prefixes are left untouched (their counters included).
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///doctrack.db").strip()
    tenant = (tenant_id or os.environ.get("SEED_TENANT_ID") or "default").strip()
    ctx = ActorContext.system(tenant)

    created: list[str] = []
    with script_session(db_url) as s:
        existing = set(s.scalars(select(DocumentType.prefix).where(DocumentType.tenant_id == tenant)))
        for name, prefix, description in DEFAULT_DOCUMENT_TYPES:
            if prefix in existing:
                continue
            create_document_type(s, ctx, name=name, prefix=prefix, description=description)
            created.append(prefix)
    return created


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///doctrack.db").strip()
    if db_url.startswith("sqlite"):
        # Local convenience; production schemas come from `alembic upgrade head`.
        from app.doctrack.db import make_engine

        engine = make_engine(db_url)
        Base.metadata.create_all(engine)
        engine.dispose()

    created = seed_only(database_url=db_url)
    print(f"Seeded document types: {', '.join(created) or '(none, already present)'}")


if __name__ == "__main__":
    main()
