from __future__ import annotations

from contextlib import contextmanager

from app.doctrack.db import make_engine, make_sessionmaker


@contextmanager
def script_session(db_url: str):
    engine = make_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
