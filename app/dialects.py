from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def supports_upsert(db: Session) -> bool:
    return db.get_bind().dialect.name in _INSERTS


def upsert_statement(db: Session, model):
    """INSERT with ON CONFLICT support for the session's dialect."""
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise RuntimeError(f"Upsert not supported for dialect {dialect}") from None
