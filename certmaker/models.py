from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, SQLModel, Session, create_engine

from . import config

logger = logging.getLogger(__name__)


class CertificateStatus(str, Enum):
    READY = "READY"
    FAILED = "FAILED"


class Certificate(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True)
    template_id: str = Field(index=True)
    template_name: str
    recipient: Optional[str] = None
    status: CertificateStatus = Field(default=CertificateStatus.READY)
    fail_code: Optional[str] = None
    fail_detail: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Artifact(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    certificate_code: str = Field(index=True)
    type: str
    path: str
    created_at: datetime = Field(default_factory=datetime.now)


engine = create_engine(f"sqlite:///{config.DB_PATH}")


def reset_engine() -> None:
    global engine
    engine = create_engine(f"sqlite:///{config.DB_PATH}")


def init_db() -> None:
    config.OUT_DIR.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)
    _migrate_db()


def _migrate_db() -> None:
    """Add columns introduced after a database was first created."""
    try:
        inspector = inspect(engine)
        if "certificate" not in inspector.get_table_names():
            return
        columns = {col["name"] for col in inspector.get_columns("certificate")}
        for name in ("recipient", "fail_code", "fail_detail"):
            if name not in columns:
                with engine.begin() as conn:
                    conn.execute(text(f"ALTER TABLE certificate ADD COLUMN {name} TEXT"))
    except SQLAlchemyError as exc:
        logger.warning("Database migration skipped: %s", exc)


def get_session() -> Session:
    return Session(engine, expire_on_commit=False)
