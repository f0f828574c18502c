"""
Module: payroll_kernel.db.base
Responsibility: Declarative base for all SQLAlchemy ORM models and the
    column types shared by them.
Architecture position: Kernel > DB. Lowest-level import target within the
    kernel; MUST NOT import from models/ or outer layers.

Invariants enforced:
    - Money maps to Numeric(18, 2); payroll amounts are stored to the cent.
    - Timestamps round-trip as timezone-aware UTC on every backend
      (``UTCDateTime``), including SQLite which drops tzinfo.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Numeric
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Guarantees:
        - process_bind_param: aware datetimes are converted to UTC; naive
          ones are assumed to already be UTC.
        - process_result_value: always returns an aware UTC datetime.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """
    Declarative base for all payroll ORM models.

    Models declare their own string primary keys: document ids come from the
    calling application and audit ids are uuid4 strings.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: UTCDateTime(),
    }
