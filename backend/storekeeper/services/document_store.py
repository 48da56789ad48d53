# Overview: Generic document-store facade over the SQLAlchemy session; every write is its own unit of work.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import load_only

from ..enums import coerce_enum
from ..errors import ValidationError
from ..extensions import db
from .concurrency import run_with_retry
"""
Store semantics (authoritative)

- There is NO cross-document transaction. Every write method commits on its
  own; a failure later in an operation leaves earlier writes applied.
- Writes report how many rows they touched. Callers compare that count with
  what they expected and fail loudly on a mismatch.
- Conditions are dicts of column -> value (lists mean IN, None means IS NULL)
  plus optional raw SQLAlchemy criteria for guards such as stock >= qty.
- Patches are dicts of column -> value; Inc(n) adds n to the current value
  inside the same UPDATE statement.
"""


@dataclass(frozen=True)
class Inc:
    amount: int


class DocumentStore:
    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # ------------------------------------------------------------------ helpers

    @staticmethod
    def _column(model, key: str):
        column = model.__table__.columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")
        return column

    def _criteria(self, model, condition: dict | None, criteria: Iterable) -> list:
        clauses = list(criteria)
        for key, value in (condition or {}).items():
            column = self._column(model, key)
            enum_cls = column.type.enum_class if isinstance(column.type, SAEnum) else None

            if isinstance(value, (list, tuple, set, frozenset)):
                values = [coerce_enum(enum_cls, v, key) for v in value] if enum_cls else list(value)
                clauses.append(column.in_(values))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                if enum_cls:
                    value = coerce_enum(enum_cls, value, key)
                clauses.append(column == value)
        return clauses

    def _values(self, model, patch: dict) -> dict:
        values = {}
        for key, value in patch.items():
            column = self._column(model, key)
            values[key] = column + value.amount if isinstance(value, Inc) else value
        return values

    def _first_id(self, model, clauses: list):
        return self.session.execute(
            select(model.id).where(*clauses).order_by(model.id).limit(1)
        ).scalar()

    # -------------------------------------------------------------------- reads

    def find_one(self, model, condition: dict | None = None, *criteria, projection: list[str] | None = None):
        query = self.session.query(model).filter(*self._criteria(model, condition, criteria))
        if projection:
            query = query.options(load_only(*[getattr(model, name) for name in projection]))
        return query.order_by(model.id).first()

    def find(
        self,
        model,
        condition: dict | None = None,
        *criteria,
        projection: list[str] | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list:
        query = self.session.query(model).filter(*self._criteria(model, condition, criteria))
        if projection:
            query = query.options(load_only(*[getattr(model, name) for name in projection]))
        query = query.order_by(model.id.desc() if newest_first else model.id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_documents(self, model, condition: dict | None = None, *criteria) -> int:
        clauses = self._criteria(model, condition, criteria)
        return int(self.session.execute(select(func.count()).select_from(model).where(*clauses)).scalar() or 0)

    # ------------------------------------------------------------------- writes

    def create(self, model, **fields) -> Any:
        def _op():
            doc = model(**fields)
            self.session.add(doc)
            self.session.commit()
            return doc

        return run_with_retry(_op)

    def update_one(self, model, condition: dict | None, patch: dict, *criteria) -> int:
        clauses = self._criteria(model, condition, criteria)
        values = self._values(model, patch)

        def _op():
            target_id = self._first_id(model, clauses)
            if target_id is None:
                return 0
            result = self.session.execute(
                update(model)
                .where(model.id == target_id, *clauses)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
            return result.rowcount

        return run_with_retry(_op)

    def update_many(self, model, condition: dict | None, patch: dict, *criteria) -> int:
        clauses = self._criteria(model, condition, criteria)
        values = self._values(model, patch)

        def _op():
            result = self.session.execute(
                update(model)
                .where(*clauses)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
            return result.rowcount

        return run_with_retry(_op)

    def find_one_and_update(
        self,
        model,
        condition: dict | None,
        patch: dict,
        *criteria,
        returning: list[str],
    ):
        """
        Conditional single-row write returning post-write column values.

        The guard and the mutation are one UPDATE statement, so a concurrent
        writer cannot slip between check and act. Returns None when no row
        satisfied the condition.
        """
        clauses = self._criteria(model, condition, criteria)
        values = self._values(model, patch)
        columns = [self._column(model, name) for name in returning]

        def _op():
            target_id = self._first_id(model, clauses)
            if target_id is None:
                return None
            result = self.session.execute(
                update(model)
                .where(model.id == target_id, *clauses)
                .values(**values)
                .returning(*columns)
                .execution_options(synchronize_session=False)
            )
            row = result.first()
            self.session.commit()
            return row

        return run_with_retry(_op)

    def delete_one(self, model, condition: dict | None, *criteria) -> int:
        clauses = self._criteria(model, condition, criteria)

        def _op():
            target_id = self._first_id(model, clauses)
            if target_id is None:
                return 0
            result = self.session.execute(
                delete(model)
                .where(model.id == target_id)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
            return result.rowcount

        return run_with_retry(_op)

    def delete_many(self, model, condition: dict | None, *criteria) -> int:
        clauses = self._criteria(model, condition, criteria)

        def _op():
            result = self.session.execute(
                delete(model)
                .where(*clauses)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
            return result.rowcount

        return run_with_retry(_op)


store = DocumentStore()
