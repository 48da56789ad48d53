from __future__ import annotations

from ..extensions import db


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def enum_column(enum_cls, **kwargs):
    """String-backed enum column storing member values ("cart"), not names ("CART")."""
    return db.Column(
        db.Enum(
            enum_cls,
            native_enum=False,
            create_constraint=False,
            length=32,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        **kwargs,
    )


def enum_value(member):
    return member.value if member is not None else None
