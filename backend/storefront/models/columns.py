# Overview: Column type helpers shared by the model modules.

from ..extensions import db


def enum_type(enum_cls, length: int = 32):
    """Closed status column: stored as the enum's value in a VARCHAR, validated on write."""
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


def money():
    return db.Numeric(14, 2)


def money_str(value):
    """Decimal -> "1234.50" for JSON; None passes through."""
    return None if value is None else f"{value:.2f}"
