"""Base model class with SQLAlchemy type hints."""

from __future__ import annotations

from datetime import datetime
import re
from typing import TYPE_CHECKING, Any, cast

from flask_sqlalchemy.model import DefaultMeta
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from ..extensions import db as _db


if TYPE_CHECKING:
    Model = _db.Model
else:
    Model = cast(DefaultMeta, _db.Model)


class BaseModel(Model):  # type: ignore
    """Base model class with an integer primary key and audit timestamps."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        _db.DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Timestamp when the record was created",
    )
    updated_at: Mapped[datetime] = mapped_column(
        _db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="Timestamp when the record was last updated",
    )

    @_db.declared_attr
    def __tablename__(cls) -> str:
        """Convert the CamelCase class name to a snake_case table name."""
        name = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", cls.__name__)
        return re.sub("([a-z0-9])([A-Z])", r"\1_\2", name).lower()

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary.

        Returns:
            Dict[str, Any]: Dictionary representation of the model
        """
        result: dict[str, Any] = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if hasattr(value, "isoformat"):
                value = value.isoformat()
            result[column.name] = value
        return result

    def save(self, commit: bool = True) -> None:
        """Add the instance to the session and optionally commit.

        Args:
            commit: If True, commit the transaction. Set to False if you want to
                   add multiple objects in a single transaction.
        """
        _db.session.add(self)
        if commit:
            try:
                _db.session.commit()
            except Exception:
                _db.session.rollback()
                raise
