import re
import uuid
from datetime import datetime, UTC

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def utc_now() -> datetime:
    return datetime.now(UTC)


def table_name_for(class_name: str) -> str:
    """
    ``TaskUserPriority`` -> ``task_user_priorities``, ``ProjectTemplate`` -> ``project_templates``.
    """
    words = re.sub(r"(?<!^)(?=[A-Z])", "_", class_name).lower()
    if words.endswith("y") and words[-2] not in "aeiou":
        return f"{words[:-1]}ies"
    if words.endswith(("s", "x", "z", "ch", "sh")):
        return f"{words}es"
    return f"{words}s"


class Base(DeclarativeBase):
    """
    Declarative base of the task store.
    Every table gets a UUID key and UTC creation/update timestamps.
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return table_name_for(cls.__name__)

    # Generic UUID type, native on PostgreSQL and CHAR(32) on SQLite
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"
