from datetime import datetime, UTC
from typing import TypeVar, Generic, List

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")


class MessageResponse(BaseModel):
    """Envelope for operations that return nothing but a message"""

    success: bool = Field(True)
    message: str = Field(...)
    data: None = Field(None)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DataResponse(BaseModel, Generic[T]):
    """Envelope around a single result"""

    success: bool = Field(True)
    message: str = Field("Operation completed successfully")
    data: T = Field(...)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ListResponse(BaseModel, Generic[T]):
    """Envelope around an unpaginated list of results"""

    success: bool = Field(True)
    message: str = Field("Items retrieved")
    data: List[T] = Field(default_factory=list)
    count: int = Field(0, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def count_items(self) -> "ListResponse[T]":
        """``count`` always mirrors ``data``"""
        self.count = len(self.data)
        return self


__all__ = [
    "MessageResponse",
    "DataResponse",
    "ListResponse",
]
