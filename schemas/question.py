"""Marketplace question payload schemas.

The marketplace returns camelCase JSON with numeric ids and epoch-millisecond
timestamps; these models normalize ids to strings and keep the raw
timestamps (converted by tools.time_utils where needed).
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tools.time_utils import from_epoch_millis

WAITING_FOR_ANSWER = "WAITING_FOR_ANSWER"
ANSWERED = "ANSWERED"
REJECTED = "REJECTED"


def _as_str(value):
    if value is None:
        return value
    return str(value)


class RemoteAnswer(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    text: Optional[str] = None
    creation_date: Optional[int] = Field(default=None, alias="creationDate")

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _as_str(value)

    @property
    def answered_at(self) -> Optional[datetime]:
        return from_epoch_millis(self.creation_date)


class RemoteQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    customer_id: str = Field(alias="customerId")
    product_main_id: str = Field(alias="productMainId")
    product_name: Optional[str] = Field(default=None, alias="productName")
    web_url: Optional[str] = Field(default=None, alias="webUrl")
    text: str
    creation_date: Optional[int] = Field(default=None, alias="creationDate")
    status: str = WAITING_FOR_ANSWER
    public: Optional[bool] = None
    answer: Optional[RemoteAnswer] = None

    @field_validator("id", "customer_id", "product_main_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _as_str(value)

    @property
    def asked_at(self) -> Optional[datetime]:
        return from_epoch_millis(self.creation_date)

    @property
    def is_waiting(self) -> bool:
        return self.status == WAITING_FOR_ANSWER


class QuestionPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: List[RemoteQuestion] = Field(default_factory=list)
    page: int = 0
    total_pages: int = Field(default=1, alias="totalPages")
    total_elements: Optional[int] = Field(default=None, alias="totalElements")
