"""Auto-answer schedule settings and generated-answer schemas."""
import re
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app_config import DEFAULT_TIME_ZONE

WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class GeneratedAnswer(BaseModel):
    answer_text: str
    conversation_id: str


class ScheduleSettings(BaseModel):
    """Validated input for updating the auto-answer schedule."""

    automatic_answer: bool = False
    weekdays: List[str] = Field(default_factory=list)
    start_time: Optional[str] = None  # local HH:MM
    end_time: Optional[str] = None    # local HH:MM
    time_zone: str = DEFAULT_TIME_ZONE

    @field_validator("weekdays")
    @classmethod
    def known_weekdays(cls, value: List[str]) -> List[str]:
        unknown = [day for day in value if day not in WEEKDAY_NAMES]
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        # Keep calendar order and drop duplicates
        return [day for day in WEEKDAY_NAMES if day in value]

    @field_validator("start_time", "end_time")
    @classmethod
    def hhmm(cls, value: Optional[str]) -> Optional[str]:
        if value in (None, ""):
            return None
        if not HHMM.match(value):
            raise ValueError(f"Time must be HH:MM (24h), got {value!r}")
        return value

    @model_validator(mode="after")
    def complete_when_enabled(self) -> "ScheduleSettings":
        if self.automatic_answer:
            if not self.weekdays:
                raise ValueError("Please select at least one weekday.")
            if not self.start_time or not self.end_time:
                raise ValueError("Start time and end time are required.")
        return self
