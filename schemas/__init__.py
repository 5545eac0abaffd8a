from .question import (
    ANSWERED,
    REJECTED,
    WAITING_FOR_ANSWER,
    QuestionPage,
    RemoteAnswer,
    RemoteQuestion,
)
from .settings import WEEKDAY_NAMES, GeneratedAnswer, ScheduleSettings

__all__ = [
    "WAITING_FOR_ANSWER", "ANSWERED", "REJECTED",
    "RemoteAnswer", "RemoteQuestion", "QuestionPage",
    "WEEKDAY_NAMES", "GeneratedAnswer", "ScheduleSettings",
]
