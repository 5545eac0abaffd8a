"""Typed errors raised by the auto-answer services."""


class QuestionNotFoundError(LookupError):
    """No local question with the requested marketplace id."""

    def __init__(self, question_id: str) -> None:
        super().__init__(f"Question not found: {question_id}")
        self.question_id = question_id


class AnswerPostError(RuntimeError):
    """The marketplace did not accept an answer."""

    def __init__(self, question_id: str) -> None:
        super().__init__(f"Failed to post answer to marketplace for question {question_id}")
        self.question_id = question_id


class InvalidScheduleError(ValueError):
    """Schedule settings that cannot be turned into a recurrence."""
