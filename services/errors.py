# services/errors.py


class QuestionValidationError(ValueError):
    """Raised when a question violates the content or answer/option rules."""


class QuestionNotFoundError(LookupError):
    def __init__(self, question_id: str):
        super().__init__(f"Question not found: {question_id}")
        self.question_id = question_id


class StoreError(RuntimeError):
    """Persistence failure in the question or user collection."""


class LoggingError(RuntimeError):
    """The unanswered question log could not be read or written."""
