# models/question.py
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import List, Optional

from services.errors import QuestionValidationError

DEFAULT_PATTERN = "STANDARD_MCQ"

# Fixed option slots of the legacy schema, in display order
LEGACY_SLOTS = ["A", "B", "C", "D"]

CONTENT_FIELDS = ["questionText", "question", "questionImage", "passage", "statements", "directions"]


class OptionItem(BaseModel):
    text: Optional[str] = Field(None, max_length=500)
    images: Optional[str] = Field(None, max_length=1000)  # image URI


class QuestionCreate(BaseModel):
    pattern: str = DEFAULT_PATTERN
    passageId: Optional[str] = None
    section: Optional[str] = Field(None, max_length=100)
    questionNumber: Optional[int] = Field(None, ge=1)
    directions: Optional[str] = Field(None, max_length=2000)
    passage: Optional[str] = Field(None, max_length=5000)
    questionText: Optional[str] = Field(None, max_length=2000)
    statements: Optional[str] = Field(None, max_length=2000)
    conclusions: Optional[str] = Field(None, max_length=2000)
    questionImage: Optional[str] = Field(None, max_length=1000)
    # Legacy names
    question: Optional[str] = Field(None, max_length=2000)
    description: Optional[str] = Field(None, max_length=1500)
    questionType: Optional[str] = None
    options: List[OptionItem] = []
    correctAnswers: List[OptionItem] = Field(default_factory=list, alias="CorrectAns")
    difficulty: str = Field("Medium", pattern="^(Easy|Medium|Hard)$")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "section": "Logical Reasoning",
                "directions": "Choose the correct answer.",
                "questionText": "What is 2+2?",
                "options": [{"text": "3", "images": None}, {"text": "4", "images": None}],
                "CorrectAns": [{"text": "4", "images": None}],
            }
        }


class AnswerUpdate(BaseModel):
    correctAnswers: List[OptionItem] = Field(..., alias="CorrectAns", min_length=1)

    class Config:
        populate_by_name = True


class QuestionRecord(BaseModel):
    id: str
    pattern: str = DEFAULT_PATTERN
    passageId: Optional[str] = None
    section: Optional[str] = None
    questionNumber: Optional[int] = None
    directions: Optional[str] = None
    passage: Optional[str] = None
    questionText: Optional[str] = None
    statements: Optional[str] = None
    conclusions: Optional[str] = None
    questionImage: Optional[str] = None
    options: List[OptionItem] = []
    correctAnswers: List[OptionItem] = []
    correctAnswer: Optional[str] = None  # legacy CorrectAns
    ansImage: Optional[str] = None
    difficulty: str = "Medium"
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    similarity: Optional[str] = None


def clean(value) -> Optional[str]:
    """Trim a string field; blank or missing values become None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def options_to_legacy(options: List[OptionItem]) -> dict:
    """Map the first four options onto the OptionA..OptionD slots."""
    legacy = {}
    for slot, option in zip(LEGACY_SLOTS, options):
        legacy[f"Option{slot}"] = clean(option.text)
        legacy[f"Option{slot}Image"] = clean(option.images)
    return legacy


def legacy_to_options(doc: dict) -> List[OptionItem]:
    """Rebuild the option list from OptionA..OptionD, keeping slot positions."""
    slots = [
        (clean(doc.get(f"Option{slot}")), clean(doc.get(f"Option{slot}Image")))
        for slot in LEGACY_SLOTS
    ]
    last_filled = max((i for i, (text, image) in enumerate(slots) if text or image), default=-1)
    return [OptionItem(text=text, images=image) for text, image in slots[: last_filled + 1]]


def has_question_content(data: dict) -> bool:
    return any(clean(data.get(field)) for field in CONTENT_FIELDS)


def _same(a, b) -> bool:
    a, b = clean(a), clean(b)
    return a is not None and a == b


def answers_match_options(correct_answers: List[OptionItem], options: List[OptionItem]) -> bool:
    """Every correct answer must equal an option by text or by image URI."""
    return all(
        any(_same(answer.text, option.text) or _same(answer.images, option.images) for option in options)
        for answer in correct_answers
    )


def legacy_answer_matches(doc: dict) -> bool:
    correct = clean(doc.get("CorrectAns"))
    if correct is None or clean(doc.get("ansImage")):
        return True
    legacy_texts = [clean(doc.get(f"Option{slot}")) for slot in LEGACY_SLOTS]
    if not any(legacy_texts):
        return True
    return correct in legacy_texts


def validate_question(doc: dict) -> None:
    """Check the write-time invariants on a question document."""
    if not has_question_content(doc):
        raise QuestionValidationError(
            "At least one question content field (questionText, question, questionImage, "
            "passage, statements, or directions) must be provided"
        )

    options = [OptionItem(**o) if isinstance(o, dict) else o for o in doc.get("options") or []]
    correct_answers = [OptionItem(**a) if isinstance(a, dict) else a for a in doc.get("correctAnswers") or []]
    # Answers may be recorded before the options are known
    if correct_answers and options and not answers_match_options(correct_answers, options):
        raise QuestionValidationError("Correct answers must match the provided options")

    # The legacy slots only hold four options, so check them for legacy-only documents
    if not options and not legacy_answer_matches(doc):
        raise QuestionValidationError("Correct answer must match one of the provided options (either text or image)")


def answer_mirror(correct_answers: List[OptionItem]) -> dict:
    first = correct_answers[0] if correct_answers else OptionItem()
    return {"CorrectAns": clean(first.text), "ansImage": clean(first.images)}


def to_document(payload: QuestionCreate, question_id: str) -> dict:
    """Build the stored document carrying both the new and the legacy views."""
    options = [OptionItem(text=clean(o.text), images=clean(o.images)) for o in payload.options]
    correct_answers = [OptionItem(text=clean(a.text), images=clean(a.images)) for a in payload.correctAnswers]
    question_text = clean(payload.questionText) or clean(payload.question)
    directions = clean(payload.directions) or clean(payload.description)
    now = utc_now()

    doc = {
        "id": question_id,
        "pattern": clean(payload.pattern) or DEFAULT_PATTERN,
        "passageId": clean(payload.passageId),
        "section": clean(payload.section),
        "questionNumber": payload.questionNumber,
        "directions": directions,
        "passage": clean(payload.passage),
        "questionText": question_text,
        "statements": clean(payload.statements),
        "conclusions": clean(payload.conclusions),
        "questionImage": clean(payload.questionImage),
        "options": [o.model_dump() for o in options],
        "correctAnswers": [a.model_dump() for a in correct_answers],
        "difficulty": payload.difficulty,
        # Legacy mirror
        "questionType": clean(payload.questionType),
        "question": question_text,
        "description": directions,
        "createdAt": now,
        "updatedAt": now,
    }
    doc.update(options_to_legacy(options))
    doc.update(answer_mirror(correct_answers))
    return doc


def from_document(doc: dict) -> QuestionRecord:
    """Read a stored document, filling the new fields from legacy ones when absent."""
    options = [OptionItem(**o) for o in doc.get("options") or []] or legacy_to_options(doc)
    correct_answers = [OptionItem(**a) for a in doc.get("correctAnswers") or []]
    if not correct_answers and (clean(doc.get("CorrectAns")) or clean(doc.get("ansImage"))):
        correct_answers = [OptionItem(text=clean(doc.get("CorrectAns")), images=clean(doc.get("ansImage")))]

    return QuestionRecord(
        id=str(doc.get("id") or doc.get("_id")),
        pattern=doc.get("pattern") or DEFAULT_PATTERN,
        passageId=doc.get("passageId"),
        section=doc.get("section"),
        questionNumber=doc.get("questionNumber"),
        directions=doc.get("directions") or doc.get("description"),
        passage=doc.get("passage"),
        questionText=doc.get("questionText") or doc.get("question"),
        statements=doc.get("statements"),
        conclusions=doc.get("conclusions"),
        questionImage=doc.get("questionImage"),
        options=options,
        correctAnswers=correct_answers,
        correctAnswer=doc.get("CorrectAns"),
        ansImage=doc.get("ansImage"),
        difficulty=doc.get("difficulty") or "Medium",
        createdAt=doc.get("createdAt"),
        updatedAt=doc.get("updatedAt"),
        similarity=doc.get("similarity"),
    )
