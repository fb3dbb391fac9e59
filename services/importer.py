# services/importer.py
import uuid
import logging
from typing import Iterable, List, Optional
from pydantic import ValidationError

from models.question import LEGACY_SLOTS, OptionItem, QuestionCreate, clean, to_document, validate_question
from services.errors import QuestionValidationError, StoreError

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


def _first(item: dict, *names) -> Optional[str]:
    for name in names:
        value = clean(item.get(name))
        if value:
            return value
    return None


def legacy_row_to_payload(item: dict) -> QuestionCreate:
    """Map one exported row (either schema, several header spellings) to a create payload."""
    options = item.get("options")
    if not options:
        options = [
            OptionItem(
                text=_first(item, f"Option{slot}", f"Option {slot}"),
                images=_first(item, f"Option{slot}Image"),
            )
            for slot in LEGACY_SLOTS
        ]
        while options and not (options[-1].text or options[-1].images):
            options.pop()

    correct_answers = item.get("correctAnswers")
    if not correct_answers:
        correct = _first(item, "CorrectAns", "Correct Ans")
        correct_image = _first(item, "ansImage")
        correct_answers = [OptionItem(text=correct, images=correct_image)] if correct or correct_image else []

    return QuestionCreate(
        pattern=item.get("pattern") or "STANDARD_MCQ",
        section=_first(item, "section") or "General",
        questionType=item.get("questionType") or "Multiple Choice Question",
        questionNumber=item.get("questionNumber"),
        directions=_first(item, "directions", "description"),
        passage=item.get("passage"),
        questionText=_first(item, "questionText", "question", "Question"),
        statements=item.get("statements"),
        conclusions=item.get("conclusions"),
        questionImage=item.get("questionImage"),
        options=options,
        correctAnswers=correct_answers,
        difficulty=item.get("difficulty") or "Medium",
    )


async def import_questions(store, items: Iterable[dict], replace: bool = False, batch_size: int = BATCH_SIZE) -> dict:
    """Load exported question rows into the store in batches."""
    items = list(items)
    logger.info(f"Found {len(items)} questions to import")

    docs: List[dict] = []
    skipped = 0
    for index, item in enumerate(items, start=1):
        try:
            doc = to_document(legacy_row_to_payload(item), str(uuid.uuid4()))
            validate_question(doc)
        except (ValidationError, QuestionValidationError) as e:
            logger.warning(f"Skipping item {index}: {str(e)}")
            skipped += 1
            continue
        docs.append(doc)

    if replace:
        deleted = await store.delete_all()
        logger.info(f"Cleared {deleted} existing questions")

    imported = 0
    for start in range(0, len(docs), batch_size):
        batch = docs[start:start + batch_size]
        try:
            imported += await store.insert_many(batch)
        except StoreError as e:
            logger.error(f"Error importing batch starting at index {start}: {str(e)}")
            continue
        logger.info(f"Imported batch: {imported}/{len(docs)}")

    logger.info(f"Successfully imported {imported} questions")
    return {"imported": imported, "skipped": skipped, "total": len(items)}
