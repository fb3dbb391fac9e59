# services/question_store.py
import uuid
import logging
from typing import List, Optional
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from models.question import (
    OptionItem,
    QuestionCreate,
    QuestionRecord,
    answer_mirror,
    from_document,
    to_document,
    utc_now,
    validate_question,
)
from services.errors import QuestionNotFoundError, StoreError

logger = logging.getLogger(__name__)


class QuestionStore:
    """Question bank persisted in a MongoDB collection."""

    def __init__(self, collection):
        self.collection = collection

    async def find_exact(self, query: dict) -> Optional[QuestionRecord]:
        return await self.find_one(query)

    async def find_one(self, query: dict) -> Optional[QuestionRecord]:
        try:
            doc = await self.collection.find_one(query)
        except PyMongoError as e:
            logger.error(f"find_one failed for query {query}: {str(e)}")
            raise StoreError("Question lookup failed") from e
        return from_document(doc) if doc else None

    async def find_text(self, term: str) -> Optional[QuestionRecord]:
        """Full-text lookup through the collection's text index."""
        return await self.find_one({"$text": {"$search": term}})

    async def aggregate(self, match: dict, limit: int, extra_fields: Optional[dict] = None) -> List[QuestionRecord]:
        pipeline = [{"$match": match}]
        if extra_fields:
            pipeline.append({"$addFields": extra_fields})
        pipeline.append({"$limit": limit})
        try:
            docs = await self.collection.aggregate(pipeline).to_list(None)
        except PyMongoError as e:
            logger.error(f"aggregate failed for pipeline {pipeline}: {str(e)}")
            raise StoreError("Question aggregation failed") from e
        return [from_document(doc) for doc in docs]

    async def find_by_id(self, question_id: str) -> Optional[QuestionRecord]:
        return await self.find_one({"id": question_id})

    async def save(self, payload: QuestionCreate) -> QuestionRecord:
        doc = to_document(payload, str(uuid.uuid4()))
        validate_question(doc)
        try:
            await self.collection.insert_one(doc)
        except PyMongoError as e:
            logger.error(f"insert failed for question {doc['id']}: {str(e)}")
            raise StoreError("Question could not be saved") from e
        logger.info(f"Question created with ID: {doc['id']}")
        return from_document(doc)

    async def insert_many(self, docs: List[dict]) -> int:
        for doc in docs:
            validate_question(doc)
        try:
            result = await self.collection.insert_many(docs, ordered=False)
        except PyMongoError as e:
            logger.error(f"bulk insert of {len(docs)} questions failed: {str(e)}")
            raise StoreError("Questions could not be imported") from e
        return len(result.inserted_ids)

    async def delete_all(self) -> int:
        try:
            result = await self.collection.delete_many({})
        except PyMongoError as e:
            raise StoreError("Questions could not be cleared") from e
        return result.deleted_count

    async def update_answers(self, question_id: str, correct_answers: List[OptionItem]) -> QuestionRecord:
        """Replace the correct answers wholesale; options are not re-checked."""
        answers = [a.model_dump() for a in correct_answers]
        update = {"correctAnswers": answers, "updatedAt": utc_now()}
        update.update(answer_mirror(correct_answers))
        try:
            doc = await self.collection.find_one_and_update(
                {"id": question_id},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"answer update failed for question {question_id}: {str(e)}")
            raise StoreError("Question answer could not be updated") from e
        if not doc:
            raise QuestionNotFoundError(question_id)
        return from_document(doc)

    async def search(self, query: dict, limit: int, skip: int) -> tuple:
        try:
            total = await self.collection.count_documents(query)
            docs = await self.collection.find(query, skip=skip, limit=limit).to_list(None)
        except PyMongoError as e:
            logger.error(f"search failed for query {query}: {str(e)}")
            raise StoreError("Question search failed") from e
        return [from_document(doc) for doc in docs], total

    async def stats(self) -> dict:
        present = {"$exists": True, "$nin": ["", None]}
        try:
            total = await self.collection.count_documents({})
            with_directions = await self.collection.count_documents({"directions": present})
            with_images = await self.collection.count_documents({"questionImage": present})
            with_image_options = await self.collection.count_documents({
                "$or": [{f"Option{slot}Image": present} for slot in "ABCD"] + [{"options.images": present}]
            })
            by_difficulty = await self.collection.aggregate([
                {"$group": {"_id": "$difficulty", "count": {"$sum": 1}}},
                {"$sort": {"count": -1}},
            ]).to_list(None)
            by_section = await self.collection.aggregate([
                {"$group": {"_id": "$section", "count": {"$sum": 1}}},
                {"$sort": {"count": -1}},
            ]).to_list(None)
        except PyMongoError as e:
            logger.error(f"stats failed: {str(e)}")
            raise StoreError("Question statistics failed") from e
        return {
            "totalQuestions": total,
            "questionsWithDirections": with_directions,
            "questionsWithImages": with_images,
            "questionsWithImageOptions": with_image_options,
            "byDifficulty": by_difficulty,
            "bySection": by_section,
        }
