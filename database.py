# database.py
import logging
from motor.motor_asyncio import AsyncIOMotorClient

from config import MONGODB_URI, MONGODB_DB

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(MONGODB_URI)
db = client[MONGODB_DB]

# Text fields covered by the full-text index used in flexible matching
TEXT_INDEX_FIELDS = [
    "directions", "question", "questionText", "passage", "statements", "conclusions",
    "OptionA", "OptionB", "OptionC", "OptionD", "CorrectAns",
]


def get_db():
    return db


async def init_db(database=None):
    database = database if database is not None else db
    await database.questions.create_index("id", unique=True)
    await database.questions.create_index([
        ("directions", 1), ("questionText", 1), ("questionImage", 1),
        ("OptionA", 1), ("OptionB", 1), ("OptionC", 1), ("OptionD", 1),
    ])
    await database.questions.create_index([("section", 1), ("difficulty", 1)])
    await database.questions.create_index([("createdAt", -1)])
    await database.questions.create_index([(field, "text") for field in TEXT_INDEX_FIELDS], name="question_text_search")
    await database.users.create_index("id", unique=True)
    await database.users.create_index("StuID", unique=True)
    await database.users.create_index("isActive")
    logger.info(f"Indexes ensured on database {database.name}")
