# config.py
import os
from dotenv import load_dotenv

# Load .env file if present (local development)
load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "quiz_answers_db")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

UNANSWERED_QUESTIONS_FILE = os.getenv(
    "UNANSWERED_QUESTIONS_FILE",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "unanswered_questions.jsonl"),
)

# Needs the text index created in database.init_db
FULL_TEXT_SEARCH = os.getenv("FULL_TEXT_SEARCH", "true").lower() in ("1", "true", "yes")
MAX_SEARCH_TERM_LENGTH = int(os.getenv("MAX_SEARCH_TERM_LENGTH", "2000"))

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
