# services/matcher.py
import re
import logging
from typing import List, Optional

from config import FULL_TEXT_SEARCH, MAX_SEARCH_TERM_LENGTH
from models.question import LEGACY_SLOTS, QuestionRecord, clean
from models.search import SearchRequest

logger = logging.getLogger(__name__)

STOP_WORDS = {
    "what", "which", "where", "when", "how", "why", "the", "and", "for", "are", "with",
    "this", "that", "from", "they", "have", "been", "their", "would", "there", "could", "should",
}

REGEX_SPECIALS = re.compile(r"[.*+?^${}()|\[\]\\]")

# Legacy documents only carry the old field names
DIRECTIONS_FIELDS = ["directions", "description"]
QUESTION_TEXT_FIELDS = ["questionText", "question"]

FLEXIBLE_FIELDS = DIRECTIONS_FIELDS + QUESTION_TEXT_FIELDS + [f"Option{slot}" for slot in LEGACY_SLOTS]


def escape_regex(term: str) -> str:
    """Escape regex metacharacters so the term is matched literally."""
    return REGEX_SPECIALS.sub(lambda m: "\\" + m.group(0), term)


def substring_clause(term: str) -> dict:
    return {"$regex": escape_regex(term[:MAX_SEARCH_TERM_LENGTH]), "$options": "i"}


def any_field(fields: List[str], condition) -> dict:
    return {"$or": [{field: condition} for field in fields]}


def extract_keywords(text: Optional[str], limit: int, stop_words=frozenset()) -> List[str]:
    if not clean(text):
        return []
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [word for word in words if len(word) > 3 and word not in stop_words][:limit]


def build_exact_query(request: SearchRequest) -> Optional[dict]:
    """Equality filter over every anchor and option field present in the request.

    Returns None when no directions, question text or question image is given,
    since options alone cannot identify a question.
    """
    anchors = []
    directions = clean(request.directions)
    if directions:
        anchors.append(any_field(DIRECTIONS_FIELDS, directions))
    question_text = clean(request.questionText)
    if question_text:
        anchors.append(any_field(QUESTION_TEXT_FIELDS, question_text))
    question_image = clean(request.questionImage)
    if question_image:
        anchors.append({"questionImage": question_image})

    if not anchors:
        return None

    query = {"$and": anchors}

    # Text and image are both constrained when a slot carries both
    for slot, option in zip(LEGACY_SLOTS, request.options or []):
        text, image = clean(option.text), clean(option.images)
        if text:
            query[f"Option{slot}"] = text
        if image:
            query[f"Option{slot}Image"] = image

    return query


class MatchEngine:
    """Exact, flexible and similarity matching against the question store.

    Holds no per-request state; one engine can serve concurrent searches.
    """

    def __init__(self, store, full_text_search: bool = FULL_TEXT_SEARCH):
        self.store = store
        self.full_text_search = full_text_search

    async def find_exact_match(self, request: SearchRequest) -> Optional[QuestionRecord]:
        query = build_exact_query(request)
        if query is None:
            logger.info("No directions, question text or image provided for exact match")
            return None
        logger.info(f"Exact match query: {query}")
        return await self.store.find_exact(query)

    async def _text_then_substring(self, fields: List[str], term: str) -> Optional[QuestionRecord]:
        if self.full_text_search:
            result = await self.store.find_text(term[:MAX_SEARCH_TERM_LENGTH])
            if result:
                return result
        return await self.store.find_one(any_field(fields, substring_clause(term)))

    async def find_flexible_match(self, request: SearchRequest) -> Optional[QuestionRecord]:
        result = await self.find_exact_match(request)
        if result:
            return result

        directions = clean(request.directions)
        question_text = clean(request.questionText)
        question_image = clean(request.questionImage)

        if directions:
            result = await self._text_then_substring(DIRECTIONS_FIELDS, directions)
            if result:
                return result

        if question_text:
            result = await self._text_then_substring(QUESTION_TEXT_FIELDS, question_text)
            if result:
                return result

        if question_image:
            result = await self.store.find_one({"questionImage": question_image})
            if result:
                return result

        for term in [t for t in (directions, question_text) if t]:
            clause = substring_clause(term)
            result = await self.store.find_one(any_field(FLEXIBLE_FIELDS, clause))
            if result:
                return result

        return None

    async def find_similar(
        self,
        question_text: Optional[str],
        question_image: Optional[str],
        directions: Optional[str],
        limit: int = 5,
    ) -> List[QuestionRecord]:
        """Loosely related questions to suggest when nothing matched."""
        clauses = []

        keywords = extract_keywords(question_text, 5, STOP_WORDS)
        if keywords:
            clauses.append({"$or": [{field: substring_clause(k)} for k in keywords for field in QUESTION_TEXT_FIELDS]})

        direction_keywords = extract_keywords(directions, 3)
        if direction_keywords:
            clauses.append({"$or": [{field: substring_clause(k)} for k in direction_keywords for field in DIRECTIONS_FIELDS]})

        if clean(question_image):
            clauses.append({"questionImage": {"$exists": True, "$nin": ["", None]}})

        if not clauses:
            return []

        try:
            return await self.store.aggregate({"$or": clauses}, limit, {"similarity": "medium"})
        except Exception as e:
            logger.error(f"Error in find_similar: {str(e)}")
            return []
