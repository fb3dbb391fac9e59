# models/search.py
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union

from models.question import OptionItem


class SearchPayload(BaseModel):
    """Body of POST /get-answer as sent by the browser extension."""
    pattern: Optional[str] = None
    passageId: Optional[str] = None
    section: Optional[str] = None
    questionNumber: Optional[int] = None
    directions: Optional[str] = Field(None, max_length=2000)
    passage: Optional[str] = Field(None, max_length=5000)
    questionText: Optional[str] = Field(None, max_length=2000)
    statements: Optional[str] = Field(None, max_length=2000)
    conclusions: Optional[str] = Field(None, max_length=2000)
    question: Optional[str] = Field(None, max_length=2000)
    questionImage: Optional[str] = Field(None, max_length=1000)
    description: Optional[str] = Field(None, max_length=1500)
    # Either [{text, images}, ...] or the legacy {A, AImage, B, BImage, ...}
    options: Optional[Union[List[Union[OptionItem, str]], Dict[str, Optional[str]]]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "directions": "Choose the correct answer.",
                "questionText": "What is 2+2?",
                "options": [{"text": "3", "images": None}, {"text": "4", "images": None}],
            }
        }


class SearchRequest(BaseModel):
    """Normalized query consumed by the match engine."""
    directions: Optional[str] = None
    questionText: Optional[str] = None
    questionImage: Optional[str] = None
    passage: Optional[str] = None
    statements: Optional[str] = None
    conclusions: Optional[str] = None
    options: Optional[List[OptionItem]] = None

    def fingerprint(self) -> dict:
        """Content fields used to deduplicate unanswered log entries."""
        return {
            "directions": self.directions,
            "question": self.questionText,
            "questionImage": self.questionImage,
            "options": [o.model_dump() for o in self.options] if self.options is not None else None,
        }
