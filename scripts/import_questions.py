# scripts/import_questions.py
import os
import sys
import json
import asyncio
import argparse
import logging

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import LOG_LEVEL
from database import db, init_db
from services.importer import import_questions
from services.question_store import QuestionStore


async def main(path: str, replace: bool) -> None:
    with open(path, "r", encoding="utf-8") as f:
        items = json.load(f)
    if not isinstance(items, list):
        raise SystemExit("JSON file must contain an array of questions")

    await init_db()
    result = await import_questions(QuestionStore(db.questions), items, replace=replace)
    print(f"✅ Imported {result['imported']} of {result['total']} questions ({result['skipped']} skipped)")


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL)
    parser = argparse.ArgumentParser(description="Import questions from a JSON export")
    parser.add_argument("file", help="JSON file holding an array of questions")
    parser.add_argument("--replace", action="store_true", help="delete existing questions first")
    args = parser.parse_args()
    asyncio.run(main(args.file, args.replace))
