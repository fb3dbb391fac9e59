# routes/questions.py
from fastapi import APIRouter, HTTPException, Depends, Request, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from typing import Optional
import time
import logging

from database import get_db
from models.question import QuestionCreate, AnswerUpdate, QuestionRecord, has_question_content, utc_now
from models.search import SearchPayload
from routes.auth import log_activity
from services.errors import LoggingError, QuestionNotFoundError, QuestionValidationError
from services.matcher import DIRECTIONS_FIELDS, QUESTION_TEXT_FIELDS, MatchEngine, escape_regex
from services.normalizer import normalize_request
from services.question_store import QuestionStore
from services.unanswered_log import UnansweredLog, get_unanswered_log

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quiz", tags=["quiz"])


def get_question_store(db=Depends(get_db)) -> QuestionStore:
    return QuestionStore(db.questions)


def get_match_engine(store: QuestionStore = Depends(get_question_store)) -> MatchEngine:
    return MatchEngine(store)


def clamp_limit(limit: Optional[int]) -> int:
    return min(max(limit or 25, 1), 100)


def question_response(record: QuestionRecord) -> dict:
    return {
        "id": record.id,
        "pattern": record.pattern,
        "section": record.section,
        "directions": record.directions,
        "questionText": record.questionText,
        "questionImage": record.questionImage,
        "passage": record.passage,
        "statements": record.statements,
        "conclusions": record.conclusions,
        "options": [o.model_dump() for o in record.options],
        "correctAnswers": [a.model_dump() for a in record.correctAnswers],
        "correctAnswer": record.correctAnswer,  # legacy clients
        "difficulty": record.difficulty,
    }


def suggestion_response(record: QuestionRecord) -> dict:
    return {
        "id": record.id,
        "directions": record.directions,
        "questionText": record.questionText,
        "questionImage": record.questionImage,
        "options": [o.model_dump() for o in record.options],
        "similarity": record.similarity or "low",
    }


@router.get("/health")
async def health_check():
    return {"status": "OK", "message": "Question API is running", "timestamp": utc_now()}


@router.post("/get-answer")
async def get_answer(
    payload: SearchPayload,
    request: Request,
    current_user: dict = Depends(log_activity("GET_ANSWER")),
    engine: MatchEngine = Depends(get_match_engine),
    unanswered: UnansweredLog = Depends(get_unanswered_log),
):
    start = time.perf_counter()
    search = normalize_request(payload.model_dump())
    if not has_question_content(search.model_dump()):
        raise HTTPException(
            status_code=400,
            detail="At least one content field (questionText, question, questionImage, passage, statements, or directions) is required",
        )

    logger.info(
        f"Search request: directions={(search.directions or '')[:50]!r}, "
        f"questionText={(search.questionText or '')[:50]!r}, "
        f"questionImage={'provided' if search.questionImage else 'none'}, "
        f"options={len(search.options or [])}"
    )

    matched = await engine.find_exact_match(search)
    match_type = "exact"
    if not matched:
        matched = await engine.find_flexible_match(search)
        match_type = "flexible"

    search_time = f"{round((time.perf_counter() - start) * 1000)}ms"

    if matched:
        logger.info(f"{match_type.capitalize()} match found for question {matched.id} in {search_time}")
        return {
            "success": True,
            "matchType": match_type,
            "searchTime": search_time,
            "question": question_response(matched),
        }

    logger.warning(f"No match found for question in {search_time} - logging as unanswered")
    logged, total_unanswered = False, None
    # A logging failure must not turn the miss into an error response
    try:
        result = await run_in_threadpool(unanswered.record, search, current_user["id"], request.headers.get("user-agent"))
        logged, total_unanswered = result.success, result.totalUnanswered
    except Exception as e:
        logger.error(f"Unanswered question not logged: {str(e)}", exc_info=True)

    suggestions = await engine.find_similar(search.questionText, search.questionImage, search.directions)

    return JSONResponse(
        status_code=404,
        content=jsonable_encoder({
            "success": False,
            "message": "Question not found in database",
            "searchTime": search_time,
            "suggestions": [suggestion_response(s) for s in suggestions],
            "logged": logged,
            "totalUnanswered": total_unanswered,
        }),
    )


@router.post("/create", status_code=201)
async def create_question(
    question: QuestionCreate,
    current_user: dict = Depends(log_activity("CREATE_QUESTION")),
    store: QuestionStore = Depends(get_question_store),
):
    logger.info(f"Creating new question: {question.model_dump(by_alias=True)}")
    try:
        saved = await store.save(question)
    except QuestionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "success": True,
        "message": "Question created successfully",
        "question": {
            "id": saved.id,
            "pattern": saved.pattern,
            "section": saved.section,
            "questionNumber": saved.questionNumber,
            "directions": saved.directions,
            "questionText": saved.questionText,
            "options": saved.options,
            "correctAnswers": saved.correctAnswers,
            "createdAt": saved.createdAt,
        },
    }


@router.put("/{question_id}/answer")
async def update_question_answer(
    question_id: str,
    update: AnswerUpdate,
    current_user: dict = Depends(log_activity("UPDATE_ANSWER")),
    store: QuestionStore = Depends(get_question_store),
):
    logger.info(f"Updating answer for question ID: {question_id}")
    try:
        updated = await store.update_answers(question_id, update.correctAnswers)
    except QuestionNotFoundError:
        raise HTTPException(status_code=404, detail="Question not found")

    return {
        "success": True,
        "message": "Question answer updated successfully",
        "question": {
            "id": updated.id,
            "correctAnswers": updated.correctAnswers,
            "updatedAt": updated.updatedAt,
        },
    }


@router.get("/search")
async def search_questions(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=100),
    skip: int = Query(0, ge=0),
    current_user: dict = Depends(log_activity("SEARCH_QUESTIONS")),
    store: QuestionStore = Depends(get_question_store),
):
    pattern = {"$regex": escape_regex(q), "$options": "i"}
    query = {"$or": [{field: pattern} for field in QUESTION_TEXT_FIELDS + DIRECTIONS_FIELDS + ["section"]]}
    results, total = await store.search(query, limit, skip)
    return {
        "success": True,
        "results": [question_response(r) for r in results],
        "pagination": {
            "total": total,
            "limit": limit,
            "skip": skip,
            "hasMore": skip + len(results) < total,
        },
    }


@router.get("/stats")
async def get_question_stats(
    current_user: dict = Depends(log_activity("GET_STATS")),
    store: QuestionStore = Depends(get_question_store),
):
    return {"success": True, "stats": await store.stats()}


@router.get("/unanswered/stats")
async def get_unanswered_stats(
    current_user: dict = Depends(log_activity("GET_UNANSWERED_STATS")),
    unanswered: UnansweredLog = Depends(get_unanswered_log),
):
    try:
        stats = await run_in_threadpool(unanswered.stats)
    except LoggingError as e:
        logger.error(f"Error getting unanswered stats: {str(e)}")
        raise HTTPException(status_code=500, detail="Unable to retrieve unanswered questions statistics")
    return {"success": True, "stats": stats}


@router.get("/unanswered")
async def get_all_unanswered(
    current_user: dict = Depends(log_activity("GET_ALL_UNANSWERED")),
    unanswered: UnansweredLog = Depends(get_unanswered_log),
):
    try:
        questions = await run_in_threadpool(unanswered.all)
    except LoggingError as e:
        logger.error(f"Error reading unanswered questions: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error while retrieving unanswered questions")
    return {"success": True, "totalCount": len(questions), "questions": questions}


@router.get("/unanswered/recent")
async def get_recent_unanswered(
    limit: Optional[int] = 25,
    current_user: dict = Depends(log_activity("GET_RECENT_UNANSWERED")),
    unanswered: UnansweredLog = Depends(get_unanswered_log),
):
    limit = clamp_limit(limit)
    try:
        questions = await run_in_threadpool(unanswered.recent, limit)
    except LoggingError as e:
        logger.error(f"Error getting recent unanswered questions: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error while retrieving recent unanswered questions")
    return {"success": True, "limit": limit, "totalReturned": len(questions), "questions": questions}


@router.get("/unanswered/most-searched")
async def get_most_searched_unanswered(
    limit: Optional[int] = 25,
    current_user: dict = Depends(log_activity("GET_MOST_SEARCHED_UNANSWERED")),
    unanswered: UnansweredLog = Depends(get_unanswered_log),
):
    limit = clamp_limit(limit)
    try:
        questions = await run_in_threadpool(unanswered.most_searched, limit)
    except LoggingError as e:
        logger.error(f"Error getting most searched questions: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error while retrieving most searched questions")
    return {"success": True, "limit": limit, "totalReturned": len(questions), "questions": questions}


@router.delete("/unanswered/clear")
async def clear_all_unanswered(
    current_user: dict = Depends(log_activity("CLEAR_UNANSWERED")),
    unanswered: UnansweredLog = Depends(get_unanswered_log),
):
    try:
        await run_in_threadpool(unanswered.clear)
    except LoggingError as e:
        logger.error(f"Error clearing unanswered questions: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to clear unanswered questions")
    return {"success": True, "message": "All unanswered questions have been cleared"}
