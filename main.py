# main.py
import sys
import os
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from config import ALLOWED_ORIGINS, ENVIRONMENT, LOG_LEVEL
from database import init_db
from models.question import utc_now
from routes import auth, questions
from services.errors import StoreError

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Quiz Answer API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(questions.router)


# Driver errors raised outside the question store get the same response
@app.exception_handler(PyMongoError)
@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: Exception):
    logger.error(f"Store error on {request.method} {request.url.path}: {exc!r}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": str(exc) if ENVIRONMENT == "development" else "Please try again later",
        },
    )


@app.get("/health")
async def health():
    return {"status": "OK", "timestamp": utc_now(), "environment": ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    await init_db()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
