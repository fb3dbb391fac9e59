# routes/auth.py
from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.security import APIKeyHeader
from pymongo.errors import DuplicateKeyError
from typing import Optional
import bcrypt
import uuid
import logging

from database import get_db
from models.question import utc_now
from models.user import UserRegistration, AccessKeyVerification, ProfileUpdate, ACCESS_KEY_MAX_LENGTH

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
access_key_scheme = APIKeyHeader(name="Authorization", auto_error=False)

ACCESS_KEY_PREFIX = "AccessKey "


def hash_access_key(access_key: str) -> str:
    return bcrypt.hashpw(access_key.encode("utf-8"), bcrypt.gensalt(12)).decode("utf-8")


def check_access_key(access_key: str, hashed: Optional[str]) -> bool:
    if not access_key or not hashed:
        return False
    secret = access_key.encode("utf-8")
    if len(secret) > ACCESS_KEY_MAX_LENGTH:
        return False
    return bcrypt.checkpw(secret, hashed.encode("utf-8"))


def public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "NameOfStu": user["NameOfStu"],
        "StuID": user["StuID"],
        "isActive": user.get("isActive", True),
        "lastLogin": user.get("lastLogin"),
    }


async def find_user_by_access_key(db, access_key: str) -> Optional[dict]:
    """Check the key against every active user."""
    users = await db.users.find({"isActive": True}).to_list(None)
    for user in users:
        if await run_in_threadpool(check_access_key, access_key, user.get("AccessKey")):
            return user
    return None


async def mark_login(db, user: dict) -> None:
    now = utc_now()
    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {"lastLogin": now}},
    )
    user["lastLogin"] = now


async def get_current_user(authorization: Optional[str] = Depends(access_key_scheme), db=Depends(get_db)):
    access_key = None
    if authorization and authorization.startswith(ACCESS_KEY_PREFIX):
        access_key = authorization[len(ACCESS_KEY_PREFIX):].strip()
    if not access_key:
        raise HTTPException(status_code=401, detail="Access key is required")

    user = await find_user_by_access_key(db, access_key)
    if not user:
        logger.warning("Authentication failed: invalid access key")
        raise HTTPException(status_code=401, detail="Invalid access key")

    await mark_login(db, user)
    return public_user(user)


def log_activity(action: str):
    """Dependency that records who called an endpoint."""
    async def _log(request: Request, current_user: dict = Depends(get_current_user)):
        logger.info(
            f"User activity: action={action}, userId={current_user['id']}, "
            f"student={current_user['NameOfStu']}, ip={request.client.host if request.client else None}, "
            f"userAgent={request.headers.get('user-agent')}"
        )
        return current_user
    return _log


@router.post("/register", status_code=201)
async def register_user(registration: UserRegistration, db=Depends(get_db)):
    logger.info(f"Registration attempt for StuID: {registration.StuID}")
    if await db.users.find_one({"StuID": registration.StuID.strip()}):
        raise HTTPException(status_code=400, detail="Student ID already exists")
    if await find_user_by_access_key(db, registration.AccessKey.strip()):
        raise HTTPException(status_code=400, detail="Access key already exists")

    now = utc_now()
    user = {
        "id": str(uuid.uuid4()),
        "NameOfStu": registration.NameOfStu.strip(),
        "StuID": registration.StuID.strip(),
        "AccessKey": await run_in_threadpool(hash_access_key, registration.AccessKey.strip()),
        "isActive": True,
        "lastLogin": None,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        await db.users.insert_one(user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Student ID already exists")

    return {
        "success": True,
        "message": "User registered successfully",
        "data": {
            "id": user["id"],
            "NameOfStu": user["NameOfStu"],
            "StuID": user["StuID"],
            "isActive": user["isActive"],
            "createdAt": user["createdAt"],
        },
    }


@router.post("/verify")
async def verify_access_key(verification: AccessKeyVerification, request: Request, db=Depends(get_db)):
    logger.info(f"Access key verification from {request.client.host if request.client else None}")
    user = await find_user_by_access_key(db, verification.AccessKey.strip())
    if not user:
        raise HTTPException(status_code=401, detail="Invalid access key")

    await mark_login(db, user)
    return {
        "success": True,
        "message": "Access key verified successfully",
        "data": public_user(user),
    }


@router.get("/profile")
async def get_profile(current_user: dict = Depends(log_activity("GET_PROFILE"))):
    return {"success": True, "data": current_user}


@router.put("/profile")
async def update_profile(
    profile: ProfileUpdate,
    current_user: dict = Depends(log_activity("UPDATE_PROFILE")),
    db=Depends(get_db),
):
    now = utc_now()
    result = await db.users.update_one(
        {"id": current_user["id"]},
        {"$set": {"NameOfStu": profile.NameOfStu.strip(), "updatedAt": now}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")

    return {
        "success": True,
        "message": "Profile updated successfully",
        "data": {
            "id": current_user["id"],
            "NameOfStu": profile.NameOfStu.strip(),
            "StuID": current_user["StuID"],
            "isActive": current_user["isActive"],
            "updatedAt": now,
        },
    }


@router.patch("/deactivate")
async def deactivate_account(current_user: dict = Depends(log_activity("DEACTIVATE_ACCOUNT")), db=Depends(get_db)):
    now = utc_now()
    result = await db.users.update_one(
        {"id": current_user["id"]},
        {"$set": {"isActive": False, "updatedAt": now}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")

    return {
        "success": True,
        "message": "Account deactivated successfully",
        "data": {"id": current_user["id"], "isActive": False, "deactivatedAt": now},
    }


@router.get("/stats")
async def get_user_stats(current_user: dict = Depends(log_activity("GET_USER_STATS")), db=Depends(get_db)):
    total = await db.users.count_documents({})
    active = await db.users.count_documents({"isActive": True})
    return {
        "success": True,
        "data": {
            "totalUsers": total,
            "activeUsers": active,
            "inactiveUsers": total - active,
        },
        "requestedBy": current_user["NameOfStu"],
        "timestamp": utc_now(),
    }
