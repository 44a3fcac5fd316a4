import hashlib
import hmac
import logging
import os
import secrets
from datetime import timedelta
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, field_validator
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import config
from database import db, create_document, ensure_indexes, get_documents, to_dict, utcnow
from errors import ConflictError, NotFoundError, StudentRecordsError, ValidationError
from grading import aggregate, clean_marks, compute_stats, with_stats
from rollnumbers import insert_with_roll_number
from roster import ASCENDING, DESCENDING, SORT_FIELDS, subject_columns, view, write_csv
from schemas import AdminAccount, Score, Session, Student

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Records API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def create_indexes():
    try:
        ensure_indexes(db)
    except Exception as e:
        logger.error("Could not create indexes: %s", e)


@app.exception_handler(StudentRecordsError)
async def records_error_handler(request: Request, exc: StudentRecordsError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Utility functions

def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(8)
    digest = hashlib.sha256((salt + password).encode()).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored or "$" not in stored:
        return False
    salt, _ = stored.split("$", 1)
    return hmac.compare_digest(hash_password(password, salt), stored)


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=401, detail="Invalid session")


def public_user(user: dict) -> dict:
    return {
        "_id": str(user["_id"]),
        "username": user["username"],
        "email": user.get("email"),
        "role": user.get("role", "Admin"),
    }


def required_text(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValidationError(f"{field} cannot be empty")
    return value


# Auth models
class RegisterRequest(BaseModel):
    username: str
    email: Optional[str] = None
    password: str = Field(..., min_length=6)

    @field_validator("username")
    @classmethod
    def check_username(cls, v):
        return required_text(v, "Username")

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return (v or "").strip() or None


class LoginRequest(BaseModel):
    username: str
    password: str


class SessionInfo(BaseModel):
    token: str
    user: dict


class ProfileUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None

    @field_validator("username")
    @classmethod
    def check_username(cls, v):
        return required_text(v, "Username")

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return v if v is None else v.strip()


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=6)


# Auth helpers
def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    return authorization.replace("Bearer ", "").strip()


async def get_current_user(authorization: Optional[str] = Header(None)):
    token = bearer_token(authorization)
    session = db["session"].find_one({"token": token, "expires_at": {"$gt": utcnow()}})
    if not session:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = db["admin"].find_one({"_id": to_object_id(session["user_id"])})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return public_user(user)


def start_session(user: dict) -> dict:
    session = Session(
        user_id=str(user["_id"]),
        token=secrets.token_urlsafe(32),
        expires_at=utcnow() + timedelta(days=config.SESSION_TTL_DAYS),
    )
    db["session"].insert_one(session.model_dump())
    return {"token": session.token, "user": public_user(user)}


def check_account_available(username: Optional[str], email: Optional[str], exclude_id=None):
    others = {"_id": {"$ne": exclude_id}} if exclude_id is not None else {}
    if username and db["admin"].find_one({"username": username, **others}):
        raise ConflictError("Username already exists")
    if email and db["admin"].find_one({"email": email, **others}):
        raise ConflictError("Email already registered")


@app.get("/")
def read_root():
    return {"message": "Student Records API"}


@app.get("/health")
def health():
    return {"status": "ok", "time": utcnow().isoformat()}


@app.get("/test")
def test_database():
    resp = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": "Set" if os.getenv("DATABASE_URL") else "Not Set",
        "database_name": getattr(db, "name", None),
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        resp["collections"] = db.list_collection_names()[:10]
        resp["database"] = "Connected & Working"
        resp["connection_status"] = "Connected"
    except Exception as e:
        logger.error("Database check failed: %s", e)
        resp["database"] = f"Error: {str(e)[:50]}"
    return resp


# Auth routes
@app.post("/api/auth/register", response_model=SessionInfo, status_code=201)
def register(payload: RegisterRequest):
    check_account_available(payload.username, payload.email)
    account = AdminAccount(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password),
    )
    try:
        # unset email stays out of the document so the sparse index skips it
        user = create_document(db["admin"], account.model_dump(exclude_none=True))
    except DuplicateKeyError:
        raise ConflictError("Username or email already exists")
    logger.info("Registered admin %s", user["username"])
    return start_session(user)


@app.post("/api/auth/login", response_model=SessionInfo)
def login(payload: LoginRequest):
    user = db["admin"].find_one({"username": payload.username.strip()})
    if not user or not verify_password(payload.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    logger.info("Admin %s logged in", user["username"])
    return start_session(user)


@app.post("/api/auth/logout")
def logout(authorization: Optional[str] = Header(None), user=Depends(get_current_user)):
    db["session"].delete_one({"token": bearer_token(authorization)})
    return {"message": "Logged out"}


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return user


@app.put("/api/auth/profile")
def update_profile(payload: ProfileUpdate, user=Depends(get_current_user)):
    changes = payload.model_dump(exclude_none=True)
    user_id = ObjectId(user["_id"])
    check_account_available(changes.get("username"), changes.get("email"), exclude_id=user_id)
    update: Dict[str, dict] = {"$set": {"updated_at": utcnow()}}
    if changes.get("email") == "":
        changes.pop("email")
        update["$unset"] = {"email": ""}
    update["$set"].update(changes)
    try:
        updated = db["admin"].find_one_and_update(
            {"_id": user_id}, update, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        raise ConflictError("Username or email already exists")
    return {"message": "Profile updated", "user": public_user(updated)}


@app.put("/api/auth/password")
def change_password(payload: PasswordChange, user=Depends(get_current_user)):
    account = db["admin"].find_one({"_id": ObjectId(user["_id"])})
    if not verify_password(payload.current_password, account.get("password_hash")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    db["admin"].update_one(
        {"_id": account["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": utcnow()}},
    )
    return {"message": "Password updated"}


@app.post("/api/auth/forgot-password")
def forgot_password(payload: ForgotPasswordRequest):
    account = db["admin"].find_one({"email": payload.email.strip()})
    if account:
        token = secrets.token_urlsafe(32)
        db["admin"].update_one(
            {"_id": account["_id"]},
            {"$set": {
                "reset_token": token,
                "reset_token_expires": utcnow() + timedelta(minutes=config.RESET_TOKEN_TTL_MINUTES),
            }},
        )
        # No mail transport is configured; delivery is simulated in the log
        logger.warning("Password reset simulation: To=%s, token=%s", account["email"], token)
    return {"message": "If the email is registered, a reset link has been sent"}


@app.post("/api/auth/reset-password")
def reset_password(payload: ResetPasswordRequest):
    account = db["admin"].find_one(
        {"reset_token": payload.token, "reset_token_expires": {"$gt": utcnow()}}
    )
    if not account:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    db["admin"].update_one(
        {"_id": account["_id"]},
        {
            "$set": {"password_hash": hash_password(payload.new_password), "updated_at": utcnow()},
            "$unset": {"reset_token": "", "reset_token_expires": ""},
        },
    )
    db["session"].delete_many({"user_id": str(account["_id"])})
    logger.info("Password reset for admin %s", account["username"])
    return {"message": "Password has been reset"}


# Students
class StudentCreate(BaseModel):
    name: str
    course: str
    marks: Dict[str, Score] = Field(default_factory=dict)

    @field_validator("name", "course")
    @classmethod
    def check_text(cls, v, info):
        return required_text(v, info.field_name.capitalize())

    @field_validator("marks")
    @classmethod
    def check_marks(cls, v):
        return clean_marks(v)


class StudentUpdate(BaseModel):
    name: Optional[str] = None
    course: Optional[str] = None
    marks: Optional[Dict[str, Score]] = None

    @field_validator("name", "course")
    @classmethod
    def check_text(cls, v, info):
        return required_text(v, info.field_name.capitalize())

    @field_validator("marks")
    @classmethod
    def check_marks(cls, v):
        return v if v is None else clean_marks(v)


def owned(user: dict, roll_number: Optional[int] = None) -> dict:
    query = {"owner_id": user["_id"]}
    if roll_number is not None:
        query["roll_number"] = roll_number
    return query


def roster_for(user: dict) -> list:
    return get_documents(db["student"], owned(user), sort=[("roll_number", 1)])


class ViewParams:
    def __init__(
        self,
        q: Optional[str] = Query(None, description="Search name, course, roll number or grade"),
        sort: Optional[str] = Query(None, description="Field or subject to sort by"),
        direction: str = Query(ASCENDING, pattern=f"^({ASCENDING}|{DESCENDING})$"),
        subject: bool = Query(False, description="Treat sort as a subject name"),
    ):
        self.q = q
        self.sort = sort
        self.direction = direction
        self.subject = subject

    def apply(self, records: list) -> list:
        if self.sort and not self.subject and self.sort not in SORT_FIELDS:
            raise ValidationError(f"Cannot sort by {self.sort}")
        return view(records, self.q, self.sort, self.direction, self.subject)


@app.get("/api/students")
def list_students(params: ViewParams = Depends(), user=Depends(get_current_user)):
    return params.apply(roster_for(user))


@app.get("/api/students/summary")
def students_summary(user=Depends(get_current_user)):
    records = roster_for(user)
    summary = aggregate(records)
    return {**summary._asdict(), "subjects": subject_columns(records)}


@app.get("/api/students/export")
def export_students(params: ViewParams = Depends(), user=Depends(get_current_user)):
    records = roster_for(user)
    content = write_csv(params.apply(records), subject_columns(records))
    response = StreamingResponse(iter([content]), media_type="text/csv")
    response.headers["Content-Disposition"] = "attachment; filename=students_list.csv"
    return response


@app.get("/api/students/{roll_number}")
def get_student(roll_number: int, user=Depends(get_current_user)):
    doc = db["student"].find_one(owned(user, roll_number))
    if not doc:
        raise NotFoundError("Student not found")
    return to_dict(with_stats(doc))


@app.post("/api/students", status_code=201)
def create_student(payload: StudentCreate, user=Depends(get_current_user)):
    stats = compute_stats(payload.marks)
    record = Student(owner_id=user["_id"], **payload.model_dump(), **stats._asdict())
    doc = insert_with_roll_number(
        db["student"], user["_id"], record.model_dump(exclude={"owner_id", "roll_number"})
    )
    logger.info("Admin %s added student #%s", user["username"], doc["roll_number"])
    return to_dict(doc)


@app.put("/api/students/{roll_number}")
def update_student(roll_number: int, payload: StudentUpdate, user=Depends(get_current_user)):
    existing = db["student"].find_one(owned(user, roll_number))
    if not existing:
        raise NotFoundError("Student not found")
    changes = payload.model_dump(exclude_none=True)
    # marks go out with the stats so the two can never be written apart
    changes["marks"] = changes.get("marks", existing.get("marks") or {})
    changes.update(compute_stats(changes["marks"])._asdict())
    changes["updated_at"] = utcnow()
    updated = db["student"].find_one_and_update(
        owned(user, roll_number), {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise NotFoundError("Student not found")
    logger.info("Admin %s updated student #%s", user["username"], roll_number)
    return to_dict(updated)


@app.delete("/api/students/{roll_number}")
def delete_student(roll_number: int, user=Depends(get_current_user)):
    res = db["student"].delete_one(owned(user, roll_number))
    if res.deleted_count == 0:
        raise NotFoundError("Student not found")
    logger.info("Admin %s deleted student #%s", user["username"], roll_number)
    return {"message": "Student deleted"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
