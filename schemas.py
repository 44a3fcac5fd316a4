"""
Shapes of the documents kept in the admin, session and student collections.

Request bodies live next to their routes in main.py; these models describe
what actually gets written to MongoDB.
"""

from datetime import datetime
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt, field_validator

from database import utcnow
from grading import clean_marks

# strict so JSON true or "80" is refused instead of coerced to a number
Score = Union[StrictInt, StrictFloat]


class AdminAccount(BaseModel):
    username: str = Field(..., description="Unique login name")
    email: Optional[str] = Field(None, description="Email address, unique when set")
    password_hash: str = Field(..., description="Salted password hash")
    role: str = Field("Admin")
    reset_token: Optional[str] = Field(None)
    reset_token_expires: Optional[datetime] = Field(None)


class Session(BaseModel):
    user_id: str
    token: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)


class Student(BaseModel):
    owner_id: str = Field(..., description="Owning admin _id as string")
    roll_number: Optional[int] = Field(None, ge=1, description="Assigned on insert, sequential per owner")
    name: str
    course: str
    marks: Dict[str, Score] = Field(default_factory=dict, description="subject -> score (0-100)")
    percentage: Optional[str] = Field(None, description="Two-decimal average of marks")
    grade: Optional[str] = Field(None, description="A+|A|B|C|D|F")

    @field_validator("marks")
    @classmethod
    def validate_marks(cls, v):
        return clean_marks(v)
