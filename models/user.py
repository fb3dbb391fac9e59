# models/user.py
from pydantic import BaseModel, Field

# bcrypt only reads the first 72 bytes of a secret
ACCESS_KEY_MAX_LENGTH = 72


class UserRegistration(BaseModel):
    NameOfStu: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-zA-Z\s]+$")
    StuID: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
    AccessKey: str = Field(..., min_length=8, max_length=ACCESS_KEY_MAX_LENGTH)


class AccessKeyVerification(BaseModel):
    AccessKey: str = Field(..., min_length=8, max_length=ACCESS_KEY_MAX_LENGTH)


class ProfileUpdate(BaseModel):
    NameOfStu: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-zA-Z\s]+$")
