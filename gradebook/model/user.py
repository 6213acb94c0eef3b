import enum

from .base import BaseModel, WithTimestamps
from .id import UserID


class UserRole(enum.Enum):
    Admin = "admin"
    Teacher = "teacher"
    Student = "student"


class User(WithTimestamps, BaseModel):
    user_id: UserID
    email: str
    name: str
    role: UserRole = UserRole.Student
