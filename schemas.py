"""
Database Schemas for the Campus Portal

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercased class name. Example: class NewsPost -> "newspost" collection.

The *Create / *Update models are the request bodies accepted by the API; the
update models only carry the fields a plain edit may touch. Membership lists,
comments and thesis requests change through their own operations.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Literal

Role = Literal["student", "faculty", "admin"]


# Authenticated actor, resolved per request
class Principal(BaseModel):
    id: str = Field(..., description="User ID")
    role: Role = Field("student", description="Role for permissions")
    name: str = Field("", description="Display name")


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    role: Role = Field("student", description="Role for permissions")
    department: str = Field("", description="Home department")
    student_id: str = Field("", description="Matriculation number, students only")
    password_hash: Optional[str] = Field(None, description="Never returned by the API")
    token: Optional[str] = Field(None, description="Current session token")


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    department: Optional[str] = None
    student_id: Optional[str] = None


# ----------------- Cafeteria -----------------
class MenuItem(BaseModel):
    name: str = Field(..., description="Dish name")
    price: float = Field(..., ge=0, description="Price")
    available: bool = Field(True, description="Served today")
    allergies: List[str] = Field(default_factory=list, description="Allergens, lowercase")


class MenuItemUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    available: Optional[bool] = None
    allergies: Optional[List[str]] = None


# ----------------- News -----------------
class Comment(BaseModel):
    id: str
    text: str
    author_id: str
    author_name: str = ""
    author_role: Role = "student"
    created_at: str


class NewsPost(BaseModel):
    title: str = Field(..., description="Headline")
    body: str = Field(..., description="Post text")
    category: str = Field("general")
    department: str = Field("general")


class NewsPostUpdate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    category: Optional[str] = None
    department: Optional[str] = None


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, description="Comment text")


# ----------------- Events -----------------
class Event(BaseModel):
    title: str = Field(..., description="Event title")
    description: str = Field("")
    department: str = Field("general")
    type: str = Field("event", description="seminar, workshop, ...")
    date: str = Field(..., description="ISO date, sorts lexically")


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    department: Optional[str] = None
    type: Optional[str] = None
    date: Optional[str] = None


# ----------------- Rooms -----------------
RoomStatus = Literal["Available", "Occupied"]


class Room(BaseModel):
    name: str = Field(..., description="Room name")
    building: str = Field(..., description="Building name")
    status: RoomStatus = Field("Available")


class RoomUpdate(BaseModel):
    name: Optional[str] = None
    building: Optional[str] = None


class RoomStatusUpdate(BaseModel):
    status: RoomStatus


# ----------------- Thesis -----------------
RequestStatus = Literal["pending", "accepted", "rejected"]


class ThesisRequest(BaseModel):
    id: str
    student_name: str
    student_id: Optional[str] = None
    group_members: List[str] = Field(default_factory=list)
    topic: str = ""
    status: RequestStatus = "pending"
    created_at: str


class ThesisSlot(BaseModel):
    topic: str = Field("", description="Research area")
    supervisor_name: Optional[str] = Field(None, description="Defaults to the creator's name")
    supervisor_id: Optional[str] = Field(None, description="Defaults to the creator's id")


class ThesisSlotUpdate(BaseModel):
    topic: Optional[str] = None
    supervisor_name: Optional[str] = None


class SupervisionRequest(BaseModel):
    topic: str = Field("", description="Proposed topic")
    group_members: List[str] = Field(default_factory=list)


class RequestStatusUpdate(BaseModel):
    status: str = Field(..., description="accepted or rejected")
