import os
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from database import create_store
from errors import PortalError
from identity import (InvalidCredentials, RegistrationError, get_profile, login, register, resolve_principal,
                      update_profile)
from schemas import (CommentCreate, Event, EventUpdate, MenuItem, MenuItemUpdate, NewsPost, NewsPostUpdate,
                     Principal, ProfileUpdate, RequestStatusUpdate, Role, Room, RoomStatusUpdate, RoomUpdate,
                     SupervisionRequest, ThesisSlot, ThesisSlotUpdate)
from services import Portal

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Campus Portal API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_portal: Optional[Portal] = None


def get_portal() -> Portal:
    global _portal
    if _portal is None:
        _portal = Portal(create_store())
        logger.info("Using %s data store", _portal.store.name)
    return _portal


def get_principal(authorization: Optional[str] = Header(None),
                  portal: Portal = Depends(get_portal)) -> Optional[Principal]:
    return resolve_principal(portal.store, authorization)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/")
def read_root():
    return {"message": "Campus Portal API is running"}


@app.get("/test")
def test_database(portal: Portal = Depends(get_portal)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "store": portal.store.name,
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "collections": [],
    }
    db = getattr(portal.store, "db", None)
    if db is None:
        response["database"] = "⚠️  Using in-memory store"
        return response
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning("database check failed: %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# ----------------- Auth -----------------
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "student"
    department: str = ""
    student_id: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


@app.post("/api/auth/register", status_code=201)
def register_user(req: RegisterRequest, portal: Portal = Depends(get_portal)):
    try:
        return register(portal.store, req.name, req.email, req.password, role=req.role,
                        department=req.department, student_id=req.student_id)
    except RegistrationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/auth/login")
def login_user(req: LoginRequest, portal: Portal = Depends(get_portal)):
    try:
        token, user = login(portal.store, req.email, req.password)
    except InvalidCredentials as e:
        raise HTTPException(status_code=401, detail=str(e))
    return {"token": token, "user": user}


@app.get("/api/auth/me")
def me(principal: Optional[Principal] = Depends(get_principal)):
    if principal is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return principal


@app.get("/api/auth/profile")
def read_profile(portal: Portal = Depends(get_portal), principal: Optional[Principal] = Depends(get_principal)):
    return get_profile(portal.store, principal)


@app.put("/api/auth/profile")
def edit_profile(body: ProfileUpdate, portal: Portal = Depends(get_portal),
                 principal: Optional[Principal] = Depends(get_principal)):
    return update_profile(portal.store, principal, name=body.name, department=body.department,
                          student_id=body.student_id)


# ----------------- Cafeteria -----------------
@app.get("/api/cafeteria/menu")
def list_menu(allergy: Optional[str] = None, portal: Portal = Depends(get_portal)):
    return portal.menu.list({"allergy": allergy})


@app.post("/api/cafeteria/menu", status_code=201)
def create_menu_item(item: MenuItem, portal: Portal = Depends(get_portal),
                     principal: Optional[Principal] = Depends(get_principal)):
    return portal.menu.create(item, principal)


@app.put("/api/cafeteria/menu/{item_id}")
def update_menu_item(item_id: str, item: MenuItemUpdate, portal: Portal = Depends(get_portal),
                     principal: Optional[Principal] = Depends(get_principal)):
    return portal.menu.update(item_id, item, principal)


@app.delete("/api/cafeteria/menu/{item_id}", status_code=204)
def delete_menu_item(item_id: str, portal: Portal = Depends(get_portal),
                     principal: Optional[Principal] = Depends(get_principal)):
    portal.menu.delete(item_id, principal)
    return Response(status_code=204)


# ----------------- News -----------------
@app.get("/api/news")
def list_news(category: Optional[str] = None, department: Optional[str] = None,
              portal: Portal = Depends(get_portal)):
    return portal.news.list({"category": category, "department": department})


@app.post("/api/news", status_code=201)
def create_news(post: NewsPost, portal: Portal = Depends(get_portal),
                principal: Optional[Principal] = Depends(get_principal)):
    return portal.news.create(post, principal)


@app.put("/api/news/{news_id}")
def update_news(news_id: str, post: NewsPostUpdate, portal: Portal = Depends(get_portal),
                principal: Optional[Principal] = Depends(get_principal)):
    return portal.news.update(news_id, post, principal)


@app.delete("/api/news/{news_id}", status_code=204)
def delete_news(news_id: str, portal: Portal = Depends(get_portal),
                principal: Optional[Principal] = Depends(get_principal)):
    portal.news.delete(news_id, principal)
    return Response(status_code=204)


@app.post("/api/news/{news_id}/like")
def like_news(news_id: str, portal: Portal = Depends(get_portal),
              principal: Optional[Principal] = Depends(get_principal)):
    return portal.news.toggle_like(news_id, principal)


@app.post("/api/news/{news_id}/comment")
def comment_news(news_id: str, comment: CommentCreate, portal: Portal = Depends(get_portal),
                 principal: Optional[Principal] = Depends(get_principal)):
    return portal.news.comment(news_id, comment.text, principal)


# ----------------- Events -----------------
@app.get("/api/events")
def list_events(department: Optional[str] = None, type: Optional[str] = None, date: Optional[str] = None,
                portal: Portal = Depends(get_portal)):
    return portal.events.list({"department": department, "type": type, "date": date})


@app.post("/api/events", status_code=201)
def create_event(event: Event, portal: Portal = Depends(get_portal),
                 principal: Optional[Principal] = Depends(get_principal)):
    return portal.events.create(event, principal)


@app.put("/api/events/{event_id}")
def update_event(event_id: str, event: EventUpdate, portal: Portal = Depends(get_portal),
                 principal: Optional[Principal] = Depends(get_principal)):
    return portal.events.update(event_id, event, principal)


@app.delete("/api/events/{event_id}", status_code=204)
def delete_event(event_id: str, portal: Portal = Depends(get_portal),
                 principal: Optional[Principal] = Depends(get_principal)):
    portal.events.delete(event_id, principal)
    return Response(status_code=204)


@app.post("/api/events/{event_id}/interest")
def mark_interest(event_id: str, portal: Portal = Depends(get_portal),
                  principal: Optional[Principal] = Depends(get_principal)):
    return portal.events.toggle_interest(event_id, principal)


@app.post("/api/events/{event_id}/share")
def share_event(event_id: str, portal: Portal = Depends(get_portal),
                principal: Optional[Principal] = Depends(get_principal)):
    return {"link": portal.events.share(event_id, principal)}


# ----------------- Rooms -----------------
@app.get("/api/rooms")
def list_rooms(building: Optional[str] = None, status: Optional[str] = None,
               portal: Portal = Depends(get_portal)):
    return portal.rooms.list({"building": building, "status": status})


@app.post("/api/rooms", status_code=201)
def create_room(room: Room, portal: Portal = Depends(get_portal),
                principal: Optional[Principal] = Depends(get_principal)):
    return portal.rooms.create(room, principal)


@app.put("/api/rooms/{room_id}")
def update_room(room_id: str, room: RoomUpdate, portal: Portal = Depends(get_portal),
                principal: Optional[Principal] = Depends(get_principal)):
    return portal.rooms.update(room_id, room, principal)


@app.delete("/api/rooms/{room_id}", status_code=204)
def delete_room(room_id: str, portal: Portal = Depends(get_portal),
                principal: Optional[Principal] = Depends(get_principal)):
    portal.rooms.delete(room_id, principal)
    return Response(status_code=204)


@app.put("/api/rooms/{room_id}/status")
def update_room_status(room_id: str, body: RoomStatusUpdate, portal: Portal = Depends(get_portal),
                       principal: Optional[Principal] = Depends(get_principal)):
    return portal.rooms.set_status(room_id, body.status, principal)


@app.post("/api/rooms/{room_id}/favorite")
def favorite_room(room_id: str, portal: Portal = Depends(get_portal),
                  principal: Optional[Principal] = Depends(get_principal)):
    return portal.rooms.toggle_favorite(room_id, principal)


# ----------------- Thesis -----------------
@app.get("/api/thesis")
def list_thesis_slots(status: Optional[str] = None, portal: Portal = Depends(get_portal)):
    return portal.thesis.list({"status": status})


@app.post("/api/thesis", status_code=201)
def create_thesis_slot(slot: ThesisSlot, portal: Portal = Depends(get_portal),
                       principal: Optional[Principal] = Depends(get_principal)):
    return portal.thesis.create(slot, principal)


@app.put("/api/thesis/{slot_id}")
def update_thesis_slot(slot_id: str, slot: ThesisSlotUpdate, portal: Portal = Depends(get_portal),
                       principal: Optional[Principal] = Depends(get_principal)):
    return portal.thesis.update(slot_id, slot, principal)


@app.delete("/api/thesis/{slot_id}", status_code=204)
def delete_thesis_slot(slot_id: str, portal: Portal = Depends(get_portal),
                       principal: Optional[Principal] = Depends(get_principal)):
    portal.thesis.delete(slot_id, principal)
    return Response(status_code=204)


@app.post("/api/thesis/{slot_id}/toggle")
def toggle_thesis_slot(slot_id: str, portal: Portal = Depends(get_portal),
                       principal: Optional[Principal] = Depends(get_principal)):
    return portal.thesis.toggle_open(slot_id, principal)


@app.post("/api/thesis/{slot_id}/request", status_code=201)
def request_supervision(slot_id: str, body: SupervisionRequest, portal: Portal = Depends(get_portal),
                        principal: Optional[Principal] = Depends(get_principal)):
    return portal.thesis.request_supervision(slot_id, principal, body.topic, body.group_members)


@app.post("/api/thesis/{slot_id}/requests/{request_id}/status")
def update_request_status(slot_id: str, request_id: str, body: RequestStatusUpdate,
                          portal: Portal = Depends(get_portal),
                          principal: Optional[Principal] = Depends(get_principal)):
    return portal.thesis.set_request_status(slot_id, request_id, principal, body.status)


@app.delete("/api/thesis/{slot_id}/requests/{request_id}", status_code=204)
def delete_thesis_request(slot_id: str, request_id: str, portal: Portal = Depends(get_portal),
                          principal: Optional[Principal] = Depends(get_principal)):
    portal.thesis.delete_request(slot_id, request_id, principal)
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
