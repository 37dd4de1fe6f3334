import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field, EmailStr

import accounts
import business
import database
import engagement
import notifications
import offers
from auth import get_current_user, get_optional_user, require_role, resolve_identity
from config import get_settings
from errors import AppError
from schemas import CamelModel
from search import search as run_search

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("offbytes")

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    database.close()


# App and CORS
app = FastAPI(title="Offbytes Offers API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server Error"})


# Request Models
class GoogleAuthRequest(CamelModel):
    token: Optional[str] = None
    access_token: Optional[str] = None

class RegisterBusinessRequest(CamelModel):
    business_name: str = Field(..., min_length=1, max_length=120)
    business_address: str = Field(..., min_length=1, max_length=400)
    pincode: str = Field(..., min_length=1, max_length=20)
    timing: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    category: Optional[str] = None

class CreatePostRequest(CamelModel):
    content: Optional[str] = None
    image: Optional[str] = None
    expires_at: Optional[datetime] = None
    location: Optional[str] = None

class UpdatePostRequest(CamelModel):
    content: Optional[str] = None
    image: Optional[str] = None
    expires_at: Optional[datetime] = None

class CommentRequest(CamelModel):
    text: Optional[str] = None

class SaveOfferRequest(CamelModel):
    post_id: str

class UpdateBusinessProfileRequest(CamelModel):
    business_name: Optional[str] = None
    address: Optional[str] = None
    category: Optional[str] = None
    profile_picture: Optional[str] = None


# Auth Routes
@app.post("/auth/google")
def google_auth(payload: GoogleAuthRequest):
    identity = resolve_identity(token=payload.token, access_token=payload.access_token)
    return accounts.login(identity)

@app.post("/auth/register-business", status_code=201)
def register_business(payload: RegisterBusinessRequest):
    created = business.register_business(
        business_name=payload.business_name,
        business_address=payload.business_address,
        pincode=payload.pincode,
        timing=payload.timing,
        email=payload.email,
        category=payload.category,
    )
    return {"success": True, "message": "Business registered successfully", "data": created}

@app.get("/me")
def me(current_user=Depends(get_current_user)):
    return accounts.get_user_profile(current_user)


# User Routes
@app.get("/user/profile")
def user_profile(current_user=Depends(get_current_user)):
    return accounts.get_user_profile(current_user)

@app.get("/user/notifications")
def user_notifications(current_user=Depends(get_current_user)):
    return notifications.list_notifications(current_user["id"])

@app.get("/user/saved-offers")
def user_saved_offers(current_user=Depends(get_current_user)):
    return engagement.list_saved_offers(current_user["id"])

@app.get("/user/{user_id}/public")
def public_profile(user_id: str):
    return accounts.get_public_profile(user_id)


# Post Routes
@app.get("/posts/feed")
def home_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    viewer=Depends(get_optional_user),
):
    return offers.get_feed(page=page, limit=limit, viewer=viewer)

@app.post("/posts", status_code=201)
def create_post(payload: CreatePostRequest, current_user=Depends(get_current_user)):
    return offers.create_post(
        current_user,
        content=payload.content,
        image=payload.image,
        expires_at=payload.expires_at,
        location=payload.location,
    )

@app.get("/posts/{post_id}")
def get_post(post_id: str):
    return offers.get_post(post_id)

@app.put("/posts/{post_id}")
def update_post(post_id: str, payload: UpdatePostRequest, current_user=Depends(get_current_user)):
    return offers.update_post(
        post_id,
        current_user["id"],
        content=payload.content,
        expires_at=payload.expires_at,
        image=payload.image,
    )

@app.put("/posts/{post_id}/like")
def like_post(post_id: str, current_user=Depends(get_current_user)):
    return engagement.toggle_like(post_id, current_user["id"])

@app.post("/posts/{post_id}/comment")
def comment_post(post_id: str, payload: CommentRequest, current_user=Depends(get_current_user)):
    return engagement.add_comment(post_id, current_user["id"], payload.text)

@app.put("/posts/{post_id}/save")
def save_post(post_id: str, current_user=Depends(get_current_user)):
    return engagement.toggle_save(post_id, current_user["id"])


# Search
@app.get("/search")
def search(
    q: Optional[str] = None,
    category: Optional[str] = None,
    location: Optional[str] = None,
    current_user=Depends(get_current_user),
):
    return run_search(q=q, category=category, location=location)


# Saved offers
@app.get("/saved-offers")
def list_saved_offers(current_user=Depends(get_current_user)):
    return engagement.list_saved_offers(current_user["id"])

@app.post("/saved-offers", status_code=201)
def save_offer(payload: SaveOfferRequest, current_user=Depends(get_current_user)):
    return engagement.save_offer(current_user["id"], payload.post_id)

@app.delete("/saved-offers/{post_id}")
def unsave_offer(post_id: str, current_user=Depends(get_current_user)):
    return engagement.unsave_offer(current_user["id"], post_id)


# Notifications
@app.get("/notifications")
def list_notifications(current_user=Depends(get_current_user)):
    return notifications.list_notifications(current_user["id"])

@app.put("/notifications/{notification_id}/read")
def mark_notification_read(notification_id: str, current_user=Depends(get_current_user)):
    return notifications.mark_as_read(notification_id, current_user["id"])


# Business routes
@app.get("/business/insights")
def business_insights(current_business=Depends(require_role("BUSINESS"))):
    return business.get_business_insights(current_business["id"])

@app.get("/business/posts")
def business_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_business=Depends(require_role("BUSINESS")),
):
    return business.get_business_posts(current_business["id"], page=page, limit=limit)

@app.put("/business/profile")
def update_business_profile(payload: UpdateBusinessProfileRequest, current_user=Depends(get_current_user)):
    return business.update_business_profile(
        current_user["id"],
        business_name=payload.business_name,
        address=payload.address,
        category=payload.category,
        profile_picture=payload.profile_picture,
    )

@app.post("/business/posts/refresh-author")
def refresh_author(current_business=Depends(require_role("BUSINESS"))):
    return {"updated": offers.refresh_author_snapshot(current_business)}

@app.get("/business/{business_id}/public-card")
def public_business_card(business_id: str, current_user=Depends(get_current_user)):
    return business.get_public_business_card(business_id)

@app.get("/business/{business_id}/public-profile")
def public_business_profile(business_id: str):
    return business.get_public_business_profile(business_id)


# Admin Routes
@app.post("/admin/business/{business_id}/verify")
def admin_verify_business(business_id: str, admin=Depends(require_role("ADMIN"))):
    return accounts.verify_business(business_id)

@app.post("/admin/business/{business_id}/reject")
def admin_reject_business(business_id: str, admin=Depends(require_role("ADMIN"))):
    return accounts.reject_business(business_id)

@app.post("/admin/offers/expiry-sweep")
def admin_expiry_sweep(admin=Depends(require_role("ADMIN"))):
    return {"created": offers.check_expiry_and_notify()}


# Utility endpoints
@app.get("/")
def root():
    return {"message": "Offbytes Offers API running"}

@app.get("/health")
def health():
    if database.ping():
        return {"backend": "ok", "database": "ok"}
    return JSONResponse(status_code=503, content={"backend": "ok", "database": "unreachable"})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
