# backend/app/api/v1/router.py
from fastapi import APIRouter
from backend.app.api.v1.endpoints import auth, passwords, user, utility

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(passwords.router, prefix="/passwords", tags=["passwords"])
api_router.include_router(user.router, prefix="/user", tags=["user"])
api_router.include_router(utility.router, prefix="/utility", tags=["utility"])
