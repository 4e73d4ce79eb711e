from fastapi import APIRouter
from app.api.v1.routes import questions, revision_sheets, subscriptions, users, admin

api_router = APIRouter()

api_router.include_router(questions.router, prefix="/questions", tags=["questions"])
api_router.include_router(revision_sheets.router, prefix="/revision-sheets", tags=["revision-sheets"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
