from fastapi import APIRouter
from app.api.v1 import users, generations, admin, webhooks, tokens, files, usage

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(generations.router, prefix="/generations", tags=["generations"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(tokens.router, prefix="/tokens", tags=["tokens"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(usage.router, prefix="/usage", tags=["usage"])
