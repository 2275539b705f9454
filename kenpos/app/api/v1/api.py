from fastapi import APIRouter

from kenpos.app.api.v1.endpoints import auth, pos

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(pos.router, prefix="/pos", tags=["pos"])
