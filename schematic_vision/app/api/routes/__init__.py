from fastapi import APIRouter

from schematic_vision.app.api.routes import analyze, schematic, uploads

api_router = APIRouter()
api_router.include_router(analyze.router)
api_router.include_router(uploads.router)
api_router.include_router(schematic.router)
