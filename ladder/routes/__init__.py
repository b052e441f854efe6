"""
ladder/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from ladder.routes import rounds, competitions

router = APIRouter()

router.include_router(rounds.router)
router.include_router(competitions.router)
