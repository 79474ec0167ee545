"""
cbt/routes/__init__.py
Route registration
"""
from fastapi import APIRouter

from cbt.routes import authoring, exam_taking, results

router = APIRouter()

router.include_router(exam_taking.router)
router.include_router(results.router)
router.include_router(authoring.router)
