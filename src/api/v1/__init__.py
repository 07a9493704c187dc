"""
API v1 package.

Contains versioned API routes for registration, the job/proposal/contract
workflow, notifications, and the real-time relay.
"""

from fastapi import APIRouter

from src.api.v1 import auth, contracts, jobs, notifications

router = APIRouter()
router.include_router(auth.router)
router.include_router(jobs.router)
router.include_router(contracts.router)
router.include_router(notifications.router)

__all__ = ["router"]
