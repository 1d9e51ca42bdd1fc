from fastapi import APIRouter

from riskmapper.api.routes import answers, checkout, health, reports, sessions, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(sessions.router, tags=["sessions"])
api_router.include_router(answers.router, tags=["answers"])
api_router.include_router(checkout.router, tags=["checkout"])
api_router.include_router(webhooks.router, tags=["webhooks"])
api_router.include_router(reports.router, tags=["reports"])
