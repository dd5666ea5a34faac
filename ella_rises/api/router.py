from fastapi import APIRouter

from ella_rises.api.routes import auth, dashboard, donations, events, health, milestones, participants, public, surveys, users

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(public.router, tags=["public"])
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(dashboard.router, tags=["dashboard"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(participants.router, prefix="/participants", tags=["participants"])
api_router.include_router(milestones.router, prefix="/milestones", tags=["milestones"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(surveys.router, prefix="/surveys", tags=["surveys"])
api_router.include_router(donations.router, prefix="/donations", tags=["donations"])
