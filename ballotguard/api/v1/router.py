"""Main API router for v1."""
from fastapi import APIRouter

from ballotguard.api.v1.endpoints import admin, auth, ballots, election, results

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(election.router, tags=["Election"])
api_router.include_router(ballots.router, tags=["Ballots"])
api_router.include_router(results.router, tags=["Results"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
