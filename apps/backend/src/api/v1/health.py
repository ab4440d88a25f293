from fastapi import APIRouter

from dependencies.jobs import JobStore, Sessions
from schemas.api import ApiResponse


router = APIRouter()


@router.get("/health", response_model=ApiResponse[dict[str, str | int]])
def health_check(store: JobStore, sessions: Sessions) -> ApiResponse[dict[str, str | int]]:
    """Health check endpoint for monitoring and load balancer health checks."""
    return ApiResponse(
        success=True,
        data={
            "status": "healthy",
            "message": "JobRelay API is running",
            "active_sessions": len(sessions),
            "active_subscriptions": store.subscriber_count(),
        },
        message="Health check successful",
    )
