from fastapi import APIRouter, HTTPException, Request
from datetime import datetime
from revnet.database import check_db_connection

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Application health check endpoint"""
    manager = request.app.state.connection_manager
    db_ok = await check_db_connection()

    return {
        "status": "healthy" if db_ok else "unhealthy",
        "timestamp": datetime.utcnow(),
        "database": "connected" if db_ok else "disconnected",
        "connections": len(manager.registry),
        "online_users": manager.get_online_users_count(),
        "service": "revnet-gateway"
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check endpoint"""
    if not await check_db_connection():
        raise HTTPException(
            status_code=503,
            detail="Service not ready - database connection failed"
        )

    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """Liveness check endpoint"""
    return {"status": "alive", "timestamp": datetime.utcnow()}
