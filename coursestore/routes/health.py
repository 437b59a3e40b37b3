from fastapi import APIRouter, Depends
from datetime import datetime

from coursestore.database import DataGateway
from coursestore.dependencies.services import get_gateway

router = APIRouter()

@router.get("/check")
def health_check(gateway: DataGateway = Depends(get_gateway)):
    return {
        "status": "ok",
        "database": "ok" if gateway.ping() else "failed",
        "timestamp": datetime.utcnow().isoformat()
    }
