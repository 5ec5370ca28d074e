from fastapi import APIRouter

from mindforge import __version__
from mindforge.core.database import check_database

router = APIRouter()


@router.get("/health", summary="Health check", description="Liveness plus a database probe. No authentication.")
def health():
    db_ok = check_database()
    return {
        "status": "ok" if db_ok else "degraded",
        "version": __version__,
        "database": "ok" if db_ok else "unavailable",
    }
