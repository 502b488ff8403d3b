r"""backend\app\api\v1\health.py

Health check endpoints.

Orchestrators and load balancers poll `/api/v1/health`.  The payload also
says whether the required inventory tables are present, so a deployment
without exported data is visible before the first report fails with 503.
"""

from typing import Union

from fastapi import APIRouter

from ...core.config import get_settings
from ...services.inventory_store import InventoryStore

router = APIRouter()

_store = InventoryStore(data_root=get_settings().data_dir)


@router.get("/health")
async def health_check() -> dict[str, Union[str, bool]]:
    """Return a basic health indicator."""
    return {"status": "ok", "data_ready": _store.data_files_present()}
