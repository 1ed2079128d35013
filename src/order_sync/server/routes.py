"""Engine API routes."""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from order_sync.core.exceptions import ConfigurationError
from order_sync.core.logger import setup_logger
from order_sync.core.warning_status import WarningHandling
from order_sync.engine import OrderSyncEngine

logger = setup_logger(__name__)
router = APIRouter()


class WarningStatusUpdate(BaseModel):
    """Body of PUT /warnings/{order_id}. A null status clears the mark."""

    status: Optional[WarningHandling] = None
    note: Optional[str] = None


def get_engine(request: Request) -> OrderSyncEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        {
            "status": "healthy|degraded|unhealthy",
            "service": "order-sync",
            "orders": int,
            "sync_in_flight": bool
        }
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return {
            "status": "unhealthy",
            "service": "order-sync",
            "error": "Engine not initialized",
        }

    snapshot = engine.snapshot()
    return {
        "status": "healthy" if engine.credentials() else "degraded",
        "service": "order-sync",
        "orders": len(snapshot.orders),
        "shops": len(snapshot.shop_order_sets),
        "sync_in_flight": engine.sync_service.sync_in_flight,
    }


@router.get("/orders")
async def list_orders(
    request: Request,
    q: str = Query("", description="Search tracking number, customer, phone, address, id or goods"),
) -> dict:
    engine = get_engine(request)
    orders = engine.search_orders(q)
    return {
        "success": True,
        "count": len(orders),
        "orders": [order.model_dump(mode="json") for order in orders],
    }


@router.get("/orders/tracking/{tracking_number}")
async def get_order_by_tracking(request: Request, tracking_number: str) -> dict:
    engine = get_engine(request)
    order = engine.get_order_by_tracking_number(tracking_number)
    if order is None:
        raise HTTPException(status_code=404, detail=f"No order with tracking number {tracking_number}")
    return {"success": True, "order": order.model_dump(mode="json")}


@router.get("/shops")
async def list_shops(request: Request) -> dict:
    """Shop sets of the current snapshot, without their orders."""
    engine = get_engine(request)
    return {
        "success": True,
        "shops": [
            {
                "shop_id": shop.shop_id,
                "shop_name": shop.shop_name,
                "credential_id": shop.credential_id,
                "order_count": len(shop.orders),
                "fetch_error": shop.fetch_error,
            }
            for shop in engine.snapshot().shop_order_sets
        ],
    }


@router.post("/sync")
async def trigger_sync(
    request: Request,
    force: bool = Query(True, description="Full refresh bypassing the cache"),
    incremental: bool = Query(False, description="Skip persist when nothing changed"),
) -> dict:
    """Trigger a sync and wait for it.

    Returns:
        The SyncRun, or a note that the fresh cache was served
    """
    engine = get_engine(request)
    try:
        run = await engine.fetch_orders(force=force, use_cache=not force, incremental=incremental)
    except ConfigurationError as e:
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error in manual sync: {e}", exc_info=True)
        return {"success": False, "error": str(e)}

    if run is None:
        return {"success": True, "result": None, "message": "Cache served, a refresh is already running or queued in background"}
    return {"success": run.success, "result": asdict(run)}


@router.get("/sync/status")
async def get_sync_status(request: Request) -> dict:
    engine = get_engine(request)
    return {"success": True, "status": engine.get_sync_status()}


@router.post("/polling/start")
async def start_polling(
    request: Request,
    interval_seconds: Optional[float] = Query(None, gt=0, description="Poll interval in seconds"),
) -> dict:
    engine = get_engine(request)
    engine.start_polling(interval_seconds)
    return {"success": True, "polling": True, "interval_seconds": engine.scheduler.poll_interval_seconds}


@router.post("/polling/stop")
async def stop_polling(request: Request) -> dict:
    engine = get_engine(request)
    engine.stop_polling()
    return {"success": True, "polling": False}


@router.get("/reports/summary")
async def report_summary(request: Request) -> dict:
    engine = get_engine(request)
    return {"success": True, "summary": engine.report_summary().to_dict()}


@router.get("/warnings")
async def list_warnings(
    request: Request,
    include_handled: bool = Query(True, description="Include orders already marked as handled"),
) -> dict:
    engine = get_engine(request)
    entries = engine.warnings(include_handled=include_handled)
    return {
        "success": True,
        "count": len(entries),
        "warnings": [
            {
                "tier": entry["tier"],
                "handling": entry["handling"],
                "order": entry["order"].model_dump(mode="json"),
            }
            for entry in entries
        ],
    }


@router.put("/warnings/{order_id}")
async def set_warning_status(request: Request, order_id: str, update: WarningStatusUpdate) -> dict:
    engine = get_engine(request)
    record = engine.set_warning_status(order_id, update.status, update.note)
    return {
        "success": True,
        "order_id": order_id,
        "handling": record.model_dump(mode="json") if record else None,
    }
