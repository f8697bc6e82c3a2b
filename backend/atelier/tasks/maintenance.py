"""
Maintenance Tasks.

Self-healing sweeps. Multi-table writes in this system are not atomic, so a
crash between two writes can leave an item without a production status or
an assignment out of line with its status. Each sweep below is idempotent
and safe to run at any time; running them repairs that drift.
"""

import asyncio
import logging
from typing import Dict

from sqlalchemy.ext.asyncio import async_sessionmaker

from atelier.services.dispatcher import ProductionDispatcher
from atelier.services.reconciler import AssignmentReconciler

logger = logging.getLogger(__name__)


async def dispatch_existing_items(session_factory: async_sessionmaker) -> int:
    async with session_factory() as db:
        dispatched = await ProductionDispatcher(db).dispatch_existing_items()
        await db.commit()
    return dispatched


async def reconcile_assignments(session_factory: async_sessionmaker) -> Dict[str, int]:
    async with session_factory() as db:
        result = await AssignmentReconciler(db).reconcile()
        await db.commit()
    return result


async def run_maintenance_sweeps(session_factory: async_sessionmaker) -> Dict:
    """Dispatch sweep, then assignment reconciliation, each in its own session."""
    dispatched = await dispatch_existing_items(session_factory)
    reconciled = await reconcile_assignments(session_factory)
    return {"dispatched": dispatched, **reconciled}


async def periodic_maintenance(session_factory: async_sessionmaker, interval: float) -> None:
    """Run the sweeps every ``interval`` seconds until cancelled."""
    logger.info(f"🔧 Maintenance sweeps scheduled every {interval}s")
    while True:
        await asyncio.sleep(interval)
        try:
            result = await run_maintenance_sweeps(session_factory)
            if any(result.values()):
                logger.info(f"🔧 Maintenance sweep repaired drift: {result}")
        except Exception:
            logger.exception("Maintenance sweep failed")
