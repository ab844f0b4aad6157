import logging

from fastapi import APIRouter, Depends, HTTPException

from mediminder.api.deps import ServiceContainer, get_container
from mediminder.core.errors import StorageWriteError
from mediminder.services.security import verify_internal_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dev", tags=["dev"], dependencies=[Depends(verify_internal_service)])
notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.post("/reset")
async def reset(c: ServiceContainer = Depends(get_container)):
    await c.scheduler.cancel_all_scheduled()
    await c.store.reset_all()
    logger.info("dev reset done")
    return {"ok": True}

@router.post("/seed")
async def seed(c: ServiceContainer = Depends(get_container)):
    try:
        med, doses = await c.store.seed_sample()
    except StorageWriteError as e:
        raise HTTPException(status_code=503, detail=f"{e}. Please try again.")

    ids = await c.scheduler.schedule_many(doses, med.name)
    return {
        "ok": True,
        "medication": med.model_dump(),
        "doses": [d.model_dump() for d in doses],
        "scheduled": sum(1 for i in ids if i),
    }

@notifications_router.post("/reschedule")
async def reschedule(c: ServiceContainer = Depends(get_container)):
    count = await c.orchestrator.reschedule_all()
    return {"ok": True, "scheduled": count}

@notifications_router.get("")
async def list_notifications(c: ServiceContainer = Depends(get_container)):
    return await c.scheduler.list_scheduled()
