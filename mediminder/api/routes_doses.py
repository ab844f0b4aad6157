from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from mediminder.api.deps import ServiceContainer, get_container
from mediminder.core.errors import StorageWriteError
from mediminder.schemas.models import AdherenceSummary, Dose, MarkDoseRequest

router = APIRouter(prefix="/doses", tags=["doses"])

@router.get("", response_model=List[Dose])
async def list_doses(med_id: Optional[str] = None, c: ServiceContainer = Depends(get_container)):
    if med_id:
        return await c.store.doses_for_medication(med_id)
    doses = await c.store.get_doses()
    return sorted(doses, key=lambda d: d.when_iso)

@router.post("/mark", response_model=Dose)
async def mark(req: MarkDoseRequest, c: ServiceContainer = Depends(get_container)):
    try:
        dose = await c.orchestrator.mark_dose(req.dose_id, req.status)
    except StorageWriteError as e:
        raise HTTPException(status_code=503, detail=f"{e}. Please try again.")

    if dose is None:
        raise HTTPException(status_code=404, detail="dose_id not found")
    return dose

@router.get("/summary", response_model=AdherenceSummary)
async def summary(days: int = Query(default=7, ge=1, le=90), c: ServiceContainer = Depends(get_container)):
    return await c.store.adherence_summary(days=days)
