from typing import List

from fastapi import APIRouter, Depends, HTTPException

from mediminder.api.deps import ServiceContainer, get_container
from mediminder.core.errors import StorageWriteError
from mediminder.schemas.models import ExplicitAddRequest, Medication, PatternAddRequest, ReminderResult

router = APIRouter(prefix="/medications", tags=["medications"])

@router.get("", response_model=List[Medication])
async def list_medications(c: ServiceContainer = Depends(get_container)):
    return await c.store.get_meds()

@router.post("/pattern", response_model=ReminderResult)
async def add_with_pattern(req: PatternAddRequest, c: ServiceContainer = Depends(get_container)):
    try:
        return await c.orchestrator.add_medication_with_pattern(req.name, req.pattern, req.days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageWriteError as e:
        raise HTTPException(status_code=503, detail=f"{e}. Please try again.")

@router.post("/explicit", response_model=ReminderResult)
async def add_with_explicit_times(req: ExplicitAddRequest, c: ServiceContainer = Depends(get_container)):
    try:
        return await c.orchestrator.add_medication_with_explicit_times(req.name, req.dates, req.times)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageWriteError as e:
        raise HTTPException(status_code=503, detail=f"{e}. Please try again.")
