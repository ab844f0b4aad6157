# mediminder/api/routes_prescriptions.py
import logging
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from langgraph.types import Command

from mediminder.agent.graph import thread_config
from mediminder.api.deps import ServiceContainer, get_container
from mediminder.core.errors import UnrecognizedResponseShape
from mediminder.schemas.models import (
    ConfirmRequest,
    ConfirmResponse,
    MedicationCandidate,
    ReviewRequest,
    ReviewResponse,
    ScheduleOutcome,
)
from mediminder.services.ocr import parse_entities, parse_text_lines

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])

def _pending_interrupt_type(snap):
    interrupts = getattr(snap, "interrupts", None) or ()
    if not interrupts:
        return None
    payload = interrupts[-1].value
    return payload.get("type") if isinstance(payload, dict) else None

@router.post("/review", response_model=ReviewResponse)
async def review(req: ReviewRequest, c: ServiceContainer = Depends(get_container)):
    try:
        lines: List[str] = parse_text_lines(req.ocr_payload) if req.ocr_payload is not None else list(req.lines or [])
        entities = parse_entities(req.entities_payload) if req.entities_payload is not None else []
    except UnrecognizedResponseShape as e:
        raise HTTPException(status_code=422, detail=str(e))

    if not lines and not entities:
        raise HTTPException(status_code=400, detail="Provide lines, ocr_payload or entities_payload.")

    review_id = "rev_" + uuid.uuid4().hex
    initial_state: Dict[str, Any] = {
        "review_id": review_id,
        "patient_id": req.patient_id,
        "patient_name": req.patient_name,
        "lines": lines,
        "entities": [e.model_dump() for e in entities],
        "audit": [],
    }

    config = thread_config(review_id)
    result = await c.graph.ainvoke(initial_state, config=config)
    snap = await c.graph.aget_state(config)
    logger.info("review %s: %d candidates", review_id, len(result.get("candidates") or []))

    return ReviewResponse(
        review_id=review_id,
        patient_name=result.get("patient_name"),
        candidates=[MedicationCandidate(**m) for m in result.get("candidates") or []],
        next_step=_pending_interrupt_type(snap),
    )

@router.post("/confirm", response_model=ConfirmResponse)
async def confirm(req: ConfirmRequest, c: ServiceContainer = Depends(get_container)):
    config = thread_config(req.review_id)
    snap = await c.graph.aget_state(config)
    if not snap.values:
        raise HTTPException(status_code=404, detail="review_id not found")

    itype = _pending_interrupt_type(snap)
    if itype != "NEEDS_CONFIRMATION":
        raise HTTPException(
            status_code=409,
            detail=f"Review not waiting for confirmation. interrupt_type={itype}",
        )

    resume_payload = {"medications": [m.model_dump() for m in req.medications]}
    final_state = await c.graph.ainvoke(Command(resume=resume_payload), config=config)

    return ConfirmResponse(
        review_id=req.review_id,
        outcomes=[ScheduleOutcome(**o) for o in final_state.get("outcomes") or []],
        next_step=final_state.get("next_step"),
    )

@router.get("/audit")
async def audit(review_id: str, c: ServiceContainer = Depends(get_container)):
    snap = await c.graph.aget_state(thread_config(review_id))
    if not snap.values:
        raise HTTPException(status_code=404, detail="review_id not found")
    return {"review_id": review_id, "audit": snap.values.get("audit", [])}
