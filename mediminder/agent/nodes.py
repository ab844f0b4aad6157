# mediminder/agent/nodes.py
import logging
from typing import Any, Dict, List

from langgraph.types import interrupt
from pydantic import ValidationError

from mediminder.agent.state import ReviewState
from mediminder.core.errors import MediMinderError
from mediminder.schemas.models import ConfirmedMedication, MedicalEntity, ScheduleOutcome
from mediminder.services.extraction import extract_medications
from mediminder.services.reminders import ReminderOrchestrator

logger = logging.getLogger(__name__)

def _audit(state: ReviewState, event: str, extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    audit = list(state.get("audit") or [])
    audit.append({"event": event, **(extra or {})})
    return {"audit": audit}

async def extract_node(state: ReviewState) -> Dict[str, Any]:
    if state.get("candidates"):
        return _audit(state, "extract.skip", {"reason": "candidates already provided"})

    entities = [MedicalEntity(**e) for e in (state.get("entities") or [])]
    result = extract_medications(
        state.get("lines") or [],
        entities=entities or None,
        fallback_patient_name=state.get("patient_name"),
    )
    return {
        "candidates": [c.model_dump() for c in result.candidates],
        "patient_name": result.patient_name,
        **_audit(state, "extract.done", {
            "count": len(result.candidates),
            "source": "entities" if entities else "lines",
        }),
    }

async def review_node(state: ReviewState) -> Dict[str, Any]:
    """
    Pause until someone confirms the medications.
    Resume payload expected: {"medications": [{"name", "pattern", "days"}]}.
    """
    payload = {
        "type": "NEEDS_CONFIRMATION",
        "review_id": state["review_id"],
        "patient_name": state.get("patient_name"),
        "candidates": state.get("candidates", []),
    }

    resume = interrupt(payload)

    meds = resume.get("medications") if isinstance(resume, dict) else None
    confirmed = list(meds or [])
    return {"confirmed": confirmed, **_audit(state, "review.resumed", {"confirmed": len(confirmed)})}

def make_schedule_node(orchestrator: ReminderOrchestrator):
    async def schedule_node(state: ReviewState) -> Dict[str, Any]:
        outcomes: List[Dict[str, Any]] = []
        for raw in state.get("confirmed") or []:
            name = str((raw or {}).get("name") or "")
            try:
                item = ConfirmedMedication(**raw)
                result = await orchestrator.add_medication_with_pattern(item.name, item.pattern, item.days)
                outcome = ScheduleOutcome(
                    name=item.name,
                    ok=True,
                    med_id=result.medication.med_id,
                    dose_count=len(result.doses),
                    scheduled=result.scheduled,
                )
            except (ValidationError, ValueError, TypeError, MediMinderError) as e:
                # one bad item must not stop the others
                logger.warning("scheduling %r failed: %s", name, e)
                outcome = ScheduleOutcome(name=name, ok=False, error=str(e))
            outcomes.append(outcome.model_dump())

        ok = sum(1 for o in outcomes if o["ok"])
        return {
            "outcomes": outcomes,
            "next_step": "DONE",
            **_audit(state, "schedule.done", {"ok": ok, "failed": len(outcomes) - ok}),
        }

    return schedule_node
