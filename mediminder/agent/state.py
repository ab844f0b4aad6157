from typing import Any, Dict, List, Optional, TypedDict

class ReviewState(TypedDict, total=False):
    # identity (review_id doubles as LangGraph thread_id)
    review_id: str
    patient_id: Optional[str]
    patient_name: Optional[str]

    # inputs
    lines: List[str]
    entities: List[Dict[str, Any]]     # MedicalEntity dicts

    # outputs
    candidates: List[Dict[str, Any]]   # MedicationCandidate dicts
    confirmed: List[Dict[str, Any]]    # resume payload: [{name, pattern, days}]
    outcomes: List[Dict[str, Any]]     # ScheduleOutcome dicts
    next_step: Optional[str]
    audit: List[Dict[str, Any]]
