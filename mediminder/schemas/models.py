from datetime import date
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field

from mediminder.core.config import DEFAULT_DAYS

DoseSlot = Literal["morning", "afternoon", "evening", "night", "custom"]
FixedSlot = Literal["morning", "afternoon", "evening", "night"]
DoseStatus = Literal["scheduled", "taken", "missed"]
LoggedStatus = Literal["taken", "missed"]

TERMINAL_STATUSES = ("taken", "missed")
CUSTOM_PATTERN = "custom"

SAFETY_NOTE = (
    "Not medical advice. This service organizes user-provided medicines. "
    "Always confirm instructions with a doctor/pharmacist."
)

NextStep = Literal["NEEDS_CONFIRMATION", "DONE"]

class Medication(BaseModel):
    med_id: str
    name: str
    pattern: str = Field(..., description='Slot-count code like "1-0-1", or "custom"')

class Dose(BaseModel):
    dose_id: str
    med_id: str
    when_iso: str  # ISO8601 with offset
    slot: DoseSlot
    status: DoseStatus = "scheduled"
    logged_at: Optional[str] = None

# --- extraction ---

class EntityAttribute(BaseModel):
    type: str = ""
    text: str = ""
    score: Optional[float] = None

class MedicalEntity(BaseModel):
    text: str
    category: str = ""
    score: Optional[float] = None
    attributes: List[EntityAttribute] = Field(default_factory=list)

class MedicationCandidate(BaseModel):
    name: str
    dose: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)
    source_line: str = ""
    attributes: Optional[List[EntityAttribute]] = None
    suggested_pattern: Optional[str] = None

class ExtractionResult(BaseModel):
    candidates: List[MedicationCandidate] = Field(default_factory=list)
    patient_name: Optional[str] = None

class PrescriptionDraft(BaseModel):
    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    medications: List[MedicationCandidate] = Field(default_factory=list)
    raw_text: str = ""

# --- orchestration ---

class ReminderResult(BaseModel):
    medication: Medication
    doses: List[Dose]
    scheduled: int = 0
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.skipped == 0

class PatternAddRequest(BaseModel):
    name: str
    pattern: str
    days: int = Field(default=DEFAULT_DAYS, ge=1, le=90)

class ExplicitAddRequest(BaseModel):
    name: str
    dates: List[date]
    times: List[str]  # "HH:MM"

class MarkDoseRequest(BaseModel):
    dose_id: str
    status: LoggedStatus

class AdherenceSummary(BaseModel):
    days: int
    total: int
    taken: int
    missed: int
    scheduled: int
    adherence_rate: float

# --- prescription review ---

class ReviewRequest(BaseModel):
    lines: Optional[List[str]] = None
    ocr_payload: Optional[Any] = None       # raw document-analysis response
    entities_payload: Optional[Any] = None  # raw entity-service response
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None

class ReviewResponse(BaseModel):
    review_id: str
    patient_name: Optional[str] = None
    candidates: List[MedicationCandidate]
    next_step: Optional[NextStep] = None
    safety_note: str = SAFETY_NOTE

class ConfirmedMedication(BaseModel):
    name: str
    pattern: str
    days: int = Field(default=DEFAULT_DAYS, ge=1, le=90)

class ConfirmRequest(BaseModel):
    review_id: str
    medications: List[ConfirmedMedication] = Field(default_factory=list)

class ScheduleOutcome(BaseModel):
    name: str
    ok: bool
    med_id: Optional[str] = None
    dose_count: int = 0
    scheduled: int = 0
    error: Optional[str] = None

class ConfirmResponse(BaseModel):
    review_id: str
    outcomes: List[ScheduleOutcome]
    next_step: Optional[NextStep] = None

# --- chat ---

class ChatRequest(BaseModel):
    question: str

class ChatResponse(BaseModel):
    answer: str
    safety_note: str = SAFETY_NOTE
