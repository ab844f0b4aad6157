import logging
import re
from typing import Iterable, List, Optional, Sequence

from mediminder.schemas.models import (
    EntityAttribute,
    ExtractionResult,
    MedicalEntity,
    MedicationCandidate,
)

logger = logging.getLogger(__name__)

PRIMARY_CONFIDENCE = 0.65
SIMPLE_CONFIDENCE = 0.5
KEYWORD_CONFIDENCE = 0.33
DEFAULT_ENTITY_CONFIDENCE = 0.7

# Header lines on a prescription that are never medications.
_ADMIN_RE = re.compile(
    r"^\s*(dr\.|dr\s|doctor|rx:|rx\s|prescription|signature|sig:|date:|dob:|age:|address|phone|tel:)",
    re.IGNORECASE,
)

_UNITS = r"(?:mcg|μg|mg|mls|ml|g|iu|units|tablets?|tabs?|capsules?|caps?)"
_NARROW_UNITS = r"(?:mcg|mg|ml|g|iu|tablets?|tabs?|capsules?|caps?)"

# "<name>[,] <number><unit> <rest>"
_PRIMARY_RE = re.compile(
    r"^\s*([A-Za-z0-9\-.\s/()]+?)\s*,?\s*"
    r"(\d+(?:\.\d+)?\s*" + _UNITS + r"(?![A-Za-z])(?:\s*/\s*\d+)?)"
    r"(.*)$",
    re.IGNORECASE,
)

# "<name> <number>[<unit>]"
_SIMPLE_RE = re.compile(
    r"^\s*([A-Za-z][A-Za-z0-9\-\s/()]+?)\s+(\d+(?:\.\d+)?\s*" + _NARROW_UNITS + r"?)(?![A-Za-z])",
    re.IGNORECASE,
)

_MED_HINT_RE = re.compile(
    r"(?<![A-Za-z])(tablets?|tabs?|capsules?|mg|mcg|once daily|twice daily|bd|od|tds|qd|morning|night|prn|syrup|drops)(?![A-Za-z])",
    re.IGNORECASE,
)

_DOSE_ATTR_RE = re.compile(r"DOSAGE|STRENGTH", re.IGNORECASE)
_FREQ_ATTR_RE = re.compile(r"FREQUENCY", re.IGNORECASE)

_PATIENT_LABEL_RE = re.compile(r"(?:Patient Name|Patient|Name|Pt)\s*[:\-]\s*(.+)", re.IGNORECASE)
_HUMAN_NAME_RE = re.compile(r"^[A-Za-z.\- ]+$")
_HAS_LETTER_RE = re.compile(r"[A-Za-z]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

# explicit slot code, e.g. "1-0-1" or "1-1-1-1"
_PATTERN_CODE_RE = re.compile(r"(?<![\d-])(\d)\s*-\s*(\d)\s*-\s*(\d)(?:\s*-\s*(\d))?(?![\d-])")
_PRN_RE = re.compile(r"\b(prn|as needed|sos)\b", re.IGNORECASE)
FREQ_PATTERNS = [
    (re.compile(r"\b(qid|qds|four times|4x)\b", re.IGNORECASE), "1-1-1-1"),
    (re.compile(r"\b(tid|tds|thrice|three times|3x)\b", re.IGNORECASE), "1-1-1"),
    (re.compile(r"\b(bid|bd|twice|two times|2x)\b", re.IGNORECASE), "1-0-1"),
    (re.compile(r"\b(hs|at night|bedtime)\b", re.IGNORECASE), "0-0-1"),
    (re.compile(r"\b(od|qd|once|daily|1x)\b", re.IGNORECASE), "1-0-0"),
]


def normalize_name_key(name: str) -> str:
    return _NON_ALNUM_RE.sub(" ", (name or "").lower()).strip()


def is_admin_line(line: str) -> bool:
    return bool(_ADMIN_RE.match(line or ""))


def suggest_pattern(text: str) -> Optional[str]:
    """
    Best-effort slot pattern from prescription wording.
    Explicit codes ("1-0-1") win over frequency words; PRN gives None.
    """
    if not text:
        return None
    m = _PATTERN_CODE_RE.search(text)
    if m:
        return "-".join(g for g in m.groups() if g is not None)
    if _PRN_RE.search(text):
        return None
    for rx, pattern in FREQ_PATTERNS:
        if rx.search(text):
            return pattern
    return None


def classify_line(line: str) -> Optional[MedicationCandidate]:
    """Heuristic tiers: name + dose with unit, name + number, keyword only."""
    if not line or len(line.strip()) < 2:
        return None
    if is_admin_line(line):
        return None

    m = _PRIMARY_RE.match(line)
    if m and _HAS_LETTER_RE.search(m.group(1)):
        return MedicationCandidate(
            name=m.group(1).strip(),
            dose=(m.group(2) or "").strip(),
            confidence=PRIMARY_CONFIDENCE,
            source_line=line,
        )

    m = _SIMPLE_RE.match(line)
    if m:
        return MedicationCandidate(
            name=m.group(1).strip(),
            dose=(m.group(2) or "").strip(),
            confidence=SIMPLE_CONFIDENCE,
            source_line=line,
        )

    if _MED_HINT_RE.search(line):
        return MedicationCandidate(
            name=line.strip(),
            dose="",
            confidence=KEYWORD_CONFIDENCE,
            source_line=line,
        )
    return None


def dedupe_candidates(candidates: Iterable[MedicationCandidate]) -> List[MedicationCandidate]:
    seen = set()
    out: List[MedicationCandidate] = []
    for c in candidates:
        key = normalize_name_key(c.name)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(c)
    return out


def parse_medications_from_lines(lines: Sequence[str]) -> List[MedicationCandidate]:
    found = []
    for ln in lines or []:
        cand = classify_line(ln)
        if cand is not None:
            found.append(cand)
    return dedupe_candidates(found)


def candidates_from_entities(entities: Sequence[MedicalEntity]) -> List[MedicationCandidate]:
    out: List[MedicationCandidate] = []
    for e in entities or []:
        if (e.category or "").upper() != "MEDICATION":
            continue
        attrs: List[EntityAttribute] = list(e.attributes or [])
        dose = next((a.text for a in attrs if _DOSE_ATTR_RE.search(a.type or "")), "") or ""
        score = e.score if isinstance(e.score, (int, float)) else DEFAULT_ENTITY_CONFIDENCE
        out.append(MedicationCandidate(
            name=e.text,
            dose=dose.strip(),
            confidence=min(1.0, max(0.0, float(score))),
            source_line=e.text,
            attributes=attrs,
        ))
    return out


def find_patient_name(lines: Sequence[str]) -> Optional[str]:
    """
    Explicit "Patient:/Name:/Pt -" label first, then the first line that
    looks like a human name (2-4 words, letters only, no digits).
    """
    for ln in lines or []:
        m = _PATIENT_LABEL_RE.search(ln or "")
        if m and m.group(1).strip():
            return m.group(1).strip()

    for ln in lines or []:
        if not ln:
            continue
        words = ln.split()
        if 2 <= len(words) <= 4 and _HUMAN_NAME_RE.match(ln) and len(ln) < 60:
            if not any(ch.isdigit() for ch in ln):
                return ln.strip()
    return None


def _pattern_hint(c: MedicationCandidate) -> Optional[str]:
    freq_text = " ".join(a.text for a in (c.attributes or []) if _FREQ_ATTR_RE.search(a.type or ""))
    return suggest_pattern(freq_text) or suggest_pattern(c.source_line)


def extract_medications(
    lines: Sequence[str],
    entities: Optional[Sequence[MedicalEntity]] = None,
    fallback_patient_name: Optional[str] = None,
) -> ExtractionResult:
    """
    Turn OCR lines (and optional medical entities) into medication candidates.

    Entities take precedence; the line heuristics run when no entity is
    categorized as a medication. Ambiguity is never an error: callers get an
    empty list and/or a None patient name.
    """
    lines = [ln for ln in (lines or []) if ln is not None]

    candidates: List[MedicationCandidate] = []
    if entities:
        candidates = dedupe_candidates(candidates_from_entities(entities))
        logger.debug("entity extraction produced %d candidates", len(candidates))

    if not candidates:
        candidates = parse_medications_from_lines(lines)
        logger.debug("heuristic extraction produced %d candidates", len(candidates))

    for c in candidates:
        c.suggested_pattern = _pattern_hint(c)

    patient_name = find_patient_name(lines) or fallback_patient_name or None
    return ExtractionResult(candidates=candidates, patient_name=patient_name)
