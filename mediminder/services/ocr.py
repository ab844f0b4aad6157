"""
Parsing of document-analysis (OCR) and medical-entity payloads.

Both collaborators are external; this module only turns what they return
into typed values. Each parser accepts a small set of known shapes and raises
UnrecognizedResponseShape for anything else, so callers never have to inspect
optional fields themselves.

Accepted line payloads:
    ["line 1", "line 2"]
    {"Blocks": [{"BlockType": "LINE", "Text": "..."}, ...]}   (Textract)
    {"lines": ["...", ...]}
    {"text": "line 1\\nline 2"}

Accepted entity payloads:
    {"Entities": [{"Text", "Category", "Score", "Attributes": [{"Type", "Text"}]}]}
    [{"text", "category", "score", "attributes": [{"type", "text"}]}]
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

from mediminder.core.errors import DocumentAnalysisError, UnrecognizedResponseShape
from mediminder.schemas.models import EntityAttribute, MedicalEntity, PrescriptionDraft
from mediminder.services.extraction import extract_medications

logger = logging.getLogger(__name__)


class DocumentAnalyzer(Protocol):
    async def detect_text(self, image: bytes) -> Any: ...

    async def detect_entities(self, text: str) -> Any: ...


def _clean(lines) -> List[str]:
    return [str(ln).strip() for ln in lines if ln is not None and str(ln).strip()]


def parse_text_lines(payload: Any) -> List[str]:
    if isinstance(payload, list) and all(isinstance(x, str) for x in payload):
        return _clean(payload)

    if isinstance(payload, dict):
        if isinstance(payload.get("Blocks"), list):
            return _clean(
                b.get("Text") for b in payload["Blocks"]
                if isinstance(b, dict) and b.get("BlockType") == "LINE" and b.get("Text")
            )
        if isinstance(payload.get("lines"), list):
            return _clean(payload["lines"])
        if isinstance(payload.get("text"), str):
            return _clean(payload["text"].splitlines())

    raise UnrecognizedResponseShape(f"Unrecognized OCR payload: {str(payload)[:200]}")


def _entity_from_dict(raw: Dict[str, Any], caps: bool) -> MedicalEntity:
    def pick(d: Dict[str, Any], key: str):
        return d.get(key.capitalize()) if caps else d.get(key)

    score = pick(raw, "score")
    attrs: List[EntityAttribute] = []
    for a in pick(raw, "attributes") or []:
        if not isinstance(a, dict):
            continue
        a_score = pick(a, "score")
        attrs.append(EntityAttribute(
            type=str(pick(a, "type") or ""),
            text=str(pick(a, "text") or ""),
            score=a_score if isinstance(a_score, (int, float)) else None,
        ))
    return MedicalEntity(
        text=str(pick(raw, "text") or "").strip(),
        category=str(pick(raw, "category") or ""),
        score=score if isinstance(score, (int, float)) else None,
        attributes=attrs,
    )


def parse_entities(payload: Any) -> List[MedicalEntity]:
    if isinstance(payload, dict) and isinstance(payload.get("Entities"), list):
        return [_entity_from_dict(e, caps=True) for e in payload["Entities"] if isinstance(e, dict)]
    if isinstance(payload, list) and all(isinstance(e, dict) for e in payload):
        return [_entity_from_dict(e, caps=False) for e in payload]
    raise UnrecognizedResponseShape(f"Unrecognized entity payload: {str(payload)[:200]}")


async def analyze_prescription(
    analyzer: DocumentAnalyzer,
    image: bytes,
    metadata: Optional[Dict[str, Any]] = None,
) -> PrescriptionDraft:
    """
    Run OCR on a prescription image and build a reviewable draft.

    OCR failures are raised as DocumentAnalysisError. Entity extraction is
    optional: when it fails or is unavailable the line heuristics are used.
    """
    metadata = metadata or {}
    try:
        raw = await analyzer.detect_text(image)
    except Exception as e:
        raise DocumentAnalysisError(f"Document analysis failed: {e}") from e

    lines = parse_text_lines(raw)
    full_text = "\n".join(lines)

    entities: List[MedicalEntity] = []
    detect_entities = getattr(analyzer, "detect_entities", None)
    if full_text and detect_entities is not None:
        try:
            entities = parse_entities(await detect_entities(full_text))
        except Exception as e:
            logger.warning("entity extraction unavailable, using heuristics: %s", e)
            entities = []

    result = extract_medications(lines, entities, fallback_patient_name=metadata.get("patient_name"))
    return PrescriptionDraft(
        patient_name=result.patient_name,
        patient_id=metadata.get("patient_id"),
        medications=result.candidates,
        raw_text=full_text,
    )
