# backend/parkspace/consistency.py
"""
Read-only diagnostics for a property's stored layout.

Works on raw documents as well as ``Property`` models, because historical
records use several field spellings (``id``/``slotId``/``_id``,
``type``/``vehicleType``) and sometimes store slots as a list. Nothing
here raises on bad data or repairs it; problems come back as issue strings.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from .schemas import ValidationResult

logger = logging.getLogger(__name__)

ID_FIELDS = ("id", "slotId", "_id")
TYPE_FIELDS = ("type", "vehicleType")


def _as_document(prop) -> Dict[str, Any]:
    if isinstance(prop, BaseModel):
        return prop.model_dump(mode="json", by_alias=True)
    return prop if isinstance(prop, dict) else {}


def _first(record: dict, names) -> Any:
    for name in names:
        value = record.get(name)
        if value not in (None, ""):
            return value
    return None


def _slot_entries(slots) -> List[Tuple[Optional[str], dict]]:
    """(map key or None, slot dict) pairs for dict- or list-shaped slot collections."""
    if isinstance(slots, dict):
        return [(str(k), v if isinstance(v, dict) else {}) for k, v in slots.items()]
    if isinstance(slots, list):
        return [(None, v if isinstance(v, dict) else {}) for v in slots]
    return []


def _is_position_id(value) -> bool:
    return isinstance(value, str) and "-" in value


def _is_complete(key: Optional[str], slot: dict) -> bool:
    slot_id = _first(slot, ID_FIELDS)
    has_id = slot_id is not None or _is_position_id(key)
    has_type = _first(slot, TYPE_FIELDS) is not None
    has_position = (
        (slot.get("x") is not None and slot.get("y") is not None)
        or bool(slot.get("position"))
        or bool(slot.get("coordinates"))
        or _is_position_id(slot_id)
        or _is_position_id(key)
    )
    return has_id and has_type and has_position


def _text(value) -> Optional[str]:
    return None if value is None else str(value)


def _slot_count(slots) -> int:
    return len(slots) if isinstance(slots, (dict, list)) else 0


def _declared(doc: dict, name: str) -> int:
    try:
        return int(doc.get(name) or 0)
    except (TypeError, ValueError):
        return 0


def validate(prop, step: str = "unknown") -> ValidationResult:
    doc = _as_document(prop)
    issues: List[str] = []
    layout = doc.get("layoutData")

    if not layout or not isinstance(layout, dict):
        issues.append("No layout data found")
    else:
        slots = layout.get("slots")
        if not slots:
            issues.append("Layout data missing slots information")
        else:
            incomplete = sum(1 for key, slot in _slot_entries(slots) if not _is_complete(key, slot))
            if incomplete:
                issues.append(f"{incomplete} slots have incomplete data (missing id, type, or coordinates)")

        if not layout.get("templateName") and not layout.get("name"):
            issues.append("Layout data missing template name")

        layout_count = _slot_count(slots)
        declared = _declared(doc, "carSlots") + _declared(doc, "bikeSlots")
        if layout_count != declared:
            issues.append(
                f"Slot count mismatch: Layout has {layout_count} slots, property declares {declared} slots"
            )

    result = ValidationResult(
        isValid=not issues,
        issues=issues,
        step=step,
        propertyId=_text(_first(doc, ID_FIELDS)),
        propertyName=_text(doc.get("name")),
        summary=f"{len(issues)} layout issues found at {step}",
    )
    if issues:
        logger.warning("Layout inconsistency for %s at %s: %s", result.propertyId, step, issues)
    return result


def analyze(prop) -> dict:
    """Debug report: slot-type distribution, count mismatches and a 0-100 score."""
    doc = _as_document(prop)
    layout = doc.get("layoutData") if isinstance(doc.get("layoutData"), dict) else None
    analysis: Dict[str, Any] = {
        "propertyId": _text(_first(doc, ID_FIELDS)),
        "propertyName": _text(doc.get("name")),
        "approved": bool(doc.get("approved")),
        "hasLayoutData": layout is not None,
        "layoutDataSize": len(json.dumps(layout, default=str)) if layout is not None else 0,
        "layoutAnalysis": {},
    }

    if layout is None:
        issues = ["No layout data available"]
        analysis["layoutAnalysis"] = {"consistencyIssues": issues}
    else:
        entries = _slot_entries(layout.get("slots"))
        types = [_text(_first(slot, TYPE_FIELDS)) for _, slot in entries]
        dims = layout.get("dimensions") if isinstance(layout.get("dimensions"), dict) else {}
        issues = []

        declared_car = _declared(doc, "carSlots")
        declared_bike = _declared(doc, "bikeSlots")
        if declared_car + declared_bike != len(entries):
            issues.append(
                f"Slot count mismatch: Property declares {declared_car + declared_bike} slots, "
                f"layout has {len(entries)} slots"
            )
        car_count = types.count("car")
        bike_count = types.count("bike")
        if car_count != declared_car:
            issues.append(
                f"Car slot mismatch: Property declares {declared_car} car slots, layout has {car_count} car slots"
            )
        if bike_count != declared_bike:
            issues.append(
                f"Bike slot mismatch: Property declares {declared_bike} bike slots, layout has {bike_count} bike slots"
            )

        analysis["layoutAnalysis"] = {
            "hasSlots": bool(entries),
            "slotsCount": len(entries),
            "templateName": layout.get("templateName") or "Not specified",
            "gridDimensions": f"{dims['rows']}x{dims['cols']}" if dims.get("rows") is not None
            and dims.get("cols") is not None else "Not specified",
            "slotTypes": sorted({t for t in types if t is not None}),
            "incompleteSlots": sum(1 for key, slot in entries if not _is_complete(key, slot)),
            "consistencyIssues": issues,
        }

    analysis["consistencyScore"] = max(0, 100 - 25 * len(issues))
    analysis["isConsistent"] = not issues
    analysis["recommendation"] = (
        "Layout data is consistent and ready for user booking"
        if not issues
        else "Layout data has consistency issues that may affect user experience"
    )
    return analysis
