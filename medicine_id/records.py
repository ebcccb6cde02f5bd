"""Normalized medicine identification record."""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

UNKNOWN = "Unknown"
NOT_AVAILABLE = "N/A"


class Confidence:
    """Self-reported certainty of the vision model."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    ALL = (HIGH, MEDIUM, LOW)


@dataclass(frozen=True)
class MedicineRecord:
    """One identification result.

    Attribute names are snake_case; the wire format (proxy responses and the
    persisted history) uses the camelCase keys in ``WIRE_KEYS``.
    """

    medicine_name: Optional[str] = UNKNOWN
    generic_name: Optional[str] = UNKNOWN
    dosage: Optional[str] = NOT_AVAILABLE
    manufacturer: Optional[str] = NOT_AVAILABLE
    uses: Optional[str] = ""
    side_effects: Optional[str] = ""
    precautions: Optional[str] = ""
    confidence: Optional[str] = Confidence.LOW

    # Epoch milliseconds, stamped when the record enters history
    captured_at: Optional[int] = None

    @property
    def has_manufacturer(self) -> bool:
        return bool(self.manufacturer) and self.manufacturer != NOT_AVAILABLE

    def with_captured_at(self, captured_at: int) -> "MedicineRecord":
        return replace(self, captured_at=captured_at)

    def to_dict(self) -> Dict[str, Any]:
        data = {WIRE_KEYS[f.name]: getattr(self, f.name) for f in fields(self)}
        if self.captured_at is None:
            del data["capturedAt"]
        return data

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MedicineRecord":
        """Build a record from wire keys.

        Values are taken as-is; missing keys become ``None`` so a malformed
        payload is shown the way it arrived.
        """
        return cls(**{attr: payload.get(key) for attr, key in WIRE_KEYS.items()})


WIRE_KEYS = {
    "medicine_name": "medicineName",
    "generic_name": "genericName",
    "dosage": "dosage",
    "manufacturer": "manufacturer",
    "uses": "uses",
    "side_effects": "sideEffects",
    "precautions": "precautions",
    "confidence": "confidence",
    "captured_at": "capturedAt",
}
