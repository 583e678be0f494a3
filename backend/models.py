# Patient record model and wire serialization
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from typing import Any, Dict, Optional

GENDERS = ("male", "female", "other")

# Fields the store owns; never accepted from callers
STORE_FIELDS = ("createdAt", "updatedAt")
# Fields replaced wholesale by an update
MUTABLE_FIELDS = ("fullName", "gender", "nickname", "phone", "age", "dateOfBirth", "photo")


@dataclass
class PatientRecord:
    """One patient's demographic data, keyed by hospital number."""
    hn: Optional[str]  # HNXXXXXX; None only before the store allocates one
    fullName: str
    gender: str  # one of GENDERS
    age: int
    nickname: Optional[str] = None
    phone: Optional[str] = None  # display form, e.g. 081-234-5678
    dateOfBirth: Optional[date] = None
    photo: Optional[str] = None  # inline encoded image
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    def copy(self, **changes: Any) -> "PatientRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: camelCase keys, unset optionals omitted, dates as ISO strings."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[f.name] = value
        return out

    @classmethod
    def from_normalized(cls, values: Dict[str, Any]) -> "PatientRecord":
        """Build a record from a validation engine field set, ignoring keys the record does not carry."""
        known = {f.name for f in fields(cls)} - set(STORE_FIELDS)
        return cls(**{k: v for k, v in values.items() if k in known})
