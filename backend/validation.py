# Field validation and normalization for patient intake
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple

import hn as hn_scheme
from models import GENDERS, PatientRecord

ACCEPT = "accept"
ADVISORY = "advisory"
REJECT = "reject"

MIN_AGE = 1  # caller-supplied 0 means the intake form field was left blank
MIN_STORED_AGE = 0  # infants: age derived from a date of birth can be 0
MAX_AGE = 150
ADVISORY_AGE = 100
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
NICKNAME_MAX_LENGTH = 100
PHONE_MIN_DIGITS = 9
PHONE_MAX_DIGITS = 12
MOBILE_PREFIXES = ("06", "08", "09")

# Canonical honorific -> gender it implies
HONORIFICS: Dict[str, str] = {
    "นาย": "male",
    "นาง": "female",
    "นางสาว": "female",
    "Mr.": "male",
    "Mrs.": "female",
    "Ms.": "female",
    "Miss": "female",
}
_THAI_HONORIFICS = ("นางสาว", "นาย", "นาง")  # longest first: นางสาว starts with นาง
_LATIN_HONORIFICS = {"mr": "Mr.", "mrs": "Mrs.", "ms": "Ms.", "miss": "Miss"}
_LATIN_HONORIFIC_RE = re.compile(r"^(mrs|mr|ms|miss)(?:\.\s*|\s+|$)", re.IGNORECASE)

GENDER_ALIASES: Dict[str, str] = {
    "male": "male",
    "m": "male",
    "ชาย": "male",
    "female": "female",
    "f": "female",
    "หญิง": "female",
    "other": "other",
    "อื่นๆ": "other",
}

# Latin letters (incl. accented), Thai letters and vowel/tone marks, space, period
_NAME_RE = re.compile("[A-Za-z\u00C0-\u00D6\u00D8-\u00F6\u00F8-\u024F\u0E01-\u0E3A\u0E40-\u0E4E .]+")
_NON_DIGIT_RE = re.compile(r"\D")
_INT_RE = re.compile(r"[+-]?\d+")
_DATA_URL_RE = re.compile(r"^data:[^,]*?;base64,", re.IGNORECASE)


@dataclass(frozen=True)
class FieldOutcome:
    """Result of validating one field: accept, advisory (usable but flagged) or reject."""
    status: str
    value: Any = None
    code: Optional[str] = None
    message: str = ""

    @property
    def rejected(self) -> bool:
        return self.status == REJECT


def _accept(value: Any) -> FieldOutcome:
    return FieldOutcome(ACCEPT, value)


def _advise(value: Any, code: str, message: str) -> FieldOutcome:
    return FieldOutcome(ADVISORY, value, code, message)


def _reject(code: str, message: str) -> FieldOutcome:
    return FieldOutcome(REJECT, None, code, message)


@dataclass
class ValidationReport:
    """Normalized field set plus the per-field outcomes that produced it."""
    values: Dict[str, Any]
    outcomes: Dict[str, FieldOutcome] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not any(o.rejected for o in self.outcomes.values())

    def errors(self) -> Dict[str, Dict[str, str]]:
        return {
            name: {"code": o.code, "message": o.message}
            for name, o in self.outcomes.items()
            if o.status == REJECT
        }

    def advisories(self) -> Dict[str, Dict[str, str]]:
        return {
            name: {"code": o.code, "message": o.message}
            for name, o in self.outcomes.items()
            if o.status == ADVISORY
        }

    def to_record(self) -> PatientRecord:
        if not self.ok:
            raise ValueError("cannot build a record from a rejected field set")
        return PatientRecord.from_normalized(self.values)


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _collapse(text: str) -> str:
    return " ".join(text.split())


# ---------------------------------------------------------------------------
# Honorifics and names
# ---------------------------------------------------------------------------
def canonical_honorific(token: str) -> Optional[str]:
    """Map a title token ("mr", "Mr.", "นางสาว") to its canonical spelling, or None if unknown."""
    token = token.strip()
    if token in _THAI_HONORIFICS:
        return token
    return _LATIN_HONORIFICS.get(token.rstrip(".").lower())


def split_honorific(name: str) -> Tuple[Optional[str], str]:
    """Split a leading honorific off a full name. Returns (canonical honorific or None, rest)."""
    for token in _THAI_HONORIFICS:
        if name.startswith(token):
            return token, name[len(token):].strip()
    match = _LATIN_HONORIFIC_RE.match(name)
    if match:
        return _LATIN_HONORIFICS[match.group(1).lower()], name[match.end():].strip()
    return None, name


def compose_name(honorific: Optional[str], name: str) -> str:
    """Thai honorifics attach directly to the name, Latin ones are space separated."""
    if not honorific:
        return name
    if honorific in _THAI_HONORIFICS:
        return f"{honorific}{name}"
    return f"{honorific} {name}"


def gender_for_honorific(honorific: Optional[str]) -> Optional[str]:
    return HONORIFICS.get(honorific) if honorific else None


def _normalize_name(fields: Mapping[str, Any]) -> Tuple[Optional[str], Dict[str, FieldOutcome]]:
    """Returns (effective honorific, outcomes for fullName/titlePrefix)."""
    outcomes: Dict[str, FieldOutcome] = {}

    explicit_given = "titlePrefix" in fields
    explicit: Optional[str] = None
    if explicit_given and not _is_blank(fields["titlePrefix"]):
        raw_prefix = fields["titlePrefix"]
        explicit = canonical_honorific(raw_prefix) if isinstance(raw_prefix, str) else None
        if explicit is None:
            outcomes["titlePrefix"] = _reject("unknown_honorific", f"Unknown title prefix {raw_prefix!r}")

    raw_name = fields.get("fullName")
    if _is_blank(raw_name):
        outcomes["fullName"] = _reject("required", "Full name is required")
        return explicit, outcomes
    if not isinstance(raw_name, str):
        outcomes["fullName"] = _reject("invalid_type", "Full name must be text")
        return explicit, outcomes

    detected, rest = split_honorific(_collapse(raw_name))
    # An explicit titlePrefix (even an empty one) replaces whatever the name carried
    honorific = explicit if explicit_given else detected

    if not rest:
        outcomes["fullName"] = _reject("required", "Full name is required")
    elif not _NAME_RE.fullmatch(rest):
        outcomes["fullName"] = _reject(
            "invalid_characters", "Full name may only contain Thai or Latin letters, spaces and periods"
        )
    else:
        full = compose_name(honorific, rest)
        if len(full) < NAME_MIN_LENGTH:
            outcomes["fullName"] = _reject("too_short", f"Full name must be at least {NAME_MIN_LENGTH} characters")
        elif len(full) > NAME_MAX_LENGTH:
            outcomes["fullName"] = _reject("too_long", f"Full name must be at most {NAME_MAX_LENGTH} characters")
        else:
            outcomes["fullName"] = _accept(full)
    return honorific, outcomes


def _normalize_gender(raw: Any, honorific: Optional[str]) -> FieldOutcome:
    supplied: Optional[str] = None
    if isinstance(raw, str):
        supplied = GENDER_ALIASES.get(raw.strip().lower())

    implied = gender_for_honorific(honorific)
    if implied:
        if not _is_blank(raw) and supplied != implied:
            return _advise(implied, "overridden_by_honorific", f"Gender set to {implied} by title prefix {honorific}")
        return _accept(implied)

    if _is_blank(raw):
        return _reject("required", "Gender is required when no title prefix implies it")
    if supplied is None:
        return _reject("invalid_choice", f"Gender must be one of {', '.join(GENDERS)}")
    return _accept(supplied)


# ---------------------------------------------------------------------------
# Phone
# ---------------------------------------------------------------------------
def format_phone(digits: str) -> str:
    """Group phone digits for display: 0812345678 -> 081-234-5678, 021234567 -> 021-234-567."""
    if len(digits) in (9, 10):
        return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"
    # Country code followed by a 9-digit national number
    cc, national = digits[:-9], digits[-9:]
    return f"{cc}-{format_phone(national)}"


def normalize_phone(raw: Any) -> Optional[FieldOutcome]:
    if _is_blank(raw):
        return None
    if not isinstance(raw, (str, int)) or isinstance(raw, bool):
        return _reject("invalid_type", "Phone must be text")
    digits = _NON_DIGIT_RE.sub("", str(raw))
    if len(digits) < PHONE_MIN_DIGITS or len(digits) > PHONE_MAX_DIGITS:
        return _reject(
            "invalid_length", f"Phone must have between {PHONE_MIN_DIGITS} and {PHONE_MAX_DIGITS} digits"
        )
    if len(digits) == 10 and not digits.startswith(MOBILE_PREFIXES):
        return _reject("invalid_prefix", "10-digit phone numbers must start with 06, 08 or 09")
    if len(digits) == 9 and not digits.startswith("0"):
        return _reject("invalid_prefix", "9-digit phone numbers must start with 0")
    return _accept(format_phone(digits))


# ---------------------------------------------------------------------------
# Age and date of birth
# ---------------------------------------------------------------------------
def age_on(birth: date, today: date) -> int:
    """Whole elapsed years between birth and today."""
    years = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        years -= 1
    return years


def normalize_age(raw: Any) -> Optional[FieldOutcome]:
    if _is_blank(raw):
        return None
    if isinstance(raw, bool):
        return _reject("invalid_type", "Age must be a whole number")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float) and raw.is_integer():
        value = int(raw)
    elif isinstance(raw, str) and _INT_RE.fullmatch(raw.strip()):
        value = int(raw.strip())
    else:
        return _reject("invalid_type", "Age must be a whole number")

    if value < MIN_AGE or value > MAX_AGE:
        return _reject("out_of_range", f"Age must be between {MIN_AGE} and {MAX_AGE}")
    if value > ADVISORY_AGE:
        return _advise(value, "unusually_high", f"Age {value} is unusually high, please double check")
    return _accept(value)


def normalize_date_of_birth(raw: Any, today: date) -> Optional[FieldOutcome]:
    if _is_blank(raw):
        return None
    if isinstance(raw, datetime):
        birth = raw.date()
    elif isinstance(raw, date):
        birth = raw
    elif isinstance(raw, str):
        try:
            birth = date.fromisoformat(raw.strip())
        except ValueError:
            return _reject("invalid_date", "Date of birth must be a YYYY-MM-DD date")
    else:
        return _reject("invalid_date", "Date of birth must be a YYYY-MM-DD date")

    if birth > today:
        return _reject("future_date", "Date of birth cannot be in the future")
    if age_on(birth, today) > MAX_AGE:
        return _reject("out_of_range", f"Date of birth implies an age over {MAX_AGE}")
    return _accept(birth)


# ---------------------------------------------------------------------------
# Misc optional fields
# ---------------------------------------------------------------------------
def _normalize_nickname(raw: Any) -> Optional[FieldOutcome]:
    if _is_blank(raw):
        return None
    if not isinstance(raw, str):
        return _reject("invalid_type", "Nickname must be text")
    nickname = _collapse(raw)
    if len(nickname) > NICKNAME_MAX_LENGTH:
        return _reject("too_long", f"Nickname must be at most {NICKNAME_MAX_LENGTH} characters")
    return _accept(nickname)


def photo_size(encoded: str) -> int:
    """Decoded byte size of a base64 payload (optionally a data: URL)."""
    payload = _DATA_URL_RE.sub("", encoded.strip())
    payload = "".join(payload.split())
    padding = len(payload) - len(payload.rstrip("="))
    return max(0, len(payload) * 3 // 4 - padding)


def _normalize_photo(raw: Any, max_bytes: Optional[int]) -> Optional[FieldOutcome]:
    if _is_blank(raw):
        return None
    if not isinstance(raw, str):
        return _reject("invalid_type", "Photo must be an encoded string")
    if max_bytes is not None and photo_size(raw) > max_bytes:
        return _reject("too_large", f"Photo must be at most {max_bytes} bytes")
    return _accept(raw)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
def normalize_patient(
    fields: Mapping[str, Any],
    *,
    today: Optional[date] = None,
    require_hn: bool = False,
    age_mismatch_policy: str = "warn",
    age_tolerance_years: int = 0,
    max_photo_bytes: Optional[int] = None,
) -> ValidationReport:
    """
    Normalize a full raw field set into a patient field set.

    Pure: the same fields and `today` always give the same report, so it can be
    re-run on every form change. Every rejected field is reported, not just the first.

    Cross-field rules:
    - a title prefix forces gender (นาย/Mr. -> male, นาง/นางสาว/Mrs./Ms./Miss -> female)
    - with only a date of birth, age is derived from it
    - with only an age, the date of birth is derived as January 1st of (this year - age)
    - with both, a derived age further than `age_tolerance_years` from the supplied age
      is an advisory ("warn") or a rejection ("reject")
    """
    today = today or date.today()
    outcomes: Dict[str, FieldOutcome] = {}

    raw_hn = fields.get("hn")
    if _is_blank(raw_hn):
        if require_hn:
            outcomes["hn"] = _reject("required", "Hospital number is required")
    else:
        parsed = hn_scheme.parse(raw_hn)
        if isinstance(parsed, hn_scheme.InvalidFormat):
            outcomes["hn"] = _reject(parsed.reason, parsed.message)
        else:
            outcomes["hn"] = _accept(parsed)

    honorific, name_outcomes = _normalize_name(fields)
    outcomes.update(name_outcomes)
    outcomes["gender"] = _normalize_gender(fields.get("gender"), honorific)

    optional = {
        "nickname": _normalize_nickname(fields.get("nickname")),
        "phone": normalize_phone(fields.get("phone")),
        "photo": _normalize_photo(fields.get("photo"), max_photo_bytes),
    }
    outcomes.update({name: o for name, o in optional.items() if o is not None})

    age = normalize_age(fields.get("age"))
    birth = normalize_date_of_birth(fields.get("dateOfBirth"), today)
    if birth is not None:
        outcomes["dateOfBirth"] = birth

    if birth is not None and not birth.rejected:
        derived = age_on(birth.value, today)
        if age is None:
            # Derived age may be 0 for infants
            age = _accept(derived)
        elif not age.rejected and abs(derived - age.value) > age_tolerance_years:
            message = f"Date of birth implies age {derived} but age {age.value} was given"
            if age_mismatch_policy == "reject":
                outcomes["dateOfBirth"] = _reject("age_mismatch", message)
            else:
                outcomes["dateOfBirth"] = _advise(birth.value, "age_mismatch", message)
    elif birth is None and age is not None and not age.rejected:
        # Suggested birth date: January 1st of the implied year
        outcomes["dateOfBirth"] = _accept(date(today.year - age.value, 1, 1))
    if age is not None:
        outcomes["age"] = age
    elif birth is None:
        outcomes["age"] = _reject("required", "Age or date of birth is required")

    values: Dict[str, Any] = {
        name: None for name in ("hn", "fullName", "gender", "age", "nickname", "phone", "dateOfBirth", "photo")
    }
    for name, outcome in outcomes.items():
        if name in values and not outcome.rejected:
            values[name] = outcome.value
    return ValidationReport(values, outcomes)
