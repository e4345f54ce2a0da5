import re
from datetime import datetime, timezone
from buyer_leads_app.config.choices import (
    CITIES,
    PROPERTY_TYPES,
    BHK_OPTIONS,
    PURPOSES,
    TIMELINES,
    SOURCES,
    STATUSES,
    DEFAULT_STATUS,
    BHK_REQUIRED_FOR,
    SORT_FIELDS,
    SORT_ORDERS,
    DEFAULT_PAGE,
    DEFAULT_LIMIT,
    MAX_LIMIT,
)
from buyer_leads_app.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\d{10,15}$")
_DIGITS_RE = re.compile(r"^\d+$")

BUYER_FIELDS = [
    "fullName",
    "email",
    "phone",
    "city",
    "propertyType",
    "bhk",
    "purpose",
    "budgetMin",
    "budgetMax",
    "timeline",
    "source",
    "status",
    "notes",
    "tags",
]


class ValidationResult:
    def __init__(self, data=None, errors=None):
        self.data = data or {}
        self.errors = errors or []

    @property
    def ok(self):
        return not self.errors

    def first_message(self):
        return self.errors[0]["message"] if self.errors else None


def is_valid_email(v):
    if not v:
        return False
    return _EMAIL_RE.match(v) is not None


def is_valid_phone(v):
    if not v:
        return False
    return _PHONE_RE.match(v) is not None


def _blank(v):
    return v is None or (isinstance(v, str) and not v.strip())


def _to_naive_utc(dt):
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# Field rules: value -> (normalized, error message or None)

def _full_name(v):
    if not isinstance(v, str) or not v.strip():
        return None, "Full name is required"
    v = v.strip()
    if len(v) < 2:
        return None, "Full name must be at least 2 characters"
    if len(v) > 80:
        return None, "Full name must be less than 80 characters"
    return v, None


def _csv_full_name(v):
    if not isinstance(v, str) or not v.strip():
        return None, "Full name is required"
    return v.strip(), None


def _email(v):
    if _blank(v):
        return None, None
    if not isinstance(v, str) or not is_valid_email(v.strip()):
        return None, "Invalid email address"
    return v.strip(), None


def _phone(v):
    if not isinstance(v, str) or not is_valid_phone(v.strip()):
        return None, "Phone must be 10-15 digits"
    return v.strip(), None


def _choice(options, label, required=True, default=None):
    def rule(v):
        if _blank(v):
            if required:
                return None, "%s is required" % label
            return default, None
        if not isinstance(v, str) or v.strip() not in options:
            return None, "Invalid %s. Expected one of: %s" % (label.lower(), ", ".join(options))
        return v.strip(), None
    return rule


def _budget(v):
    if _blank(v):
        return None, None
    if isinstance(v, bool):
        return None, "Budget must be a whole number"
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    if not isinstance(v, int):
        return None, "Budget must be a whole number"
    if v < 0:
        return None, "Budget must be positive"
    return v, None


def _csv_budget(v):
    if _blank(v):
        return None, None
    if not isinstance(v, str) or not _DIGITS_RE.match(v.strip()):
        return None, "Budget must be a whole number"
    return int(v.strip()), None


def _notes(v):
    if _blank(v):
        return None, None
    if not isinstance(v, str):
        return None, "Notes must be text"
    if len(v) > 1000:
        return None, "Notes must be less than 1000 characters"
    return v, None


def _tags(v):
    if v is None:
        return [], None
    if not isinstance(v, (list, tuple)) or not all(isinstance(t, str) for t in v):
        return None, "Tags must be a list of strings"
    return [t.strip() for t in v if t.strip()], None


def _csv_tags(v):
    if _blank(v):
        return [], None
    if not isinstance(v, str):
        return None, "Tags must be text"
    return [t.strip() for t in v.split(",") if t.strip()], None


def _buyer_id(v):
    if not isinstance(v, str) or not v.strip():
        return None, "Buyer id is required"
    return v.strip(), None


def _watermark(v):
    if _blank(v):
        return None, None
    if isinstance(v, datetime):
        return _to_naive_utc(v), None
    if isinstance(v, str):
        raw = v.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return _to_naive_utc(datetime.fromisoformat(raw)), None
        except ValueError:
            pass
    return None, "Invalid updatedAt timestamp"


def _search(v):
    if _blank(v):
        return None, None
    if not isinstance(v, str):
        return None, "Search must be text"
    return v.strip(), None


def _bounded_int(label, default, low, high=None):
    def rule(v):
        if _blank(v):
            return default, None
        if isinstance(v, bool):
            return None, "%s must be a whole number" % label
        if isinstance(v, str) and _DIGITS_RE.match(v.strip()):
            v = int(v.strip())
        if not isinstance(v, int):
            return None, "%s must be a whole number" % label
        if v < low or (high is not None and v > high):
            if high is None:
                return None, "%s must be at least %d" % (label, low)
            return None, "%s must be between %d and %d" % (label, low, high)
        return v, None
    return rule


# Cross-field refinements: merged data -> (field, message) or None

def _bhk_required(data):
    if data.get("propertyType") in BHK_REQUIRED_FOR and not data.get("bhk"):
        return "bhk", "BHK is required for Apartment and Villa properties"
    return None


def _budget_order(data):
    lo = data.get("budgetMin")
    hi = data.get("budgetMax")
    if lo is not None and hi is not None and hi < lo:
        return "budgetMax", "Maximum budget must be greater than or equal to minimum budget"
    return None


REFINEMENTS = [_bhk_required, _budget_order]

BUYER_RULES = [
    ("fullName", _full_name),
    ("email", _email),
    ("phone", _phone),
    ("city", _choice(CITIES, "City")),
    ("propertyType", _choice(PROPERTY_TYPES, "Property type")),
    ("bhk", _choice(BHK_OPTIONS, "BHK", required=False)),
    ("purpose", _choice(PURPOSES, "Purpose")),
    ("budgetMin", _budget),
    ("budgetMax", _budget),
    ("timeline", _choice(TIMELINES, "Timeline")),
    ("source", _choice(SOURCES, "Source")),
    ("status", _choice(STATUSES, "Status", required=False, default=DEFAULT_STATUS)),
    ("notes", _notes),
    ("tags", _tags),
]

# Updates never fall back to the create-time default status
UPDATE_RULES = [
    (field, _choice(STATUSES, "Status") if field == "status" else rule)
    for field, rule in BUYER_RULES
]

CSV_ROW_RULES = [
    ("fullName", _csv_full_name),
    ("email", _email),
    ("phone", _phone),
    ("city", _choice(CITIES, "City")),
    ("propertyType", _choice(PROPERTY_TYPES, "Property type")),
    ("bhk", _choice(BHK_OPTIONS, "BHK", required=False)),
    ("purpose", _choice(PURPOSES, "Purpose")),
    ("budgetMin", _csv_budget),
    ("budgetMax", _csv_budget),
    ("timeline", _choice(TIMELINES, "Timeline")),
    ("source", _choice(SOURCES, "Source")),
    ("notes", _notes),
    ("tags", _csv_tags),
    ("status", _choice(STATUSES, "Status", required=False, default=DEFAULT_STATUS)),
]

FILTER_RULES = [
    ("search", _search),
    ("city", _choice(CITIES, "City", required=False)),
    ("propertyType", _choice(PROPERTY_TYPES, "Property type", required=False)),
    ("status", _choice(STATUSES, "Status", required=False)),
    ("timeline", _choice(TIMELINES, "Timeline", required=False)),
    ("page", _bounded_int("Page", DEFAULT_PAGE, 1)),
    ("limit", _bounded_int("Limit", DEFAULT_LIMIT, 1, MAX_LIMIT)),
    ("sortBy", _choice(SORT_FIELDS, "Sort field", required=False, default=SORT_FIELDS[0])),
    ("sortOrder", _choice(SORT_ORDERS, "Sort order", required=False, default="desc")),
]


def _run(rules, data, refinements=(), partial=False, base=None):
    errors = []
    out = {}
    for field, rule in rules:
        if partial and field not in data:
            continue
        value, message = rule(data.get(field))
        if message:
            errors.append({"field": field, "message": message})
        else:
            out[field] = value
    if errors:
        return ValidationResult(out, errors)
    view = dict(base or {})
    view.update(out)
    for refine in refinements:
        hit = refine(view)
        if hit:
            errors.append({"field": hit[0], "message": hit[1]})
    return ValidationResult(out, errors)


def validate_update(data, current=None):
    """Validate a partial buyer payload.

    Only supplied fields are checked. Cross-field rules see the supplied
    fields laid over ``current`` when given, so a partial edit cannot leave
    the stored record inconsistent.
    """
    if not isinstance(data, dict):
        return ValidationResult(errors=[{"field": "", "message": "Expected an object"}])
    head = _run([("id", _buyer_id), ("updatedAt", _watermark)], data, partial=False)
    body = _run(UPDATE_RULES, data, REFINEMENTS if not head.errors else (), partial=True, base=current)
    out = dict(body.data)
    out.update(head.data)
    return ValidationResult(out, head.errors + body.errors)


_SCHEMAS = {
    "buyer": (BUYER_RULES, REFINEMENTS),
    "csv_row": (CSV_ROW_RULES, REFINEMENTS),
    "filters": (FILTER_RULES, ()),
}


def validate(kind, data):
    """Validate ``data`` against one of: buyer, csv_row, update, filters.

    Field rules run first and every violation is reported; cross-field
    refinements only run once all field rules pass.
    """
    if kind == "update":
        return validate_update(data)
    if kind not in _SCHEMAS:
        raise ValueError("unknown schema: %s" % kind)
    if not isinstance(data, dict):
        return ValidationResult(errors=[{"field": "", "message": "Expected an object"}])
    rules, refinements = _SCHEMAS[kind]
    return _run(rules, data, refinements)


def validate_or_raise(kind, data):
    result = validate(kind, data)
    if not result.ok:
        raise ValidationError(result.errors)
    return result.data
