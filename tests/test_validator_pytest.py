from datetime import datetime, timezone, timedelta

import pytest

from buyer_leads_app.errors import ValidationError
from buyer_leads_app.processing.validator import validate, validate_update, validate_or_raise


VALID = {
    "fullName": "John Doe",
    "phone": "9876543210",
    "city": "Chandigarh",
    "propertyType": "Apartment",
    "bhk": "2",
    "purpose": "Buy",
    "timeline": "0-3m",
    "source": "Website",
}


def _fields(result):
    return [e["field"] for e in result.errors]


@pytest.mark.unit
def test_valid_buyer_gets_defaults():
    r = validate("buyer", VALID)
    assert r.ok
    assert r.data["status"] == "New"
    assert r.data["tags"] == []
    assert r.data["email"] is None
    assert r.data["budgetMin"] is None


@pytest.mark.unit
@pytest.mark.parametrize("ptype", ["Apartment", "Villa"])
def test_bhk_required_for_residential(ptype):
    data = dict(VALID, propertyType=ptype)
    data.pop("bhk")
    r = validate("buyer", data)
    assert not r.ok
    assert r.errors == [{"field": "bhk", "message": "BHK is required for Apartment and Villa properties"}]
    assert validate("buyer", dict(data, bhk="3")).ok


@pytest.mark.unit
@pytest.mark.parametrize("ptype", ["Plot", "Office", "Retail"])
def test_bhk_optional_for_other_types(ptype):
    data = dict(VALID, propertyType=ptype)
    data.pop("bhk")
    assert validate("buyer", data).ok
    assert validate("buyer", dict(data, bhk="")).ok
    bad = validate("buyer", dict(data, bhk="7"))
    assert _fields(bad) == ["bhk"]


@pytest.mark.unit
def test_budget_max_below_min_fails_on_budget_max():
    r = validate("buyer", dict(VALID, budgetMin=5000000, budgetMax=1000000))
    assert r.errors == [{
        "field": "budgetMax",
        "message": "Maximum budget must be greater than or equal to minimum budget",
    }]
    assert validate("buyer", dict(VALID, budgetMin=1000000, budgetMax=1000000)).ok
    assert validate("buyer", dict(VALID, budgetMin=0, budgetMax=0)).ok


@pytest.mark.unit
def test_budget_must_be_non_negative_integer():
    assert validate("buyer", dict(VALID, budgetMin=-1)).errors[0]["message"] == "Budget must be positive"
    assert _fields(validate("buyer", dict(VALID, budgetMax=10.5))) == ["budgetMax"]
    assert _fields(validate("buyer", dict(VALID, budgetMin=True))) == ["budgetMin"]


@pytest.mark.unit
def test_field_errors_are_all_reported_before_refinements():
    data = dict(VALID, fullName="A", phone="123", city="Nowhere")
    data.pop("bhk")
    r = validate("buyer", data)
    # bhk refinement does not run while field rules fail
    assert _fields(r) == ["fullName", "phone", "city"]
    assert r.first_message() == "Full name must be at least 2 characters"


@pytest.mark.unit
def test_email_and_notes_rules():
    assert validate("buyer", dict(VALID, email="")).ok
    assert validate("buyer", dict(VALID, email="john@example.com")).data["email"] == "john@example.com"
    assert validate("buyer", dict(VALID, email="not-an-email")).errors[0]["message"] == "Invalid email address"
    assert _fields(validate("buyer", dict(VALID, notes="x" * 1001))) == ["notes"]
    assert validate("buyer", dict(VALID, notes="x" * 1000)).ok


@pytest.mark.unit
def test_full_name_length_bounds():
    assert validate("buyer", dict(VALID, fullName="x" * 80)).ok
    r = validate("buyer", dict(VALID, fullName="x" * 81))
    assert r.first_message() == "Full name must be less than 80 characters"


@pytest.mark.unit
def test_tags_are_trimmed():
    r = validate("buyer", dict(VALID, tags=[" hot ", "", "nri"]))
    assert r.data["tags"] == ["hot", "nri"]
    assert _fields(validate("buyer", dict(VALID, tags="hot"))) == ["tags"]


@pytest.mark.unit
def test_csv_row_coerces_budgets_and_tags():
    row = dict(VALID, budgetMin="1000000", budgetMax="", tags="premium, urgent,,", status="")
    r = validate("csv_row", row)
    assert r.ok
    assert r.data["budgetMin"] == 1000000
    assert r.data["budgetMax"] is None
    assert r.data["tags"] == ["premium", "urgent"]
    assert r.data["status"] == "New"


@pytest.mark.unit
def test_csv_row_rejects_non_numeric_budget_and_checks_order():
    assert _fields(validate("csv_row", dict(VALID, budgetMin="12abc"))) == ["budgetMin"]
    r = validate("csv_row", dict(VALID, budgetMin="2000", budgetMax="1000"))
    assert _fields(r) == ["budgetMax"]


@pytest.mark.unit
def test_update_requires_id_only():
    r = validate_update({"id": "abc", "notes": "call later"})
    assert r.ok
    assert r.data == {"id": "abc", "notes": "call later", "updatedAt": None}
    assert _fields(validate_update({"notes": "x"})) == ["id"]
    assert validate("update", {"id": "abc"}).ok


@pytest.mark.unit
def test_update_watermark_parsing():
    r = validate_update({"id": "abc", "updatedAt": "2024-01-01T10:00:00Z"})
    assert r.data["updatedAt"] == datetime(2024, 1, 1, 10, 0, 0)
    aware = datetime(2024, 1, 1, 15, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    assert validate_update({"id": "abc", "updatedAt": aware}).data["updatedAt"] == datetime(2024, 1, 1, 10, 0)
    assert _fields(validate_update({"id": "abc", "updatedAt": "yesterday"})) == ["updatedAt"]


@pytest.mark.unit
def test_update_refinements_use_current_record():
    current = dict(VALID, budgetMin=None, budgetMax=100)
    assert validate_update({"id": "abc", "propertyType": "Villa"}, current=current).ok
    assert _fields(validate_update({"id": "abc", "bhk": ""}, current=current)) == ["bhk"]
    assert _fields(validate_update({"id": "abc", "budgetMin": 200}, current=current)) == ["budgetMax"]


@pytest.mark.unit
def test_filter_defaults_and_bounds():
    r = validate("filters", {})
    assert r.data == {
        "search": None,
        "city": None,
        "propertyType": None,
        "status": None,
        "timeline": None,
        "page": 1,
        "limit": 10,
        "sortBy": "updatedAt",
        "sortOrder": "desc",
    }
    assert validate("filters", {"page": "2", "limit": "25"}).data["page"] == 2
    assert _fields(validate("filters", {"limit": "101"})) == ["limit"]
    assert _fields(validate("filters", {"limit": 0})) == ["limit"]
    assert _fields(validate("filters", {"page": 0})) == ["page"]
    assert _fields(validate("filters", {"sortBy": "phone"})) == ["sortBy"]
    assert _fields(validate("filters", {"city": "Delhi"})) == ["city"]


@pytest.mark.unit
def test_validate_or_raise_and_unknown_kind():
    with pytest.raises(ValidationError) as exc:
        validate_or_raise("buyer", dict(VALID, phone="12"))
    assert exc.value.errors[0]["field"] == "phone"
    assert exc.value.message == "Phone must be 10-15 digits"
    with pytest.raises(ValueError):
        validate("nope", {})
    assert validate("buyer", ["not", "a", "dict"]).errors[0]["message"] == "Expected an object"


@pytest.mark.unit
def test_update_status_has_no_default():
    assert _fields(validate_update({"id": "abc", "status": ""})) == ["status"]
    assert "status" not in validate_update({"id": "abc"}).data
    assert validate_update({"id": "abc", "status": "Visited"}).data["status"] == "Visited"
