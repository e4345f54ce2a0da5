import json
import math
import uuid
import logging
from datetime import datetime, timedelta
from sqlalchemy import select, func, or_
from sqlalchemy.orm.exc import StaleDataError
from buyer_leads_app import history
from buyer_leads_app.database.database import get_session
from buyer_leads_app.database.models import Buyer
from buyer_leads_app.errors import BuyerError, ValidationError, DuplicateError, ConflictError
from buyer_leads_app.processing.validator import BUYER_FIELDS, validate_or_raise, validate_update

FIELD_COLUMNS = {
    "fullName": "full_name",
    "email": "email",
    "phone": "phone",
    "city": "city",
    "propertyType": "property_type",
    "bhk": "bhk",
    "purpose": "purpose",
    "budgetMin": "budget_min",
    "budgetMax": "budget_max",
    "timeline": "timeline",
    "source": "source",
    "status": "status",
    "notes": "notes",
    "tags": "tags",
}

SORT_COLUMNS = {
    "updatedAt": Buyer.updated_at,
    "createdAt": Buyer.created_at,
    "fullName": Buyer.full_name,
}

EQUALITY_FILTERS = ("city", "propertyType", "status", "timeline")

BULK_ROW_FAILED = "Failed to import buyer"


def _log_error(event, e):
    logging.error("{\"event\":\"%s\",\"error\":\"%s\"}" % (event, str(e).replace("\"", "'")))


def _encode_tags(tags):
    return json.dumps(list(tags or []))


def _decode_tags(raw):
    if not raw:
        return []
    return list(json.loads(raw))


def _next_timestamp(previous):
    # updated_at must move forward even when the clock has not
    now = datetime.utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def buyer_to_dict(b):
    out = {"id": b.id}
    for field, column in FIELD_COLUMNS.items():
        out[field] = getattr(b, column)
    out["tags"] = _decode_tags(b.tags)
    out["ownerId"] = b.owner_id
    out["createdAt"] = b.created_at
    out["updatedAt"] = b.updated_at
    return out


def buyer_summary(b):
    return {"id": b.id, "fullName": b.full_name, "phone": b.phone, "email": b.email}


def _fetch(session, buyer_id, owner_id):
    return session.execute(
        select(Buyer).where(Buyer.id == buyer_id).where(Buyer.owner_id == owner_id)
    ).scalars().first()


def check_duplicate_buyer(session, data, owner_id):
    phone = data.get("phone")
    if phone:
        row = session.execute(
            select(Buyer).where(Buyer.phone == phone).where(Buyer.owner_id == owner_id).limit(1)
        ).scalars().first()
        if row:
            return row
    email = (data.get("email") or "").strip()
    if email:
        row = session.execute(
            select(Buyer).where(Buyer.email == email).where(Buyer.owner_id == owner_id).limit(1)
        ).scalars().first()
        if row:
            return row
    return None


def create_buyer(data, owner_id):
    clean = validate_or_raise("buyer", data)
    s = get_session()
    try:
        existing = check_duplicate_buyer(s, clean, owner_id)
        if existing:
            logging.info("{\"event\":\"buyer_create_duplicate\",\"existing_id\":\"%s\"}" % existing.id)
            raise DuplicateError(buyer_summary(existing))
        now = datetime.utcnow()
        row = Buyer(id=str(uuid.uuid4()), owner_id=owner_id, created_at=now, updated_at=now)
        for field, column in FIELD_COLUMNS.items():
            value = clean.get(field)
            setattr(row, column, _encode_tags(value) if field == "tags" else value)
        s.add(row)
        s.flush()
        supplied = [f for f in BUYER_FIELDS if f in data]
        history.record(s, row.id, owner_id, {"action": "created", "fields": supplied}, changed_at=now)
        s.commit()
        logging.info("{\"event\":\"buyer_created\",\"buyer_id\":\"%s\"}" % row.id)
        return buyer_to_dict(row)
    except BuyerError:
        s.rollback()
        raise
    except Exception as e:
        s.rollback()
        _log_error("buyer_create_error", e)
        raise
    finally:
        s.close()


def get_buyer_by_id(buyer_id, owner_id):
    s = get_session()
    try:
        row = _fetch(s, buyer_id, owner_id)
        return buyer_to_dict(row) if row else None
    finally:
        s.close()


def get_buyer_with_history(buyer_id, owner_id):
    s = get_session()
    try:
        row = _fetch(s, buyer_id, owner_id)
        if not row:
            return None
        out = buyer_to_dict(row)
        out["history"] = history.recent(s, row.id)
        return out
    finally:
        s.close()


def update_buyer(buyer_id, data, owner_id, expected_updated_at=None):
    """Apply a partial update guarded by an optional ``updatedAt`` watermark.

    Returns None when the buyer does not exist for this owner. A watermark
    strictly older than the stored ``updated_at`` raises ConflictError and
    nothing is written. Only fields present in ``data`` are diffed; a
    history entry is appended when at least one of them changed.
    """
    s = get_session()
    try:
        row = _fetch(s, buyer_id, owner_id)
        if not row:
            logging.info("{\"event\":\"buyer_update_not_found\",\"buyer_id\":\"%s\"}" % buyer_id)
            return None
        current = buyer_to_dict(row)
        payload = dict(data or {})
        payload["id"] = buyer_id
        if expected_updated_at is not None:
            payload["updatedAt"] = expected_updated_at
        result = validate_update(payload, current=current)
        if not result.ok:
            raise ValidationError(result.errors)
        clean = result.data
        watermark = clean.get("updatedAt")
        if watermark is not None and row.updated_at is not None and watermark < row.updated_at:
            logging.info("{\"event\":\"buyer_update_conflict\",\"buyer_id\":\"%s\"}" % buyer_id)
            raise ConflictError()
        changes = {}
        for field in BUYER_FIELDS:
            if field not in clean:
                continue
            old = current.get(field)
            new = clean[field]
            if old != new:
                changes[field] = {"from": old, "to": new}
            setattr(row, FIELD_COLUMNS[field], _encode_tags(new) if field == "tags" else new)
        now = _next_timestamp(row.updated_at)
        row.updated_at = now
        if changes:
            history.record(s, row.id, owner_id, {"action": "updated", "changes": changes}, changed_at=now)
        try:
            s.commit()
        except StaleDataError:
            # another writer committed between our read and this write
            s.rollback()
            logging.info("{\"event\":\"buyer_update_conflict\",\"buyer_id\":\"%s\"}" % buyer_id)
            raise ConflictError()
        logging.info("{\"event\":\"buyer_updated\",\"buyer_id\":\"%s\",\"changed\":%d}" % (buyer_id, len(changes)))
        return buyer_to_dict(row)
    except BuyerError:
        s.rollback()
        raise
    except Exception as e:
        s.rollback()
        _log_error("buyer_update_error", e)
        raise
    finally:
        s.close()


def delete_buyer(buyer_id, owner_id):
    s = get_session()
    try:
        row = _fetch(s, buyer_id, owner_id)
        if not row:
            return False
        s.delete(row)
        s.commit()
        logging.info("{\"event\":\"buyer_deleted\",\"buyer_id\":\"%s\"}" % buyer_id)
        return True
    except Exception as e:
        s.rollback()
        _log_error("buyer_delete_error", e)
        raise
    finally:
        s.close()


def _like_pattern(text):
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return "%" + escaped + "%"


def build_buyer_conditions(filters, owner_id):
    """Owner match first, then the optional search and equality filters."""
    conds = [Buyer.owner_id == owner_id]
    search = filters.get("search")
    if search:
        pattern = _like_pattern(search)
        conds.append(or_(
            Buyer.full_name.ilike(pattern, escape="\\"),
            Buyer.email.ilike(pattern, escape="\\"),
            Buyer.phone.ilike(pattern, escape="\\"),
            Buyer.notes.ilike(pattern, escape="\\"),
        ))
    for field in EQUALITY_FILTERS:
        value = filters.get(field)
        if value:
            conds.append(getattr(Buyer, FIELD_COLUMNS[field]) == value)
    return conds


def _ordering(filters):
    column = SORT_COLUMNS[filters.get("sortBy") or "updatedAt"]
    if filters.get("sortOrder") == "asc":
        return [column.asc(), Buyer.id.asc()]
    return [column.desc(), Buyer.id.desc()]


def search_buyers(filters, owner_id):
    f = validate_or_raise("filters", filters or {})
    s = get_session()
    try:
        conds = build_buyer_conditions(f, owner_id)
        total = int(s.execute(select(func.count(Buyer.id)).where(*conds)).scalar_one())
        page = f["page"]
        limit = f["limit"]
        rows = s.execute(
            select(Buyer)
            .where(*conds)
            .order_by(*_ordering(f))
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return {
            "buyers": [buyer_to_dict(r) for r in rows],
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": int(math.ceil(total / float(limit))),
        }
    finally:
        s.close()


def get_all_buyers_for_export(filters, owner_id):
    raw = {k: v for k, v in (filters or {}).items() if k not in ("page", "limit")}
    f = validate_or_raise("filters", raw)
    s = get_session()
    try:
        conds = build_buyer_conditions(f, owner_id)
        rows = s.execute(select(Buyer).where(*conds).order_by(*_ordering(f))).scalars().all()
        logging.info("{\"event\":\"buyers_exported\",\"count\":%d}" % len(rows))
        return [buyer_to_dict(r) for r in rows]
    finally:
        s.close()


def bulk_import_buyers(payloads, owner_id):
    """Create each payload in turn; one bad row never stops the rest."""
    results = {"successful": [], "failed": [], "duplicates": []}
    for payload in payloads or []:
        try:
            results["successful"].append(create_buyer(payload, owner_id))
        except DuplicateError as e:
            results["duplicates"].append({"data": payload, "existingBuyer": e.existing})
        except ValidationError as e:
            results["failed"].append({"data": payload, "error": e.message})
        except Exception as e:
            _log_error("bulk_import_row_error", e)
            results["failed"].append({"data": payload, "error": BULK_ROW_FAILED})
    logging.info(
        "{\"event\":\"bulk_import_done\",\"imported\":%d,\"failed\":%d,\"duplicates\":%d}"
        % (len(results["successful"]), len(results["failed"]), len(results["duplicates"]))
    )
    return {
        "success": True,
        "imported": len(results["successful"]),
        "failed": len(results["failed"]),
        "duplicates": len(results["duplicates"]),
        "results": results,
    }
