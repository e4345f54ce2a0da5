import json
import uuid
from datetime import datetime
from sqlalchemy import select
from buyer_leads_app.config.choices import RECENT_HISTORY_LIMIT
from buyer_leads_app.database.models import BuyerHistory


def _json_default(v):
    if isinstance(v, datetime):
        return v.isoformat()
    return str(v)


def record(session, buyer_id, changed_by, diff, changed_at=None):
    """Append one entry; the caller commits."""
    row = BuyerHistory(
        id=uuid.uuid4().hex,
        buyer_id=buyer_id,
        changed_by=changed_by,
        changed_at=changed_at or datetime.utcnow(),
        diff=json.dumps(diff, default=_json_default),
    )
    session.add(row)
    return row


def entry_to_dict(row):
    return {
        "id": row.id,
        "changedAt": row.changed_at,
        "changedBy": row.changed_by,
        "diff": json.loads(row.diff) if row.diff else {},
    }


def recent(session, buyer_id, limit=RECENT_HISTORY_LIMIT):
    rows = session.execute(
        select(BuyerHistory)
        .where(BuyerHistory.buyer_id == buyer_id)
        .order_by(BuyerHistory.changed_at.desc(), BuyerHistory.id.desc())
        .limit(int(limit))
    ).scalars().all()
    return [entry_to_dict(r) for r in rows]
