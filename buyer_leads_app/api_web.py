import json
import logging
from datetime import datetime
from flask import Flask, request, Response
from flask_login import LoginManager, UserMixin, current_user
from sqlalchemy import select, func
from werkzeug.exceptions import HTTPException
from buyer_leads_app.config import settings
from buyer_leads_app.database.database import get_session, init_db
from buyer_leads_app.database.models import User
from buyer_leads_app.buyers import (
    create_buyer,
    get_buyer_with_history,
    update_buyer,
    delete_buyer,
    search_buyers,
    get_all_buyers_for_export,
    bulk_import_buyers,
)
from buyer_leads_app.csv_io import parse_csv_content, validate_csv_rows, convert_csv_rows_to_buyers, generate_csv_content
from buyer_leads_app.errors import ValidationError, DuplicateError, ConflictError, NotFoundError
from buyer_leads_app.rate_limit import RateLimiter, RateLimitConfig, make_key

app = Flask(__name__)
app.config['SECRET_KEY'] = settings.SECRET_KEY
app.config['RATE_LIMITER'] = RateLimiter()
app.config['BULK_IMPORT_MAX_ROWS'] = settings.BULK_IMPORT_MAX_ROWS

login_manager = LoginManager()
login_manager.init_app(app)


class DemoUser(UserMixin):
    def __init__(self, user_id, email, name):
        self.id = user_id
        self.email = email
        self.name = name


def _demo_user():
    return DemoUser(settings.DEMO_USER_ID, settings.DEMO_USER_EMAIL, settings.DEMO_USER_NAME)


@login_manager.user_loader
def load_user(user_id):
    if user_id == settings.DEMO_USER_ID:
        return _demo_user()
    return None


@login_manager.request_loader
def load_user_from_request(_request):
    # No real auth: every caller is the demo user
    return _demo_user()


def _json_default(v):
    if isinstance(v, datetime):
        return v.isoformat()
    return str(v)


def _json(payload, status=200, headers=None):
    body = json.dumps(payload, default=_json_default).encode('utf-8')
    h = {'Content-Type': 'application/json'}
    h.update(headers or {})
    return Response(body, status, h)


def _client_id():
    return request.headers.get('X-Client-Id') or request.remote_addr or 'demo-client'


def _check_limit(operation):
    limiter = app.config['RATE_LIMITER']
    return limiter.check(make_key(operation, _client_id()), RateLimitConfig.named(operation))


def _rate_limited(rl):
    return _json({'error': 'Rate limit exceeded. Please try again later.'}, 429, rl.headers())


def _filters_from_args():
    keys = ('search', 'city', 'propertyType', 'status', 'timeline', 'page', 'limit', 'sortBy', 'sortOrder')
    return {k: request.args.get(k) for k in keys if request.args.get(k) not in (None, '')}


def _init():
    with app.app_context():
        init_db()


@app.errorhandler(NotFoundError)
def _not_found(e):
    return _json({'error': e.message}, 404)


@app.errorhandler(Exception)
def _unhandled(e):
    if isinstance(e, HTTPException):
        return _json({'error': e.name}, e.code)
    logging.error("{\"event\":\"api_error\",\"path\":\"%s\",\"error\":\"%s\"}" % (request.path, str(e).replace("\"", "'")))
    return _json({'error': 'Internal server error'}, 500)


@app.route('/api/buyers', methods=['POST'])
def api_buyer_create():
    rl = _check_limit('create')
    if not rl.allowed:
        return _rate_limited(rl)
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _json({'error': 'invalid_json'}, 400, rl.headers())
    try:
        buyer = create_buyer(payload, current_user.id)
    except ValidationError as e:
        return _json({'error': 'Validation failed', 'details': e.errors}, 400, rl.headers())
    except DuplicateError as e:
        return _json({'error': str(e), 'existingBuyer': e.existing}, 409, rl.headers())
    return _json(buyer, 201, rl.headers())


@app.route('/api/buyers', methods=['GET'])
def api_buyers_list():
    try:
        page = search_buyers(_filters_from_args(), current_user.id)
    except ValidationError as e:
        return _json({'error': 'Invalid filters', 'details': e.errors}, 400)
    return _json(page)


@app.route('/api/buyers/export', methods=['GET'])
def api_buyers_export():
    try:
        rows = get_all_buyers_for_export(_filters_from_args(), current_user.id)
    except ValidationError as e:
        return _json({'error': 'Invalid filters', 'details': e.errors}, 400)
    if (request.args.get('format') or '').lower() == 'csv':
        filename = 'buyers-%s.csv' % datetime.utcnow().strftime('%Y-%m-%d')
        return Response(generate_csv_content(rows), 200, {
            'Content-Type': 'text/csv; charset=utf-8',
            'Content-Disposition': 'attachment; filename="%s"' % filename,
        })
    return _json(rows)


@app.route('/api/buyers/bulk-import', methods=['POST'])
def api_buyers_bulk_import():
    rl = _check_limit('csv_import')
    if not rl.allowed:
        return _rate_limited(rl)
    payload = request.get_json(silent=True)
    if not isinstance(payload, list):
        return _json({'error': 'Expected an array of buyer data'}, 400, rl.headers())
    cap = int(app.config['BULK_IMPORT_MAX_ROWS'])
    if len(payload) > cap:
        return _json({'error': 'Too many rows. Maximum is %d per import.' % cap}, 400, rl.headers())
    result = bulk_import_buyers(payload, current_user.id)
    return _json(result, 200, rl.headers())


@app.route('/api/buyers/import-csv', methods=['POST'])
def api_buyers_import_csv():
    rl = _check_limit('csv_import')
    if not rl.allowed:
        return _rate_limited(rl)
    rows = parse_csv_content(request.get_data(as_text=True))
    if len(rows) < 2:
        return _json({'error': 'CSV must contain a header row and at least one data row'}, 400, rl.headers())
    cap = int(app.config['BULK_IMPORT_MAX_ROWS'])
    if len(rows) - 1 > cap:
        return _json({'error': 'Too many rows. Maximum is %d per import.' % cap}, 400, rl.headers())
    check = validate_csv_rows(rows)
    partial = (request.args.get('partial') or '').lower() in ('1', 'true', 'yes')
    if not check.success and not partial:
        return _json(check.to_dict(), 400, rl.headers())
    result = bulk_import_buyers(convert_csv_rows_to_buyers(rows), current_user.id)
    result['errors'] = check.errors
    return _json(result, 200, rl.headers())


@app.route('/api/buyers/<buyer_id>', methods=['GET'])
def api_buyer_detail(buyer_id):
    buyer = get_buyer_with_history(buyer_id, current_user.id)
    if not buyer:
        raise NotFoundError()
    return _json(buyer)


@app.route('/api/buyers/<buyer_id>', methods=['PUT'])
def api_buyer_update(buyer_id):
    rl = _check_limit('update')
    if not rl.allowed:
        return _rate_limited(rl)
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _json({'error': 'invalid_json'}, 400, rl.headers())
    try:
        buyer = update_buyer(buyer_id, payload, current_user.id)
    except ValidationError as e:
        return _json({'error': 'Validation failed', 'details': e.errors}, 400, rl.headers())
    except ConflictError as e:
        return _json({'error': e.message}, 409, rl.headers())
    if not buyer:
        raise NotFoundError()
    return _json(buyer, 200, rl.headers())


@app.route('/api/buyers/<buyer_id>', methods=['DELETE'])
def api_buyer_delete(buyer_id):
    if not delete_buyer(buyer_id, current_user.id):
        raise NotFoundError()
    return _json({'success': True})


@app.route('/api/health')
def api_health():
    ts = datetime.utcnow().isoformat()
    s = get_session()
    try:
        s.execute(select(func.count(User.id))).scalar_one()
        return _json({'status': 'healthy', 'timestamp': ts})
    except Exception:
        return _json({'status': 'unhealthy', 'timestamp': ts}, 503)
    finally:
        s.close()


def main():
    logging.basicConfig(level=settings.LOG_LEVEL)
    logging.info('{"event":"api_web_start"}')
    _init()
    logging.info('{"event":"api_web_bind","port":%d}' % settings.API_PORT)
    app.run(host='0.0.0.0', port=settings.API_PORT)


if __name__ == '__main__':
    main()
