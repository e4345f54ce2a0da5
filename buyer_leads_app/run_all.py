import os
import logging
from buyer_leads_app.config import settings


def run_api():
    port = str(settings.API_PORT)
    args = [
        'gunicorn',
        '--bind', f'0.0.0.0:{port}',
        '--timeout', '120',
        # Rate-limit counters live in process memory
        '--workers', '1',
        'buyer_leads_app.api_web:app',
    ]
    os.execvp('gunicorn', args)


def run_dev():
    from buyer_leads_app.api_web import main as api_main
    api_main()


def main():
    logging.basicConfig(level=settings.LOG_LEVEL)
    mode = (os.getenv('SERVICE_MODE') or os.getenv('RUN_MODE') or 'api').strip().lower()
    if mode in ('dev', 'debug'):
        run_dev()
        return
    from buyer_leads_app.database.database import init_db
    init_db()
    logging.info('{"event":"service_start","mode":"%s"}' % mode)
    run_api()


if __name__ == '__main__':
    main()
