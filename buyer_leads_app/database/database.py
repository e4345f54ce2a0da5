import os
import logging
from datetime import datetime
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.engine import URL
from buyer_leads_app.config import settings

engine = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def _build_url():
    host = os.getenv("DB_HOST")
    port = os.getenv("DB_PORT")
    name = os.getenv("DB_NAME")
    user = os.getenv("DB_USER")
    password = os.getenv("DB_PASS")
    if host and name and user:
        return URL.create(
            drivername="postgresql+psycopg2",
            username=user,
            password=password,
            host=host,
            port=int(port) if port else None,
            database=name,
        )
    sqlite_path = os.path.abspath(os.getenv("DB_SQLITE_PATH", "dev.db"))
    return f"sqlite+pysqlite:///{sqlite_path}"


def _enable_sqlite_fks(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def get_engine():
    global engine
    if engine is None:
        url = _build_url()
        engine = create_engine(url, pool_pre_ping=True)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_fks)
        logging.basicConfig(level=settings.LOG_LEVEL)
        logging.info("{\"event\":\"db_engine_ready\",\"dialect\":\"%s\"}" % engine.dialect.name)
    return engine


def reset_engine():
    global engine
    if engine is not None:
        engine.dispose()
    engine = None


def get_session():
    get_engine()
    SessionLocal.configure(bind=engine)
    return SessionLocal()


def ensure_demo_user(session):
    from .models import User

    user = session.execute(select(User).where(User.id == settings.DEMO_USER_ID)).scalars().first()
    if user:
        return user
    user = User(
        id=settings.DEMO_USER_ID,
        email=settings.DEMO_USER_EMAIL,
        name=settings.DEMO_USER_NAME,
        created_at=datetime.utcnow(),
    )
    session.add(user)
    session.commit()
    logging.info("{\"event\":\"demo_user_created\",\"user_id\":\"%s\"}" % user.id)
    return user


def init_db():
    from .models import Base

    eng = get_engine()
    with eng.begin() as conn:
        logging.info("{\"event\":\"db_connection_ok\"}")
        Base.metadata.create_all(bind=conn)
        logging.info("{\"event\":\"tables_ensured\"}")
    s = get_session()
    try:
        ensure_demo_user(s)
    except Exception as e:
        s.rollback()
        logging.error("{\"event\":\"demo_user_error\",\"error\":\"%s\"}" % str(e).replace("\"", "'"))
        raise
    finally:
        s.close()
