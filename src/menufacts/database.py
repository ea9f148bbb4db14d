from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from menufacts.config import settings

if settings.database_url.startswith("sqlite"):
    # Background pipeline runs open sessions from worker threads
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency. Yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def install_audit_log_immutability(dbapi_connection):
    """
    Install DB-level triggers on audit_logs so rows can never be updated or deleted.
    MySQL only. Uses a raw DBAPI cursor and runs at startup after create_all.
    Idempotent: drops and recreates on every startup.
    """
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("DROP TRIGGER IF EXISTS prevent_audit_log_mutation")
        cursor.execute("""
            CREATE TRIGGER prevent_audit_log_mutation
            BEFORE UPDATE ON audit_logs
            FOR EACH ROW
            SIGNAL SQLSTATE '45000'
            SET MESSAGE_TEXT = 'audit_logs is immutable: UPDATE not allowed'
        """)
        cursor.execute("DROP TRIGGER IF EXISTS prevent_audit_log_delete")
        cursor.execute("""
            CREATE TRIGGER prevent_audit_log_delete
            BEFORE DELETE ON audit_logs
            FOR EACH ROW
            SIGNAL SQLSTATE '45000'
            SET MESSAGE_TEXT = 'audit_logs is immutable: DELETE not allowed'
        """)
        dbapi_connection.commit()
    finally:
        cursor.close()

