from contextlib import contextmanager
from sqlalchemy.orm import Session
from yogabook.core.database import SessionLocal
from yogabook.core.exceptions import BookingDomainError
from yogabook.core.logging_config import get_logger

logger = get_logger("db_transaction")


@contextmanager
def db_transaction(db: Session = None):
    """Commit on success, roll back on any exception and re-raise it.

    Business-rule failures are expected outcomes, so they roll back quietly;
    anything else is logged with its traceback.
    """
    if db is None:
        db = SessionLocal()
        should_close = True
    else:
        should_close = False
    try:
        yield db
        db.commit()
    except BookingDomainError as e:
        db.rollback()
        logger.info(f"Transaction rolled back: {e.code}")
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {str(e)}", exc_info=True)
        raise
    finally:
        if should_close:
            db.close()
