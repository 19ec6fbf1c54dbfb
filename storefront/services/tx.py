import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.errors import StoreError, Internal

logger = logging.getLogger(__name__)

@contextmanager
def atomic(db: Session):
    """Commit the block's writes together; roll all of them back on any error.

    Driver errors (including statement timeouts) surface as ``Internal``.
    """
    try:
        yield db
        db.commit()
    except StoreError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("transaction rolled back")
        raise Internal("Internal error") from exc
