"""Celery tasks that run the escalation scheduler and delivery worker."""

import logging

from sqlalchemy.orm import Session

from src.celery_app import app as celery_app
from src.database import SessionLocal
from src.services.escalation_delivery import get_delivery_worker
from src.services.escalation_scheduler import get_escalation_scheduler

logger = logging.getLogger(__name__)


@celery_app.task
def schedule_escalations() -> dict:
    """Create escalation records for overdue tasks.

    This task runs every minute via celery-beat.

    Returns:
        dict with the run summary
    """
    db: Session = SessionLocal()

    try:
        result = get_escalation_scheduler(db).run()
        return result.model_dump(mode="json")

    except Exception as e:
        logger.error(f"Error in schedule_escalations: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}

    finally:
        db.close()


@celery_app.task
def deliver_escalations() -> dict:
    """Deliver due escalations.

    This task runs every minute via celery-beat.

    Returns:
        dict with the run summary
    """
    db: Session = SessionLocal()
    worker = get_delivery_worker(db)

    try:
        result = worker.run()
        return result.model_dump(mode="json")

    except Exception as e:
        logger.error(f"Error in deliver_escalations: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}

    finally:
        worker.notifier.close()
        db.close()
