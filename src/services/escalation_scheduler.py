"""Escalation scheduler: turns overdue tasks into pending escalation records."""

import logging
import re
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from src.config import get_settings
from src.models import EscalationPolicy, Task
from src.schemas.escalation import (
    PendingDetails,
    ScheduledEscalation,
    ScheduleError,
    ScheduleRunResult,
    ScheduleSummary,
    dump_delivery_receipt,
)
from src.services.escalation_store import (
    DuplicateEscalationError,
    EscalationStore,
    SqlEscalationStore,
)

logger = logging.getLogger(__name__)

DEFAULT_ESCALATION_TEMPLATES = {
    1: (
        'Hi {{contactName}}, {{ownerName}} missed their deadline for "{{taskTitle}}" '
        "which was due {{dueDate}}. It has been overdue for {{minutesOverdue}} minutes. "
        "As their accountability contact, please check in with them!"
    ),
    2: (
        "{{contactName}}, this is the second escalation! {{ownerName}} still hasn't "
        'finished "{{taskTitle}}" ({{minutesOverdue}} minutes overdue). '
        "Time for stronger encouragement!"
    ),
    3: (
        "FINAL ESCALATION: {{contactName}}, {{ownerName}} has officially failed their "
        'commitment to "{{taskTitle}}". Maximum shame mode activated! '
        "{{minutesOverdue}} minutes overdue."
    ),
}

TEMPLATE_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render_template(template: str, variables: dict[str, str]) -> str:
    """Substitute {{name}} placeholders; unresolved names render as ""."""
    return TEMPLATE_PLACEHOLDER.sub(lambda m: str(variables.get(m.group(1)) or ""), template)


def format_short_date(value: datetime, timezone: str = "UTC") -> str:
    """Numeric date like 1/15/2025 in the display timezone."""
    local = value.astimezone(ZoneInfo(timezone))
    return f"{local.month}/{local.day}/{local.year}"


def minutes_overdue(due_at: datetime, now: datetime) -> int:
    return int((now - due_at).total_seconds() // 60)


def render_escalation_message(
    task: Task,
    policy: EscalationPolicy,
    overdue: int,
    timezone: str = "UTC",
) -> str:
    """Message stored on the escalation record when it is scheduled."""
    owner = task.owner
    template = (
        policy.message_template
        or DEFAULT_ESCALATION_TEMPLATES.get(policy.level)
        or DEFAULT_ESCALATION_TEMPLATES[1]
    )
    return render_template(
        template,
        {
            "contactName": policy.contact.name,
            "ownerName": owner.display_name if owner else "User",
            "ownerEmail": owner.email if owner else "",
            "taskTitle": task.title,
            "escalationLevel": str(policy.level),
            "dueDate": format_short_date(task.due_at, timezone),
            "minutesOverdue": str(overdue),
        },
    )


class EscalationScheduler:
    """Creates at most one escalation record per policy once its threshold passes."""

    def __init__(self, store: EscalationStore, timezone: str = "UTC"):
        self.store = store
        self.timezone = timezone

    def run(self, now: datetime | None = None) -> ScheduleRunResult:
        """Scan overdue tasks and schedule escalations that have come due.

        Per-task and per-policy errors are collected into the result and never
        stop the rest of the batch.
        """
        now = now or datetime.now(UTC)
        scheduled: list[ScheduledEscalation] = []
        errors: list[ScheduleError] = []

        overdue_tasks = self.store.list_overdue_tasks(now)
        logger.info(f"Found {len(overdue_tasks)} overdue tasks")

        for task in overdue_tasks:
            try:
                overdue = minutes_overdue(task.due_at, now)
                for policy in task.escalation_policies:
                    try:
                        created = self._schedule_policy(task, policy, overdue, now)
                    except Exception as e:
                        logger.error(
                            f"Failed to schedule escalation for policy {policy.id}: {e}",
                            exc_info=True,
                        )
                        self.store.rollback()
                        errors.append(
                            ScheduleError(task_id=task.id, policy_id=policy.id, error=str(e))
                        )
                        continue
                    if created:
                        scheduled.append(created)
            except Exception as e:
                logger.error(f"Error processing task {task.id}: {e}", exc_info=True)
                self.store.rollback()
                errors.append(ScheduleError(task_id=task.id, error=str(e)))

        logger.info(
            f"Scheduler run complete: {len(scheduled)} scheduled, {len(errors)} errors"
        )
        return ScheduleRunResult(
            summary=ScheduleSummary(
                overdue_tasks_checked=len(overdue_tasks),
                escalations_scheduled=len(scheduled),
                errors=len(errors),
            ),
            scheduled_escalations=scheduled,
            errors=errors,
            timestamp=now,
        )

    def _schedule_policy(
        self, task: Task, policy: EscalationPolicy, overdue: int, now: datetime
    ) -> ScheduledEscalation | None:
        contact = policy.contact
        if contact is None or not contact.verified:
            logger.info(f"Skipping policy {policy.id} - contact not verified")
            return None

        if overdue < policy.minutes_after_due:
            return None

        if self.store.escalation_exists_for_policy(policy.id):
            logger.debug(f"Escalation already exists for policy {policy.id}")
            return None

        scheduled_for = task.due_at + timedelta(minutes=policy.minutes_after_due)
        message_content = render_escalation_message(task, policy, overdue, self.timezone)
        receipt = PendingDetails(created_at=now, metadata={"minutes_overdue": overdue})

        try:
            escalation = self.store.create_escalation(
                policy_id=policy.id,
                scheduled_for=scheduled_for,
                message_content=message_content,
                delivery_receipt=dump_delivery_receipt(receipt),
            )
        except DuplicateEscalationError:
            logger.info(f"Escalation for policy {policy.id} was scheduled concurrently")
            return None

        logger.info(
            f"Scheduled escalation {escalation.id} for task {task.id} (level {policy.level})"
        )
        return ScheduledEscalation(
            id=escalation.id,
            task_id=task.id,
            policy_id=policy.id,
            level=policy.level,
            contact_email=contact.email,
            scheduled_for=scheduled_for,
            minutes_overdue=overdue,
        )


def get_escalation_scheduler(db: Session) -> EscalationScheduler:
    """Get a scheduler bound to a database session."""
    return EscalationScheduler(SqlEscalationStore(db), timezone=get_settings().display_timezone)
