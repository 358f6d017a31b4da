import logging

from .dynamo import ThreadLocalTable
from .models import (
    ACTION_SKIP,
    ACTION_START,
    ACTION_STOP,
    STATUS_FAILED,
    STATUS_SUCCESS,
    AuditEvent,
    ResourceKind,
    ttl_after_days,
)

logger = logging.getLogger(__name__)


def overall_status(started, stopped, failed):
    if failed == 0:
        return "success"
    if started + stopped > 0:
        return "warning"
    return "error"


def kind_summary(results):
    summary = {}
    for kind in ResourceKind:
        entries = [r for r in results if r.kind == kind]
        summary[kind.value] = {
            "started": sum(1 for r in entries if r.action == ACTION_START and r.status == STATUS_SUCCESS),
            "stopped": sum(1 for r in entries if r.action == ACTION_STOP and r.status == STATUS_SUCCESS),
            "failed": sum(1 for r in entries if r.status == STATUS_FAILED),
            "skipped": sum(1 for r in entries if r.action == ACTION_SKIP),
        }
    return summary


class AuditLogger:
    """Append-only audit trail. Write failures are logged, never raised."""

    def __init__(self, table, ttl_days=90):
        self._table = table
        self.ttl_days = ttl_days

    @classmethod
    def from_settings(cls, settings):
        if not settings.audit_table_name:
            return cls(None, settings.audit_ttl_days)
        return cls(ThreadLocalTable(settings.audit_table_name, settings.region), settings.audit_ttl_days)

    def log(self, event):
        if self._table is None:
            logger.warning("audit table not configured, skipping event=%s", event.event_type)
            return False
        try:
            self._table.put_item(Item=event.to_item(ttl_after_days(self.ttl_days)))
        except Exception:
            logger.exception("failed to write audit event=%s resource=%s", event.event_type, event.resource_id)
            return False
        logger.debug("audit event written id=%s event=%s", event.id, event.event_type)
        return True

    def log_scheduler_start(self, execution_id, mode, user_email=None):
        return self.log(
            AuditEvent(
                event_type="scheduler.start",
                action=f"{mode}_scan",
                user=user_email or "system",
                user_type="user" if user_email else "system",
                resource_type="scheduler",
                resource_id=execution_id,
                status="info",
                details=f"Scheduler execution started: {execution_id}",
                metadata={"mode": mode},
            )
        )

    def log_scan_complete(self, execution_id, outcomes, started, stopped, failed, duration):
        return self.log(
            AuditEvent(
                event_type="scheduler.complete",
                action="full_scan",
                resource_type="scheduler",
                resource_id=execution_id,
                status=overall_status(started, stopped, failed),
                severity="medium" if failed else "info",
                details=f"Full scan completed: {started} started, {stopped} stopped, {failed} failed",
                metadata={
                    "schedulesProcessed": len(outcomes),
                    "resourcesStarted": started,
                    "resourcesStopped": stopped,
                    "resourcesFailed": failed,
                    "duration": duration,
                    "scheduleDetails": [outcome.to_dict() for outcome in outcomes],
                },
            )
        )

    def log_execution_summary(self, record, results, user_email=None):
        summary = kind_summary(results)
        lines = [f'Execution {record.execution_id} for schedule "{record.schedule_name}" completed.']
        for kind, counts in summary.items():
            lines.append(
                f"{kind}: {counts['started']} started, {counts['stopped']} stopped, "
                f"{counts['failed']} failed, {counts['skipped']} skipped."
            )
        lines.append(f"Duration: {record.duration}ms")

        summary["total"] = {
            "started": record.resources_started,
            "stopped": record.resources_stopped,
            "failed": record.resources_failed,
        }
        return self.log(
            AuditEvent(
                event_type="scheduler.execution.complete",
                action="execution_complete",
                user=user_email or "system",
                user_type="user" if user_email else "system",
                resource_type="scheduler",
                resource_id=record.execution_id,
                status=overall_status(record.resources_started, record.resources_stopped, record.resources_failed),
                severity="medium" if record.resources_failed else "info",
                details=" ".join(lines),
                metadata={
                    "executionId": record.execution_id,
                    "scheduleId": record.schedule_id,
                    "scheduleName": record.schedule_name,
                    "triggeredBy": record.triggered_by,
                    "duration": record.duration,
                    "summary": summary,
                    "schedule_metadata": record.schedule_metadata,
                },
            )
        )

    def log_account_error(self, execution_id, schedule, account_id, region, message):
        return self.log(
            AuditEvent(
                event_type="scheduler.error",
                action="process_account",
                resource_type="account",
                resource_id=account_id,
                status="error",
                severity="high",
                details=message,
                account_id=account_id,
                region=region,
                metadata={
                    "executionId": execution_id,
                    "scheduleId": schedule.schedule_id,
                    "scheduleName": schedule.name,
                },
            )
        )
