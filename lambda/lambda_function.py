import logging
from datetime import datetime, timezone

from cost_scheduler.errors import ConfigurationError, ScheduleNotFoundError
from cost_scheduler.models import TRIGGER_SYSTEM, TRIGGER_WEB_UI, ScanResult, new_id
from cost_scheduler.notifications import notify_failure
from cost_scheduler.orchestrator import build_orchestrator
from cost_scheduler.settings import configure_logging, load_settings

logger = logging.getLogger()
if not logger.handlers:
    logging.basicConfig()


def _is_partial(event):
    return bool(event.get("scheduleId") or event.get("scheduleName"))


def _failed_result(message):
    return ScanResult(
        success=False,
        execution_id=new_id(),
        mode="partial",
        schedules_processed=0,
        resources_started=0,
        resources_stopped=0,
        resources_failed=0,
        duration=0,
        status="failed",
        errors=[message],
    ).to_dict()


def handler(event, context):
    settings = load_settings()
    log_level = configure_logging(settings)
    event = event if isinstance(event, dict) else {}

    logger.info(
        "scheduler start log_level=%s mode=%s now=%s",
        log_level,
        "partial" if _is_partial(event) else "full",
        datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S %Z"),
    )

    try:
        orchestrator = build_orchestrator(settings)
        if _is_partial(event):
            result = orchestrator.run_partial_scan(
                schedule_id=event.get("scheduleId"),
                schedule_name=event.get("scheduleName"),
                tenant_id=event.get("tenantId"),
                user_email=event.get("userEmail"),
                triggered_by=event.get("triggeredBy") or TRIGGER_WEB_UI,
            )
        else:
            result = orchestrator.run_full_scan(triggered_by=event.get("triggeredBy") or TRIGGER_SYSTEM)
    except (ScheduleNotFoundError, ConfigurationError) as exc:
        logger.warning("partial scan rejected: %s", exc)
        return _failed_result(str(exc))
    except Exception as exc:
        logger.exception("scheduler invocation failed")
        notify_failure(settings, f"{type(exc).__name__}: {exc}")
        raise

    return result.to_dict()
