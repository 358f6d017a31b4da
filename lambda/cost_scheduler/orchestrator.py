import logging
import time
from concurrent.futures import ThreadPoolExecutor

from .arn import parse_arn
from .audit import AuditLogger
from .credentials import CredentialBroker, ProviderContext
from .errors import ConfigurationError, CredentialError, ScheduleNotFoundError
from .history import ExecutionTracker
from .models import (
    ACTION_START,
    ACTION_STOP,
    STATUS_FAILED,
    TRIGGER_SYSTEM,
    TRIGGER_WEB_UI,
    ExecutionRecord,
    ResourceExecutionResult,
    ScanResult,
    ScheduleOutcome,
    SchedulerMetadata,
    empty_schedule_metadata,
    iso_timestamp,
    new_id,
    ttl_after_days,
    utc_now,
)
from .reconcilers import default_reconcilers
from .store import MetadataStore
from .time_window import is_in_range

logger = logging.getLogger(__name__)


def run_concurrently(fn, items, max_workers):
    """Apply ``fn`` to every item on a thread pool, preserving input order."""
    items = list(items)
    if not items:
        return []
    if len(items) == 1:
        return [fn(items[0])]
    with ThreadPoolExecutor(max_workers=min(len(items), max_workers)) as pool:
        futures = [pool.submit(fn, item) for item in items]
        return [future.result() for future in futures]


def share_workers(max_workers, width):
    """Threads each of ``width`` parallel tasks may use for its own fan-out."""
    return max(1, max_workers // max(1, min(width, max_workers)))


def group_resources(resources):
    """Group resources by owning account, then region, both taken from the ARN.

    Resources whose ARN cannot be parsed are left out with a warning.
    """
    grouped = {}
    for resource in resources:
        try:
            arn = parse_arn(resource.arn)
        except ConfigurationError as exc:
            logger.warning("resource=%s excluded: %s", resource.id, exc)
            continue
        grouped.setdefault(arn.account_id, {}).setdefault(arn.region, []).append(resource)
    return grouped


def failed_result(resource, action, error):
    try:
        resource_id = parse_arn(resource.arn).resource_id or resource.id
    except ConfigurationError:
        resource_id = resource.id
    return ResourceExecutionResult(
        resource_id=resource_id,
        arn=resource.arn,
        kind=resource.kind,
        action=action,
        status=STATUS_FAILED,
        error=error,
        cluster_arn=resource.cluster_arn,
    )


def _elapsed_ms(started_at):
    return int(round((time.monotonic() - started_at) * 1000))


def _count(results):
    started = sum(1 for r in results if r.changed and r.action == ACTION_START)
    stopped = sum(1 for r in results if r.changed and r.action == ACTION_STOP)
    failed = sum(1 for r in results if r.status == STATUS_FAILED)
    return started, stopped, failed


def _execution_status(started, stopped, failed):
    if failed == 0:
        return "success"
    if started + stopped > 0:
        return "partial"
    return "error"


def _scan_status(started, stopped, failed):
    if failed == 0:
        return "success"
    if started + stopped > 0:
        return "partial"
    return "failed"


class Orchestrator:
    def __init__(
        self,
        store,
        tracker,
        audit,
        broker,
        reconcilers=None,
        context_factory=ProviderContext.from_credentials,
        clock=utc_now,
        max_workers=16,
        execution_ttl_days=30,
    ):
        self.store = store
        self.tracker = tracker
        self.audit = audit
        self.broker = broker
        self.reconcilers = reconcilers if reconcilers is not None else default_reconcilers()
        self.context_factory = context_factory
        self.clock = clock
        self.max_workers = max_workers
        self.execution_ttl_days = execution_ttl_days

    def run_full_scan(self, triggered_by=TRIGGER_SYSTEM):
        execution_id = new_id()
        started_at = time.monotonic()
        logger.info("full scan start execution=%s triggered_by=%s", execution_id, triggered_by)
        self.audit.log_scheduler_start(execution_id, "full")

        schedules = self.store.list_active_schedules()
        accounts = self.store.list_active_accounts()
        logger.info(
            "execution=%s active_schedules=%d active_accounts=%d",
            execution_id,
            len(schedules),
            len(accounts),
        )

        if not schedules:
            logger.info("execution=%s no active schedules to process", execution_id)

        workers = share_workers(self.max_workers, len(schedules))
        outcomes = run_concurrently(
            lambda schedule: self._process_isolated(schedule, accounts, triggered_by, workers),
            schedules,
            self.max_workers,
        )

        result = self._result(execution_id, "full", started_at, outcomes)
        self.audit.log_scan_complete(
            execution_id,
            outcomes,
            result.resources_started,
            result.resources_stopped,
            result.resources_failed,
            result.duration,
        )
        logger.info(
            "full scan complete execution=%s started=%d stopped=%d failed=%d duration_ms=%d",
            execution_id,
            result.resources_started,
            result.resources_stopped,
            result.resources_failed,
            result.duration,
        )
        return result

    def run_partial_scan(
        self,
        schedule_id=None,
        schedule_name=None,
        tenant_id=None,
        user_email=None,
        triggered_by=TRIGGER_WEB_UI,
    ):
        lookup = schedule_id or schedule_name
        if not lookup:
            raise ConfigurationError("scheduleId or scheduleName is required for partial scan")

        execution_id = new_id()
        started_at = time.monotonic()
        logger.info(
            "partial scan start execution=%s schedule=%s tenant=%s user=%s",
            execution_id,
            lookup,
            tenant_id,
            user_email or "system",
        )

        schedule = self.store.get_schedule(lookup, tenant_id)
        if schedule is None and schedule_name:
            schedule = self.store.find_schedule_by_name(schedule_name, tenant_id)
        if schedule is None:
            raise ScheduleNotFoundError(f"Schedule not found: {lookup}")

        if not schedule.active:
            logger.warning("execution=%s schedule=%s is inactive, skipping", execution_id, schedule.name)
            return self._result(execution_id, "partial", started_at, [], schedules_processed=1)

        accounts = self.store.list_active_accounts()
        outcome = self.process_schedule(schedule, accounts, triggered_by, user_email)
        result = self._result(execution_id, "partial", started_at, [outcome])
        logger.info(
            "partial scan complete execution=%s schedule=%s started=%d stopped=%d failed=%d",
            execution_id,
            schedule.name,
            outcome.started,
            outcome.stopped,
            outcome.failed,
        )
        return result

    def _process_isolated(self, schedule, accounts, triggered_by, workers=None):
        try:
            return self.process_schedule(schedule, accounts, triggered_by, workers=workers)
        except Exception:
            logger.exception("error processing schedule=%s", schedule.schedule_id)
            return ScheduleOutcome(schedule.schedule_id, schedule.name, failed=1, status="error")

    def process_schedule(self, schedule, accounts, triggered_by=TRIGGER_SYSTEM, user_email=None, workers=None):
        workers = workers or self.max_workers
        outcome = ScheduleOutcome(schedule.schedule_id, schedule.name)
        if not schedule.resources:
            logger.info("schedule=%s has no resources, skipping", schedule.name)
            return outcome

        try:
            in_range = is_in_range(
                schedule.starttime,
                schedule.endtime,
                schedule.timezone,
                schedule.days,
                now=self.clock(),
            )
        except ConfigurationError as exc:
            logger.warning("schedule=%s skipped: %s", schedule.name, exc)
            outcome.status = "skipped"
            return outcome

        action = ACTION_START if in_range else ACTION_STOP
        execution_id = new_id()
        start_time = iso_timestamp()
        started_at = time.monotonic()
        logger.info(
            "schedule=%s id=%s resources=%d in_range=%s action=%s",
            schedule.name,
            schedule.schedule_id,
            len(schedule.resources),
            in_range,
            action,
        )

        accounts_by_id = {account.account_id: account for account in accounts if account.active}
        pairs = []
        results = []
        for account_id, regions in group_resources(schedule.resources).items():
            account = accounts_by_id.get(account_id)
            if account is None:
                message = f"Account {account_id} not found in active accounts"
                logger.warning("schedule=%s %s, failing its resources", schedule.name, message)
                self.audit.log_account_error(execution_id, schedule, account_id, None, message)
                for resources in regions.values():
                    results.extend(failed_result(r, action, message) for r in resources)
                continue
            for region, resources in regions.items():
                pairs.append((account, region, resources))

        pair_workers = share_workers(workers, len(pairs))
        for pair_results in run_concurrently(
            lambda pair: self._process_pair(schedule, action, execution_id, *pair, workers=pair_workers),
            pairs,
            workers,
        ):
            results.extend(pair_results)

        started, stopped, failed = _count(results)
        outcome.started, outcome.stopped, outcome.failed = started, stopped, failed
        outcome.status = _execution_status(started, stopped, failed)

        if started + stopped + failed == 0:
            logger.info("schedule=%s all resources in desired state, no execution recorded", schedule.name)
            return outcome

        metadata = empty_schedule_metadata()
        for result in results:
            metadata[result.kind.value].append(result.to_dict())

        record = ExecutionRecord(
            execution_id=execution_id,
            schedule_id=schedule.schedule_id,
            schedule_name=schedule.name,
            tenant_id=schedule.tenant_id,
            account_id=schedule.account_id or "system",
            triggered_by=triggered_by,
            status=_execution_status(started, stopped, failed),
            start_time=start_time,
            end_time=iso_timestamp(),
            duration=_elapsed_ms(started_at),
            resources_started=started,
            resources_stopped=stopped,
            resources_failed=failed,
            schedule_metadata=metadata,
            ttl=ttl_after_days(self.execution_ttl_days),
        )
        self.tracker.record_execution(record)
        self.audit.log_execution_summary(record, results, user_email)
        outcome.execution_id = execution_id

        logger.info(
            "schedule=%s execution=%s started=%d stopped=%d failed=%d",
            schedule.name,
            execution_id,
            started,
            stopped,
            failed,
        )
        return outcome

    def _process_pair(self, schedule, action, execution_id, account, region, resources, workers=None):
        try:
            credentials = self.broker.assume_role(
                account.role_arn,
                account.account_id,
                region,
                account.external_id,
            )
            context = self.context_factory(credentials, account_id=account.account_id)
        except CredentialError as exc:
            message = str(exc)
            logger.error(
                "schedule=%s account=%s region=%s credentials failed: %s",
                schedule.name,
                account.account_id,
                region,
                message,
            )
            self.audit.log_account_error(execution_id, schedule, account.account_id, region, message)
            return [failed_result(r, action, message) for r in resources]
        except Exception as exc:
            logger.exception("schedule=%s account=%s region=%s setup failed", schedule.name, account.account_id, region)
            return [failed_result(r, action, str(exc)) for r in resources]

        metadata = SchedulerMetadata(
            account_id=account.account_id,
            account_name=account.display_name,
            region=region,
            execution_id=execution_id,
            schedule_id=schedule.schedule_id,
            schedule_name=schedule.name,
        )
        return run_concurrently(
            lambda resource: self._reconcile_resource(schedule, resource, action, context, metadata),
            resources,
            workers or self.max_workers,
        )

    def _reconcile_resource(self, schedule, resource, action, context, metadata):
        reconciler = self.reconcilers.get(resource.kind)
        if reconciler is None:
            return failed_result(resource, action, f"No reconciler for {resource.kind.value}")

        entry = self._latest_state_entry(schedule, resource) if action == ACTION_START else None
        last_known_state = (entry or {}).get("state") or None
        last_action = (entry or {}).get("action")

        try:
            result = reconciler.reconcile(
                resource,
                schedule,
                action,
                context,
                metadata,
                last_known_state,
                last_action=last_action,
            )
        except Exception as exc:
            logger.exception("schedule=%s resource=%s reconcile failed", schedule.name, resource.arn)
            return failed_result(resource, action, str(exc))

        if result.changed and result.previous_state:
            self._remember_state(schedule, resource, result, metadata.execution_id)
        return result

    def _latest_state_entry(self, schedule, resource):
        try:
            return self.tracker.latest_state_entry(schedule.schedule_id, resource.arn, schedule.tenant_id)
        except Exception:
            logger.exception("schedule=%s resource=%s last known state lookup failed", schedule.name, resource.arn)
            return None

    def _remember_state(self, schedule, resource, result, execution_id):
        # the provider action already happened; a lost state entry is only logged
        try:
            self.tracker.save_last_known_state(
                schedule.schedule_id,
                resource.arn,
                schedule.tenant_id,
                resource.kind,
                result.previous_state,
                execution_id=execution_id,
                action=result.action,
            )
        except Exception:
            logger.exception("schedule=%s resource=%s saving last known state failed", schedule.name, resource.arn)

    def _result(self, execution_id, mode, started_at, outcomes, schedules_processed=None):
        started = sum(o.started for o in outcomes)
        stopped = sum(o.stopped for o in outcomes)
        failed = sum(o.failed for o in outcomes)
        return ScanResult(
            success=failed == 0,
            execution_id=execution_id,
            mode=mode,
            schedules_processed=len(outcomes) if schedules_processed is None else schedules_processed,
            resources_started=started,
            resources_stopped=stopped,
            resources_failed=failed,
            duration=_elapsed_ms(started_at),
            status=_scan_status(started, stopped, failed),
        )


def build_orchestrator(settings):
    return Orchestrator(
        store=MetadataStore.from_settings(settings),
        tracker=ExecutionTracker.from_settings(settings),
        audit=AuditLogger.from_settings(settings),
        broker=CredentialBroker.from_region(settings.region),
        reconcilers=default_reconcilers(settings),
        max_workers=settings.max_workers,
        execution_ttl_days=settings.execution_ttl_days,
    )
