import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ACTION_START = "start"
ACTION_STOP = "stop"
ACTION_SKIP = "skip"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

TRIGGER_SYSTEM = "system"
TRIGGER_WEB_UI = "web-ui"


class ResourceKind(Enum):
    COMPUTE_INSTANCE = "compute-instance"
    MANAGED_DATABASE = "managed-database"
    CONTAINER_SERVICE = "container-service"

    @classmethod
    def parse(cls, value):
        if value is None:
            return None
        text = str(value).strip().lower()
        return _KIND_ALIASES.get(text)


_KIND_ALIASES = {
    "compute-instance": ResourceKind.COMPUTE_INSTANCE,
    "ec2": ResourceKind.COMPUTE_INSTANCE,
    "managed-database": ResourceKind.MANAGED_DATABASE,
    "rds": ResourceKind.MANAGED_DATABASE,
    "container-service": ResourceKind.CONTAINER_SERVICE,
    "ecs": ResourceKind.CONTAINER_SERVICE,
}


def utc_now():
    return datetime.now(timezone.utc)


def iso_timestamp(value=None):
    value = value or utc_now()
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def ttl_after_days(days, now=None):
    base = now if now is not None else time.time()
    return int(base) + int(days) * 24 * 60 * 60


def new_id():
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ScheduleResource:
    id: str
    kind: ResourceKind
    arn: str
    name: Optional[str] = None
    cluster_arn: Optional[str] = None

    @classmethod
    def from_item(cls, item):
        kind = ResourceKind.parse(item.get("type"))
        arn = (item.get("arn") or "").strip()
        if kind is None:
            raise ConfigurationError(f"Unsupported resource type: {item.get('type')}")
        if not arn:
            raise ConfigurationError(f"Resource {item.get('id')} has no ARN")
        return cls(
            id=str(item.get("id") or arn),
            kind=kind,
            arn=arn,
            name=item.get("name"),
            cluster_arn=item.get("clusterArn"),
        )


@dataclass(frozen=True)
class Schedule:
    schedule_id: str
    name: str
    starttime: str
    endtime: str
    timezone: str
    days: List[str]
    tenant_id: str
    active: bool = True
    account_id: Optional[str] = None
    description: Optional[str] = None
    resources: List[ScheduleResource] = field(default_factory=list)

    @classmethod
    def from_item(cls, item, default_tenant_id="org-default"):
        """Build a schedule from a metadata-store item.

        Items missing the window fields raise ConfigurationError; individual
        resource entries that cannot be used are dropped with a warning so one
        bad entry does not disable the rest of the schedule.
        """
        schedule_id = item.get("scheduleId") or item.get("id")
        if not schedule_id:
            raise ConfigurationError("Schedule item has no scheduleId")
        for key in ("starttime", "endtime", "timezone", "days"):
            if not item.get(key):
                raise ConfigurationError(f"Schedule {schedule_id} missing required field: {key}")

        days = item["days"]
        if isinstance(days, str):
            days = [part.strip() for part in days.split(",") if part.strip()]
        else:
            days = [str(day) for day in days]

        resources = []
        for entry in item.get("resources") or []:
            try:
                resources.append(ScheduleResource.from_item(entry))
            except ConfigurationError as exc:
                logger.warning("schedule=%s skipping resource: %s", schedule_id, exc)

        return cls(
            schedule_id=str(schedule_id),
            name=str(item.get("name") or schedule_id),
            starttime=str(item["starttime"]),
            endtime=str(item["endtime"]),
            timezone=str(item["timezone"]),
            days=days,
            tenant_id=str(item.get("tenantId") or default_tenant_id),
            active=_as_bool(item.get("active", True)),
            account_id=item.get("accountId"),
            description=item.get("description"),
            resources=resources,
        )


@dataclass(frozen=True)
class Account:
    account_id: str
    role_arn: str
    regions: List[str]
    active: bool = True
    external_id: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self):
        return self.name or self.account_id

    @classmethod
    def from_item(cls, item):
        account_id = item.get("accountId")
        role_arn = item.get("roleArn")
        if not account_id or not role_arn:
            raise ConfigurationError("Account item requires accountId and roleArn")
        return cls(
            account_id=str(account_id),
            role_arn=str(role_arn),
            regions=normalize_regions(item.get("regions")),
            active=_as_bool(item.get("active", True)),
            external_id=item.get("externalId") or None,
            name=item.get("accountName") or item.get("name"),
        )


def normalize_regions(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    return bool(value)


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str
    session_token: str
    region: str
    expiration: Optional[datetime] = None


@dataclass(frozen=True)
class SchedulerMetadata:
    account_id: str
    account_name: str
    region: str
    execution_id: str
    schedule_id: str
    schedule_name: str


@dataclass
class ResourceExecutionResult:
    resource_id: str
    arn: str
    kind: ResourceKind
    action: str
    status: str
    previous_state: Optional[Dict[str, Any]] = None
    new_state: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    cluster_arn: Optional[str] = None

    @property
    def changed(self):
        return self.status == STATUS_SUCCESS and self.action in (ACTION_START, ACTION_STOP)

    def to_dict(self):
        data = {
            "resourceId": self.resource_id,
            "arn": self.arn,
            "action": self.action,
            "status": self.status,
        }
        if self.previous_state is not None:
            data["previousState"] = self.previous_state
        if self.new_state is not None:
            data["newState"] = self.new_state
        if self.error:
            data["error"] = self.error
        if self.cluster_arn:
            data["clusterArn"] = self.cluster_arn
        return data


def empty_schedule_metadata():
    return {kind.value: [] for kind in ResourceKind}


@dataclass
class ExecutionRecord:
    execution_id: str
    schedule_id: str
    schedule_name: str
    tenant_id: str
    account_id: str
    triggered_by: str
    status: str
    start_time: str
    end_time: str
    duration: int
    resources_started: int
    resources_stopped: int
    resources_failed: int
    schedule_metadata: Dict[str, List[Dict[str, Any]]]
    ttl: int

    def to_item(self):
        return {
            "pk": f"EXEC#{self.execution_id}",
            "sk": f"SCHEDULE#{self.schedule_id}",
            "gsi1pk": "TYPE#EXECUTION",
            "gsi1sk": self.start_time,
            "gsi2pk": f"TENANT#{self.tenant_id}#SCHEDULE#{self.schedule_id}",
            "gsi2sk": self.start_time,
            "type": "execution",
            "executionId": self.execution_id,
            "scheduleId": self.schedule_id,
            "scheduleName": self.schedule_name,
            "tenantId": self.tenant_id,
            "accountId": self.account_id,
            "triggeredBy": self.triggered_by,
            "status": self.status,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "resourcesStarted": self.resources_started,
            "resourcesStopped": self.resources_stopped,
            "resourcesFailed": self.resources_failed,
            "schedule_metadata": self.schedule_metadata,
            "ttl": self.ttl,
        }


@dataclass
class AuditEvent:
    event_type: str
    action: str
    resource_type: str
    resource_id: str
    status: str
    details: str
    user: str = "system"
    user_type: str = "system"
    severity: str = "info"
    metadata: Dict[str, Any] = field(default_factory=dict)
    account_id: Optional[str] = None
    region: Optional[str] = None
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=iso_timestamp)

    def to_item(self, ttl):
        item = {
            "pk": f"LOG#{self.id}",
            "sk": self.timestamp,
            "gsi1pk": "TYPE#LOG",
            "gsi1sk": self.timestamp,
            "gsi2pk": f"USER#{self.user}",
            "gsi2sk": self.timestamp,
            "ttl": ttl,
            "id": self.id,
            "type": "audit_log",
            "timestamp": self.timestamp,
            "eventType": self.event_type,
            "action": self.action,
            "user": self.user,
            "userType": self.user_type,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "status": self.status,
            "details": self.details,
            "severity": self.severity,
            "metadata": self.metadata,
        }
        if self.account_id:
            item["accountId"] = self.account_id
        if self.region:
            item["region"] = self.region
        return item


@dataclass
class ScheduleOutcome:
    schedule_id: str
    schedule_name: str
    started: int = 0
    stopped: int = 0
    failed: int = 0
    status: str = STATUS_SUCCESS
    execution_id: Optional[str] = None

    def to_dict(self):
        return {
            "scheduleId": self.schedule_id,
            "scheduleName": self.schedule_name,
            "started": self.started,
            "stopped": self.stopped,
            "failed": self.failed,
            "status": self.status,
        }


@dataclass
class ScanResult:
    success: bool
    execution_id: str
    mode: str
    schedules_processed: int
    resources_started: int
    resources_stopped: int
    resources_failed: int
    duration: int
    status: str
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        data = {
            "success": self.success,
            "executionId": self.execution_id,
            "mode": self.mode,
            "status": self.status,
            "schedulesProcessed": self.schedules_processed,
            "resourcesStarted": self.resources_started,
            "resourcesStopped": self.resources_stopped,
            "resourcesFailed": self.resources_failed,
            "duration": self.duration,
        }
        if self.errors:
            data["errors"] = list(self.errors)
        return data
