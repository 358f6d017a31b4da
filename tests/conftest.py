"""Shared fixtures and in-memory fakes for scheduler tests."""

import threading
from datetime import datetime, timezone

import pytest

from cost_scheduler.audit import AuditLogger
from cost_scheduler.errors import CredentialError
from cost_scheduler.history import ExecutionTracker
from cost_scheduler.models import Account, Credentials, Schedule, ScheduleResource, ResourceKind
from cost_scheduler.orchestrator import Orchestrator
from cost_scheduler.reconcilers import default_reconcilers

# Wednesday 2024-01-17 10:00 in Asia/Kolkata
WEDNESDAY_10_IST = datetime(2024, 1, 17, 4, 30, tzinfo=timezone.utc)
# Wednesday 2024-01-17 20:00 in Asia/Kolkata
WEDNESDAY_20_IST = datetime(2024, 1, 17, 14, 30, tzinfo=timezone.utc)

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri"]


class FakeTable:
    """Enough of a DynamoDB Table for put_item and pk-equality queries."""

    def __init__(self):
        self.items = []
        self._lock = threading.Lock()

    def put_item(self, Item):
        with self._lock:
            self.items.append(Item)
        return {}

    def query(self, KeyConditionExpression, ScanIndexForward=True, Limit=None, **kwargs):
        key, value = KeyConditionExpression.get_expression()["values"]
        with self._lock:
            matched = [item for item in self.items if item.get(key.name) == value]
        matched.sort(key=lambda item: item.get("sk", ""), reverse=not ScanIndexForward)
        if Limit is not None:
            matched = matched[:Limit]
        return {"Items": matched}

    def by_type(self, item_type):
        return [item for item in self.items if item.get("type") == item_type]


class FakeStore:
    def __init__(self, schedules=(), accounts=()):
        self.schedules = list(schedules)
        self.accounts = list(accounts)

    def list_active_schedules(self):
        return [s for s in self.schedules if s.active]

    def list_active_accounts(self):
        return [a for a in self.accounts if a.active]

    def get_schedule(self, schedule_id, tenant_id=None):
        for schedule in self.schedules:
            if schedule.schedule_id == schedule_id:
                return schedule
        return None

    def find_schedule_by_name(self, name, tenant_id=None):
        for schedule in self.schedules:
            if schedule.name == name:
                return schedule
        return None


class FakeBroker:
    def __init__(self, fail_roles=()):
        self.fail_roles = set(fail_roles)
        self.calls = []

    def assume_role(self, role_arn, account_id, region, external_id=None):
        self.calls.append((role_arn, account_id, region, external_id))
        if role_arn in self.fail_roles:
            raise CredentialError(f"Failed to assume role {role_arn}: AccessDenied", account_id, region)
        return Credentials("ASIAEXAMPLE", "secret", "token", region)


class FakeEC2:
    """Instances transition immediately so repeated passes see the new state."""

    def __init__(self, states=None):
        self.states = dict(states or {})
        self.started = []
        self.stopped = []

    def describe_instances(self, InstanceIds):
        instances = [
            {"InstanceId": i, "InstanceType": "t3.micro", "State": {"Name": self.states[i]}}
            for i in InstanceIds
            if i in self.states
        ]
        return {"Reservations": [{"Instances": instances}] if instances else []}

    def start_instances(self, InstanceIds):
        changes = []
        for instance_id in InstanceIds:
            previous = self.states[instance_id]
            self.states[instance_id] = "running"
            self.started.append(instance_id)
            changes.append(
                {
                    "InstanceId": instance_id,
                    "PreviousState": {"Name": previous},
                    "CurrentState": {"Name": "pending"},
                }
            )
        return {"StartingInstances": changes}

    def stop_instances(self, InstanceIds):
        changes = []
        for instance_id in InstanceIds:
            previous = self.states[instance_id]
            self.states[instance_id] = "stopped"
            self.stopped.append(instance_id)
            changes.append(
                {
                    "InstanceId": instance_id,
                    "PreviousState": {"Name": previous},
                    "CurrentState": {"Name": "stopping"},
                }
            )
        return {"StoppingInstances": changes}


class FakeContext:
    def __init__(self, clients, region, account_id=None):
        self.clients = clients
        self.region = region
        self.account_id = account_id

    def client(self, service):
        return self.clients[service]


def make_resource(arn, kind=ResourceKind.COMPUTE_INSTANCE, resource_id=None, cluster_arn=None):
    return ScheduleResource(
        id=resource_id or arn.rsplit("/", 1)[-1],
        kind=kind,
        arn=arn,
        cluster_arn=cluster_arn,
    )


def make_schedule(resources=(), **overrides):
    values = {
        "schedule_id": "sched-1",
        "name": "office-hours",
        "starttime": "09:00:00",
        "endtime": "18:00:00",
        "timezone": "Asia/Kolkata",
        "days": list(WEEKDAYS),
        "tenant_id": "org-default",
        "account_id": "111111111111",
        "resources": list(resources),
    }
    values.update(overrides)
    return Schedule(**values)


def make_account(account_id, role_arn=None, active=True):
    return Account(
        account_id=account_id,
        role_arn=role_arn or f"arn:aws:iam::{account_id}:role/scheduler",
        regions=["ap-south-1"],
        active=active,
    )


def ec2_arn(instance_id, account_id="111111111111", region="ap-south-1"):
    return f"arn:aws:ec2:{region}:{account_id}:instance/{instance_id}"


@pytest.fixture
def history_table():
    return FakeTable()


@pytest.fixture
def audit_table():
    return FakeTable()


@pytest.fixture
def tracker(history_table):
    return ExecutionTracker(history_table)


@pytest.fixture
def audit(audit_table):
    return AuditLogger(audit_table)


@pytest.fixture
def ec2():
    return FakeEC2()


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def make_orchestrator(tracker, audit, broker, ec2):
    def _make(store, clock=WEDNESDAY_10_IST, clients=None, reconcilers=None):
        services = {"ec2": ec2}
        services.update(clients or {})
        return Orchestrator(
            store=store,
            tracker=tracker,
            audit=audit,
            broker=broker,
            reconcilers=reconcilers or default_reconcilers(),
            context_factory=lambda credentials, account_id=None: FakeContext(
                services, credentials.region, account_id
            ),
            clock=lambda: clock,
            max_workers=4,
        )

    return _make
