import logging

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from .dynamo import ThreadLocalTable
from .errors import ConfigurationError
from .models import Account, Schedule

logger = logging.getLogger(__name__)

_STORE_ERRORS = (ClientError, BotoCoreError)


def query_all(table, **kwargs):
    items = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


class MetadataStore:
    """Read access to schedules and accounts in the app table.

    Active items are read through the status index (GSI3). When that query
    fails the type index (GSI1) is queried and filtered on ``active``; if both
    fail the listing is empty rather than an error.
    """

    def __init__(self, table, default_tenant_id="org-default"):
        self._table = table
        self.default_tenant_id = default_tenant_id

    @classmethod
    def from_settings(cls, settings):
        return cls(ThreadLocalTable(settings.app_table_name, settings.region), settings.default_tenant_id)

    def _list_active(self, item_type, type_key):
        try:
            items = query_all(
                self._table,
                IndexName="GSI3",
                KeyConditionExpression=Key("gsi3pk").eq("STATUS#active"),
                FilterExpression=Attr("type").eq(item_type),
            )
            logger.debug("fetched %d active %s items via GSI3", len(items), item_type)
            return items
        except _STORE_ERRORS:
            logger.exception("active %s query via GSI3 failed, falling back to GSI1", item_type)

        try:
            items = query_all(
                self._table,
                IndexName="GSI1",
                KeyConditionExpression=Key("gsi1pk").eq(type_key),
                FilterExpression=Attr("active").eq(True),
            )
            logger.warning("fetched %d active %s items via GSI1 fallback", len(items), item_type)
            return items
        except _STORE_ERRORS:
            logger.exception("fallback %s query via GSI1 failed", item_type)
            return []

    def _to_schedule(self, item):
        try:
            return Schedule.from_item(item, self.default_tenant_id)
        except ConfigurationError as exc:
            logger.warning("skipping schedule item: %s", exc)
            return None

    def list_active_schedules(self):
        schedules = []
        for item in self._list_active("schedule", "TYPE#SCHEDULE"):
            schedule = self._to_schedule(item)
            if schedule is not None and schedule.active:
                schedules.append(schedule)
        return schedules

    def list_active_accounts(self):
        accounts = []
        for item in self._list_active("account", "TYPE#ACCOUNT"):
            try:
                account = Account.from_item(item)
            except ConfigurationError as exc:
                logger.warning("skipping account item: %s", exc)
                continue
            if account.active:
                accounts.append(account)
        return accounts

    def get_schedule(self, schedule_id, tenant_id=None):
        tenant_id = tenant_id or self.default_tenant_id
        for status in ("active", "inactive"):
            try:
                items = query_all(
                    self._table,
                    IndexName="GSI3",
                    KeyConditionExpression=(
                        Key("gsi3pk").eq(f"STATUS#{status}")
                        & Key("gsi3sk").eq(f"TENANT#{tenant_id}#SCHEDULE#{schedule_id}")
                    ),
                )
            except _STORE_ERRORS:
                logger.exception("schedule lookup failed status=%s schedule=%s tenant=%s", status, schedule_id, tenant_id)
                continue
            if items:
                return self._to_schedule(items[0])

        logger.warning("schedule not found schedule=%s tenant=%s", schedule_id, tenant_id)
        return None

    def find_schedule_by_name(self, name, tenant_id=None):
        tenant_id = tenant_id or self.default_tenant_id
        try:
            items = query_all(
                self._table,
                IndexName="GSI1",
                KeyConditionExpression=Key("gsi1pk").eq("TYPE#SCHEDULE"),
                FilterExpression=Attr("name").eq(name),
            )
        except _STORE_ERRORS:
            logger.exception("schedule lookup by name failed name=%s tenant=%s", name, tenant_id)
            return None

        for item in items:
            if (item.get("tenantId") or self.default_tenant_id) == tenant_id:
                return self._to_schedule(item)
        return None
