import logging

from boto3.dynamodb.conditions import Key

from .dynamo import ThreadLocalTable
from .models import iso_timestamp, ttl_after_days

logger = logging.getLogger(__name__)


def state_key(tenant_id, schedule_id, resource_arn):
    return f"STATE#{tenant_id}#{schedule_id}#{resource_arn}"


class ExecutionTracker:
    """Execution records and last-known resource state.

    Nothing here raises: losing history must not undo an action that already
    happened on the resource.
    """

    def __init__(self, table, state_ttl_days=30):
        self._table = table
        self.state_ttl_days = state_ttl_days

    @classmethod
    def from_settings(cls, settings):
        return cls(
            ThreadLocalTable(settings.history_table_name, settings.region),
            settings.execution_ttl_days,
        )

    def record_execution(self, record):
        try:
            self._table.put_item(Item=record.to_item())
        except Exception:
            logger.exception("failed to write execution record execution=%s schedule=%s", record.execution_id, record.schedule_id)
            return False
        logger.info(
            "execution recorded execution=%s schedule=%s status=%s",
            record.execution_id,
            record.schedule_id,
            record.status,
        )
        return True

    def save_last_known_state(self, schedule_id, resource_arn, tenant_id, kind, state, execution_id=None, action=None):
        timestamp = iso_timestamp()
        item = {
            "pk": state_key(tenant_id, schedule_id, resource_arn),
            "sk": timestamp,
            "type": "last_known_state",
            "scheduleId": schedule_id,
            "resourceArn": resource_arn,
            "tenantId": tenant_id,
            "resourceType": kind.value,
            "state": state,
            "timestamp": timestamp,
            "ttl": ttl_after_days(self.state_ttl_days),
        }
        if execution_id:
            item["executionId"] = execution_id
        if action:
            item["action"] = action
        try:
            self._table.put_item(Item=item)
        except Exception:
            logger.exception("failed to save last known state schedule=%s arn=%s", schedule_id, resource_arn)
            return False
        return True

    def latest_state_entry(self, schedule_id, resource_arn, tenant_id):
        """Newest last-known-state item for the resource, or None."""
        try:
            resp = self._table.query(
                KeyConditionExpression=Key("pk").eq(state_key(tenant_id, schedule_id, resource_arn)),
                ScanIndexForward=False,
                Limit=1,
            )
            items = resp.get("Items", [])
        except Exception:
            logger.exception("failed to read last known state schedule=%s arn=%s", schedule_id, resource_arn)
            return None
        return items[0] if items else None

    def get_last_known_state(self, schedule_id, resource_arn, tenant_id):
        entry = self.latest_state_entry(schedule_id, resource_arn, tenant_id)
        if not entry:
            return None
        return entry.get("state") or None
