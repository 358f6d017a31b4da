import logging

from ..models import (
    ACTION_SKIP,
    ACTION_START,
    STATUS_FAILED,
    STATUS_SUCCESS,
    ResourceKind,
)
from .base import ResourceReconciler

logger = logging.getLogger(__name__)

# start/stop are asynchronous; an accepted request is reported as success
AVAILABLE_STATES = {"available", "starting"}


class ManagedDatabaseReconciler(ResourceReconciler):
    kind = ResourceKind.MANAGED_DATABASE

    def _reconcile(self, resource, resource_id, schedule, action, context, metadata, last_known_state):
        rds = context.client("rds")
        resp = rds.describe_db_instances(DBInstanceIdentifier=resource_id)
        instances = resp.get("DBInstances", [])
        if not instances:
            return self.result(resource, resource_id, action, STATUS_FAILED, error="DB instance not found")

        instance = instances[0]
        status = instance.get("DBInstanceStatus")
        previous = {"dbInstanceStatus": status, "dbInstanceClass": instance.get("DBInstanceClass")}

        cluster = instance.get("DBClusterIdentifier")
        if cluster:
            logger.warning(
                "schedule=%s rds instance=%s belongs to cluster=%s, skipping",
                schedule.name,
                resource_id,
                cluster,
            )
            return self.result(resource, resource_id, ACTION_SKIP, STATUS_SUCCESS, previous_state=previous)

        if action == ACTION_START:
            if status in AVAILABLE_STATES:
                logger.debug("rds instance=%s already %s", resource_id, status)
                return self.result(resource, resource_id, ACTION_SKIP, STATUS_SUCCESS, previous_state=previous)
            resp = rds.start_db_instance(DBInstanceIdentifier=resource_id)
            new_status = resp.get("DBInstance", {}).get("DBInstanceStatus") or "starting"
        else:
            if status != "available":
                logger.debug("rds instance=%s status=%s, nothing to stop", resource_id, status)
                return self.result(resource, resource_id, ACTION_SKIP, STATUS_SUCCESS, previous_state=previous)
            resp = rds.stop_db_instance(DBInstanceIdentifier=resource_id)
            new_status = resp.get("DBInstance", {}).get("DBInstanceStatus") or "stopping"

        logger.info(
            "rds %s instance=%s account=%s region=%s status=%s->%s",
            action,
            resource_id,
            metadata.account_id,
            metadata.region,
            status,
            new_status,
        )
        return self.result(
            resource,
            resource_id,
            action,
            STATUS_SUCCESS,
            previous_state=previous,
            new_state={"dbInstanceStatus": new_status},
        )
