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

RUNNING_STATES = {"running", "pending"}
STOPPED_STATES = {"stopped", "stopping", "terminated", "shutting-down"}


def _describe_instance(ec2, instance_id):
    resp = ec2.describe_instances(InstanceIds=[instance_id])
    for reservation in resp.get("Reservations", []):
        for instance in reservation.get("Instances", []):
            return instance
    return None


def _transition_state(resp, key):
    for change in resp.get(key, []):
        return change.get("CurrentState", {}).get("Name")
    return None


class ComputeInstanceReconciler(ResourceReconciler):
    kind = ResourceKind.COMPUTE_INSTANCE

    def _reconcile(self, resource, resource_id, schedule, action, context, metadata, last_known_state):
        ec2 = context.client("ec2")
        instance = _describe_instance(ec2, resource_id)
        if instance is None:
            return self.result(resource, resource_id, action, STATUS_FAILED, error="Instance not found")

        state = instance.get("State", {}).get("Name")
        previous = {"instanceState": state, "instanceType": instance.get("InstanceType")}

        if action == ACTION_START:
            if state in RUNNING_STATES:
                logger.debug("ec2 instance=%s already %s", resource_id, state)
                return self.result(resource, resource_id, ACTION_SKIP, STATUS_SUCCESS, previous_state=previous)
            if state in ("terminated", "shutting-down"):
                return self.result(
                    resource,
                    resource_id,
                    action,
                    STATUS_FAILED,
                    previous_state=previous,
                    error=f"Instance is {state}",
                )
            resp = ec2.start_instances(InstanceIds=[resource_id])
            new_state = _transition_state(resp, "StartingInstances") or "pending"
        else:
            if state in STOPPED_STATES:
                logger.debug("ec2 instance=%s already %s", resource_id, state)
                return self.result(resource, resource_id, ACTION_SKIP, STATUS_SUCCESS, previous_state=previous)
            resp = ec2.stop_instances(InstanceIds=[resource_id])
            new_state = _transition_state(resp, "StoppingInstances") or "stopping"

        logger.info(
            "ec2 %s instance=%s account=%s region=%s state=%s->%s",
            action,
            resource_id,
            metadata.account_id,
            metadata.region,
            state,
            new_state,
        )
        return self.result(
            resource,
            resource_id,
            action,
            STATUS_SUCCESS,
            previous_state=previous,
            new_state={"instanceState": new_state},
        )
