import logging

from ..arn import parse_arn
from ..models import (
    ACTION_SKIP,
    ACTION_START,
    STATUS_FAILED,
    STATUS_SUCCESS,
    ResourceKind,
)
from .base import ResourceReconciler

logger = logging.getLogger(__name__)

RUNNING_COUNT = 1
STOPPED_COUNT = 0


def _parse_int(value):
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _cluster_for(resource, arn):
    if resource.cluster_arn:
        return resource.cluster_arn
    # service/<cluster>/<service>; older ARNs omit the cluster
    parts = arn.resource.split("/")
    if len(parts) >= 3:
        return parts[-2]
    return "default"


def _asg_sizes(group):
    return {
        "MinSize": _parse_int(group.get("MinSize")),
        "MaxSize": _parse_int(group.get("MaxSize")),
        "DesiredCapacity": _parse_int(group.get("DesiredCapacity")),
    }


def _asg_target(current, action):
    """Return the update for a capacity group, or None when it already matches."""
    if action == ACTION_START:
        if (current["DesiredCapacity"] or 0) >= RUNNING_COUNT:
            return None
        target = {
            "MinSize": max(current["MinSize"] or 0, RUNNING_COUNT),
            "DesiredCapacity": RUNNING_COUNT,
        }
        if (current["MaxSize"] or 0) < RUNNING_COUNT:
            target["MaxSize"] = RUNNING_COUNT
        return target

    if current["DesiredCapacity"] == STOPPED_COUNT and current["MinSize"] == STOPPED_COUNT:
        return None
    return {"MinSize": STOPPED_COUNT, "DesiredCapacity": STOPPED_COUNT}


def _capacity_group_names(ecs, cluster):
    resp = ecs.describe_clusters(clusters=[cluster])
    clusters = resp.get("clusters", [])
    if not clusters:
        return []
    providers = clusters[0].get("capacityProviders") or []
    if not providers:
        return []

    resp = ecs.describe_capacity_providers(capacityProviders=providers)
    names = []
    for provider in resp.get("capacityProviders", []):
        group_arn = (provider.get("autoScalingGroupProvider") or {}).get("autoScalingGroupArn")
        if group_arn:
            names.append(group_arn.split("/")[-1])
    return names


def _restore_count(last_known_state):
    if not last_known_state:
        return RUNNING_COUNT
    count = _parse_int(last_known_state.get("desiredCount"))
    if count is None or count < RUNNING_COUNT:
        return RUNNING_COUNT
    return count


class ContainerServiceReconciler(ResourceReconciler):
    """Scales an ECS service between zero and a running count.

    Auto Scaling groups backing the cluster's capacity providers are scaled
    in the same step, ahead of the service itself.
    """

    kind = ResourceKind.CONTAINER_SERVICE
    gate_on_last_known_state = False

    def _reconcile(self, resource, resource_id, schedule, action, context, metadata, last_known_state):
        arn = parse_arn(resource.arn)
        cluster = _cluster_for(resource, arn)
        ecs = context.client("ecs")

        resp = ecs.describe_services(cluster=cluster, services=[resource.arn])
        services = resp.get("services", [])
        if not services or services[0].get("status") == "INACTIVE":
            return self.result(resource, resource_id, action, STATUS_FAILED, error="Service not found")

        service = services[0]
        current = _parse_int(service.get("desiredCount")) or 0
        previous = {
            "desiredCount": current,
            "runningCount": _parse_int(service.get("runningCount")) or 0,
            "pendingCount": _parse_int(service.get("pendingCount")) or 0,
            "status": service.get("status"),
        }

        if action == ACTION_START:
            target = current if current >= RUNNING_COUNT else _restore_count(last_known_state)
        else:
            target = STOPPED_COUNT

        groups = self._reconcile_capacity_groups(context, ecs, cluster, action, metadata)

        if target == current:
            if not groups:
                logger.debug("ecs service=%s already at desired count=%d", resource_id, current)
                return self.result(resource, resource_id, ACTION_SKIP, STATUS_SUCCESS, previous_state=previous)
            return self.result(
                resource,
                resource_id,
                action,
                STATUS_SUCCESS,
                previous_state=previous,
                new_state={"desiredCount": current, "capacityGroups": groups},
            )

        ecs.update_service(
            cluster=cluster,
            service=service.get("serviceName") or resource_id,
            desiredCount=target,
        )
        logger.info(
            "ecs %s service=%s cluster=%s account=%s region=%s desired_count=%d->%d",
            action,
            resource_id,
            cluster,
            metadata.account_id,
            metadata.region,
            current,
            target,
        )

        new_state = {"desiredCount": target}
        if groups:
            new_state["capacityGroups"] = groups
        return self.result(
            resource,
            resource_id,
            action,
            STATUS_SUCCESS,
            previous_state=previous,
            new_state=new_state,
        )

    def _reconcile_capacity_groups(self, context, ecs, cluster, action, metadata):
        names = _capacity_group_names(ecs, cluster)
        if not names:
            return []

        asg = context.client("autoscaling")
        resp = asg.describe_auto_scaling_groups(AutoScalingGroupNames=names)
        changes = []
        for group in resp.get("AutoScalingGroups", []):
            name = group.get("AutoScalingGroupName")
            current = _asg_sizes(group)
            target = _asg_target(current, action)
            if not name or target is None:
                continue

            asg.update_auto_scaling_group(AutoScalingGroupName=name, **target)
            logger.info(
                "asg %s group=%s cluster=%s account=%s region=%s min=%s desired=%s",
                action,
                name,
                cluster,
                metadata.account_id,
                metadata.region,
                target["MinSize"],
                target["DesiredCapacity"],
            )
            changes.append({"name": name, "previous": current, "target": target})
        return changes
