import logging

from botocore.exceptions import BotoCoreError, ClientError

from ..arn import parse_arn
from ..errors import ConfigurationError
from ..models import (
    ACTION_SKIP,
    ACTION_START,
    ACTION_STOP,
    STATUS_FAILED,
    STATUS_SUCCESS,
    ResourceExecutionResult,
)

logger = logging.getLogger(__name__)


def error_message(exc):
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return f"{error.get('Code', 'Unknown')}: {error.get('Message', str(exc))}"
    return str(exc)


class ResourceReconciler:
    """Reads the current state of one resource and corrects it if needed.

    Subclasses implement ``_reconcile`` and return a result; provider errors
    raised from it are reported as a failed result for that resource only.
    """

    kind = None
    gate_on_last_known_state = True

    def __init__(self, require_last_known_state=False):
        self.require_last_known_state = require_last_known_state

    def resource_id(self, resource):
        try:
            return parse_arn(resource.arn).resource_id or resource.id
        except ConfigurationError:
            return resource.id

    def reconcile(self, resource, schedule, action, context, metadata, last_known_state=None, last_action=None):
        resource_id = self.resource_id(resource)

        if action == ACTION_START and last_known_state:
            logger.debug(
                "schedule=%s resource=%s last_known_state=%s",
                schedule.name,
                resource_id,
                last_known_state,
            )
        if (
            action == ACTION_START
            and self.require_last_known_state
            and self.gate_on_last_known_state
            and last_action != ACTION_STOP
        ):
            logger.info(
                "schedule=%s resource=%s skipped start: last scheduler action=%s, not a stop",
                schedule.name,
                resource_id,
                last_action,
            )
            return self.result(resource, resource_id, ACTION_SKIP, STATUS_SUCCESS)

        try:
            return self._reconcile(resource, resource_id, schedule, action, context, metadata, last_known_state)
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "schedule=%s kind=%s resource=%s action=%s account=%s region=%s error=%s",
                schedule.name,
                self.kind.value,
                resource_id,
                action,
                metadata.account_id,
                metadata.region,
                error_message(exc),
            )
            return self.result(resource, resource_id, action, STATUS_FAILED, error=error_message(exc))

    def _reconcile(self, resource, resource_id, schedule, action, context, metadata, last_known_state):
        raise NotImplementedError

    def result(self, resource, resource_id, action, status, previous_state=None, new_state=None, error=None):
        return ResourceExecutionResult(
            resource_id=resource_id,
            arn=resource.arn,
            kind=self.kind,
            action=action,
            status=status,
            previous_state=previous_state,
            new_state=new_state,
            error=error,
            cluster_arn=resource.cluster_arn,
        )
