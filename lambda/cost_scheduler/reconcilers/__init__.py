from ..models import ResourceKind
from .base import ResourceReconciler
from .compute import ComputeInstanceReconciler
from .container import ContainerServiceReconciler
from .database import ManagedDatabaseReconciler

__all__ = [
    "ComputeInstanceReconciler",
    "ContainerServiceReconciler",
    "ManagedDatabaseReconciler",
    "ResourceReconciler",
    "default_reconcilers",
]


def default_reconcilers(settings=None):
    require = bool(settings and settings.require_last_known_state)
    return {
        ResourceKind.COMPUTE_INSTANCE: ComputeInstanceReconciler(require),
        ResourceKind.MANAGED_DATABASE: ManagedDatabaseReconciler(require),
        ResourceKind.CONTAINER_SERVICE: ContainerServiceReconciler(require),
    }
