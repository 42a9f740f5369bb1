from spine.core.errors import SpineError
from spine.core.models import PackageLink, PathKey, SyncReport
from spine.core.prober import is_linked
from spine.core.reconcile import reconcile, restore, verify
from spine.core.registry import Registry

__all__ = [
    "SpineError",
    "PackageLink",
    "PathKey",
    "SyncReport",
    "is_linked",
    "reconcile",
    "restore",
    "verify",
    "Registry",
]
