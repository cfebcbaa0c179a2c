from .matching import find_candidates  # noqa: F401
from .projection import project_cluster  # noqa: F401
from .reconciler import IdentifyResult, IdentityReconciler  # noqa: F401
from .resolver import ClusterResolver, ReconcileAction, Resolution  # noqa: F401
