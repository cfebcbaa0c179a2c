"""Contact identity reconciliation: clusters of primary and secondary contacts."""

from .errors import IdentityError, InvalidRequest, InvariantViolation, NotFound, StorageFailure  # noqa: F401
from .models import Contact, ConsolidatedContact, LinkPrecedence  # noqa: F401
from .services import IdentityReconciler  # noqa: F401
