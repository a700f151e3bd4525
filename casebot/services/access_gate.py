# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Access gate — caller classification and tenant allow-list enforcement."""
from typing import Iterable, Optional

from casebot.schemas import AccessClassification

TENANT_SEPARATOR = "_"
FEDERATED_PREFIX = "W"

MISSING_CONTEXT_MESSAGE = "⚠️ Invalid command context. Missing user or team information."
EXTERNAL_USER_MESSAGE = (
    "⚠️ This command is not available for external users. "
    "Please contact a member of this workspace for assistance."
)
TENANT_NOT_ALLOWED_MESSAGE = "⚠️ This command is not available in this workspace."


def is_external_identity(identity: str) -> bool:
    """Cross-workspace ids look like ``U123_T456``; federated-workspace ids start with ``W``."""
    identity = identity or ""
    return TENANT_SEPARATOR in identity or identity.startswith(FEDERATED_PREFIX)


class AccessGate:
    """Deterministic, side-effect-free admission decision.

    Audit logging of a blocked decision is the caller's responsibility.
    """

    def __init__(self, allowed_tenants: Optional[Iterable[str]] = None) -> None:
        self._allowed = frozenset(t.strip() for t in (allowed_tenants or ()) if t and t.strip())

    @property
    def allowed_tenants(self) -> frozenset:
        return self._allowed

    def classify(self, identity: str, tenant: str,
                 federation_id: Optional[str] = None) -> AccessClassification:
        # An enterprise-grid federation id alone does not mark a caller as external;
        # only the identity token grammar does.
        return AccessClassification(is_external=is_external_identity(identity))

    def decide(self, identity: str, tenant: str,
               federation_id: Optional[str] = None) -> Optional[str]:
        """Return a user-safe denial message, or None when the caller is allowed."""
        if not identity or not tenant:
            return MISSING_CONTEXT_MESSAGE
        if self.classify(identity, tenant, federation_id).is_external:
            return EXTERNAL_USER_MESSAGE
        if self._allowed and tenant not in self._allowed:
            return TENANT_NOT_ALLOWED_MESSAGE
        return None
