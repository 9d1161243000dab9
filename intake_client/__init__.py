"""
Client de session (asynchrone) pour le service de dépôt de documents:
sélection des fichiers -> calcul du prix -> commande passerelle -> checkout -> vérification -> upload.
"""

from .api import ApiService
from .staging import StagedFile, FileStaging
from .order_state import OrderState, OrderSummary
from .gateway import (
    CheckoutHandle,
    CheckoutLauncher,
    CustomerContact,
    PaymentCancelled,
    PaymentFailed,
    PaymentGatewayAdapter,
    PaymentOrder,
    PaymentResult,
    PaymentSuccess,
)
from .uploader import UploadCoordinator, UploadMetadata, UploadResult
from .session import (
    CheckoutOutcome,
    CompletedOrder,
    OrderSession,
    SessionContext,
    SessionEvent,
    SessionState,
    SessionStatus,
    Stage,
    transition,
)

__all__ = [
    # http
    "ApiService",
    # staging / état de commande
    "StagedFile",
    "FileStaging",
    "OrderState",
    "OrderSummary",
    # passerelle
    "CheckoutHandle",
    "CheckoutLauncher",
    "CustomerContact",
    "PaymentCancelled",
    "PaymentFailed",
    "PaymentGatewayAdapter",
    "PaymentOrder",
    "PaymentResult",
    "PaymentSuccess",
    # upload
    "UploadCoordinator",
    "UploadMetadata",
    "UploadResult",
    # session
    "CheckoutOutcome",
    "CompletedOrder",
    "OrderSession",
    "SessionContext",
    "SessionEvent",
    "SessionState",
    "SessionStatus",
    "Stage",
    "transition",
]
