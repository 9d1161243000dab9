"""
OrderSession: orchestration d'une commande côté client.

    EMPTY -> ITEMS_STAGED -> CALCULATED -> PAYMENT_INITIATED -> PAYMENT_AWAITING
          -> PAYMENT_VERIFIED -> FILES_UPLOADING -> COMPLETED
    FAILED{stage, reason} depuis PAYMENT_INITIATED et au-delà, CANCELLED depuis PAYMENT_AWAITING.
    FAILED{confirmation}: paiement capturé mais vérification serveur injoignable; retry rejoue
    seulement la vérification du même paiement (aucune nouvelle commande).

L'état est une valeur immuable (SessionState); toutes les transitions passent par
`transition()`, qui lève InvalidTransition pour tout mouvement non prévu par la table.
Le contexte (fichiers, calcul, commande en cours, paiement vérifié) appartient à la session
et est libéré par close().
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from backend.errors import (
    GatewayError,
    IntakeError,
    InvalidTransition,
    UserCancelled,
    ValidationError,
    VerificationError,
)
from backend.pricing import OrderCalculation, PricingConfig
from backend.uploads.validation import validate_batch
from . import config
from .api import ApiService
from .gateway import (
    CheckoutLauncher,
    CustomerContact,
    PaymentCancelled,
    PaymentFailed,
    PaymentGatewayAdapter,
    PaymentOrder,
    PaymentSuccess,
)
from .order_state import OrderState
from .staging import FileStaging, StagedFile
from .uploader import ProgressCallback, UploadCoordinator, UploadMetadata, UploadResult

logger = logging.getLogger(__name__)

VERIFICATION_FAILED_REASON = "verification failed"


class SessionStatus(str, Enum):
    EMPTY = "empty"
    ITEMS_STAGED = "items_staged"
    CALCULATED = "calculated"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_AWAITING = "payment_awaiting"
    PAYMENT_VERIFIED = "payment_verified"
    FILES_UPLOADING = "files_uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Stage(str, Enum):
    PAYMENT = "payment"
    VERIFICATION = "verification"
    CONFIRMATION = "confirmation"
    UPLOAD = "upload"


class SessionEvent(str, Enum):
    ITEMS_STAGED = "items_staged"
    ITEMS_CLEARED = "items_cleared"
    CALCULATED = "calculated"
    PAYMENT_INITIATED = "payment_initiated"
    ORDER_CREATED = "order_created"
    PAYMENT_VERIFIED = "payment_verified"
    VERIFICATION_FAILED = "verification_failed"
    CONFIRMATION_FAILED = "confirmation_failed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_CANCELLED = "payment_cancelled"
    UPLOAD_STARTED = "upload_started"
    UPLOAD_COMPLETED = "upload_completed"
    UPLOAD_FAILED = "upload_failed"
    RETRY = "retry"
    RESET = "reset"


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus = SessionStatus.EMPTY
    failed_stage: Optional[Stage] = None
    reason: Optional[str] = None

    @property
    def payment_in_flight(self) -> bool:
        return self.status in (SessionStatus.PAYMENT_INITIATED, SessionStatus.PAYMENT_AWAITING)


S = SessionStatus
E = SessionEvent

# états où la sélection de fichiers peut encore changer (aucun paiement engagé)
_EDITABLE: FrozenSet[SessionStatus] = frozenset({S.EMPTY, S.ITEMS_STAGED, S.CALCULATED, S.CANCELLED})
_IN_FLIGHT: FrozenSet[SessionStatus] = frozenset({S.PAYMENT_INITIATED, S.PAYMENT_AWAITING, S.FILES_UPLOADING})

_TABLE: Dict[Tuple[SessionStatus, SessionEvent], SessionStatus] = {
    (S.CALCULATED, E.PAYMENT_INITIATED): S.PAYMENT_INITIATED,
    (S.PAYMENT_INITIATED, E.ORDER_CREATED): S.PAYMENT_AWAITING,
    (S.PAYMENT_AWAITING, E.PAYMENT_VERIFIED): S.PAYMENT_VERIFIED,
    (S.PAYMENT_AWAITING, E.PAYMENT_CANCELLED): S.CANCELLED,
    (S.PAYMENT_VERIFIED, E.UPLOAD_STARTED): S.FILES_UPLOADING,
    (S.FILES_UPLOADING, E.UPLOAD_COMPLETED): S.COMPLETED,
    (S.ITEMS_STAGED, E.CALCULATED): S.CALCULATED,
    (S.CALCULATED, E.CALCULATED): S.CALCULATED,
    (S.CANCELLED, E.RETRY): S.CALCULATED,
}

_FAILURES: Dict[SessionEvent, Tuple[FrozenSet[SessionStatus], Stage]] = {
    E.PAYMENT_FAILED: (frozenset({S.PAYMENT_INITIATED, S.PAYMENT_AWAITING}), Stage.PAYMENT),
    E.VERIFICATION_FAILED: (frozenset({S.PAYMENT_AWAITING}), Stage.VERIFICATION),
    E.CONFIRMATION_FAILED: (frozenset({S.PAYMENT_AWAITING}), Stage.CONFIRMATION),
    E.UPLOAD_FAILED: (frozenset({S.FILES_UPLOADING}), Stage.UPLOAD),
}


def _editable(state: SessionState) -> bool:
    if state.status is S.FAILED:
        return state.failed_stage in (Stage.PAYMENT, Stage.VERIFICATION)
    return state.status in _EDITABLE


def transition(state: SessionState, event: SessionEvent, reason: Optional[str] = None) -> SessionState:
    """Fonction de transition unique; InvalidTransition si (état, événement) n'est pas permis."""
    if event in _FAILURES:
        sources, stage = _FAILURES[event]
        if state.status in sources:
            default = VERIFICATION_FAILED_REASON if stage is Stage.VERIFICATION else f"{stage.value} failed"
            return SessionState(S.FAILED, stage, reason or default)
    elif event is E.ITEMS_STAGED and _editable(state):
        return SessionState(S.ITEMS_STAGED)
    elif event is E.ITEMS_CLEARED and _editable(state):
        return SessionState(S.EMPTY)
    elif event is E.RESET and state.status not in _IN_FLIGHT:
        return SessionState(S.EMPTY)
    elif event is E.RETRY and state.status is S.FAILED:
        if state.failed_stage is Stage.UPLOAD:
            return SessionState(S.PAYMENT_VERIFIED)
        if state.failed_stage is Stage.CONFIRMATION:
            return SessionState(S.PAYMENT_AWAITING)
        return SessionState(S.CALCULATED)
    else:
        target = _TABLE.get((state.status, event))
        if target is not None:
            return SessionState(target)
    raise InvalidTransition(f"Cannot apply '{event.value}' in state '{state.status.value}'")


@dataclass(frozen=True)
class CompletedOrder:
    payment_id: str
    gateway_order_id: str
    amount: int
    currency: str
    upload_id: str
    total_documents: int
    completed_at: str


@dataclass(frozen=True)
class CheckoutOutcome:
    state: SessionState
    completed: Optional[CompletedOrder] = None
    error: Optional[IntakeError] = None


@dataclass
class SessionContext:
    """Ressources d'une session: créées au démarrage, libérées par close()."""
    api: ApiService
    adapter: PaymentGatewayAdapter
    uploader: UploadCoordinator
    staging: FileStaging = field(default_factory=FileStaging)
    order_state: OrderState = field(default_factory=OrderState)
    payment_order: Optional[PaymentOrder] = None
    # issue du checkout reçue mais pas encore confirmée par le serveur
    captured_payment: Optional[PaymentSuccess] = None
    verified_payment: Optional[PaymentSuccess] = None
    completed: Optional[CompletedOrder] = None
    closed: bool = False


class OrderSession:
    def __init__(
        self,
        context: SessionContext,
        *,
        user_id: str,
        customer: Optional[CustomerContact] = None,
        payment_timeout: Optional[float] = None,
    ):
        self._ctx = context
        self.user_id = user_id
        self.customer = customer
        # 0 ou None: pas de limite
        self.payment_timeout = (payment_timeout if payment_timeout is not None else config.INTAKE_PAYMENT_TIMEOUT) or None
        self._state = SessionState()
        self.last_error: Optional[IntakeError] = None

    @classmethod
    def start(
        cls,
        *,
        user_id: str,
        launcher: CheckoutLauncher,
        customer: Optional[CustomerContact] = None,
        api: Optional[ApiService] = None,
        strategy: Optional[str] = None,
        concurrency: Optional[int] = None,
        pricing_config: Optional[PricingConfig] = None,
        payment_timeout: Optional[float] = None,
    ) -> "OrderSession":
        api = api or ApiService()
        context = SessionContext(
            api=api,
            adapter=PaymentGatewayAdapter(api, launcher),
            uploader=UploadCoordinator(api, strategy=strategy, concurrency=concurrency),
            order_state=OrderState(pricing_config),
        )
        return cls(context, user_id=user_id, customer=customer, payment_timeout=payment_timeout)

    async def __aenter__(self) -> "OrderSession":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # -- état
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def context(self) -> SessionContext:
        return self._ctx

    @property
    def calculation(self) -> OrderCalculation:
        return self._ctx.order_state.calculation

    @property
    def order_state(self) -> OrderState:
        return self._ctx.order_state

    @property
    def payment_order(self) -> Optional[PaymentOrder]:
        return self._ctx.payment_order

    def _apply(self, event: SessionEvent, reason: Optional[str] = None) -> SessionState:
        previous = self._state
        self._state = transition(previous, event, reason)
        logger.debug("session %s: %s -[%s]-> %s", self.user_id, previous.status.value, event.value, self._state.status.value)
        return self._state

    def _fail(self, event: SessionEvent, error: IntakeError) -> None:
        self._apply(event, error.message)
        self.last_error = error

    def _ensure_open(self) -> None:
        if self._ctx.closed:
            raise InvalidTransition("Session is closed")

    # -- sélection des fichiers
    def _refresh(self) -> None:
        staging = self._ctx.staging
        self._ctx.payment_order = None
        if not len(staging):
            self._apply(E.ITEMS_CLEARED)
            self._ctx.order_state.clear()
            return
        self._apply(E.ITEMS_STAGED)
        self._ctx.order_state.update(staging.line_items())
        self._apply(E.CALCULATED)

    def _guard_editable(self) -> None:
        self._ensure_open()
        if not _editable(self._state):
            raise InvalidTransition(f"Files cannot change in state '{self._state.status.value}'")

    def stage_file(self, name: str, data: bytes, content_type: Optional[str] = None, **selection) -> StagedFile:
        self._guard_editable()
        staged = self._ctx.staging.add(name, data, content_type, **selection)
        self._refresh()
        return staged

    def update_selection(self, file_id: str, *, document_type_id: Optional[str] = None, tier: Optional[str] = None) -> StagedFile:
        self._guard_editable()
        staged = self._ctx.staging.select(file_id, document_type_id=document_type_id, tier=tier)
        self._refresh()
        return staged

    def remove_file(self, file_id: str) -> None:
        self._guard_editable()
        self._ctx.staging.remove(file_id)
        self._refresh()

    def clear(self) -> None:
        self._guard_editable()
        self._ctx.staging.clear()
        self._refresh()

    async def load_pricing_config(self) -> PricingConfig:
        """Aligne la configuration de prix sur celle du serveur puis recalcule."""
        self._ensure_open()
        catalog = await self._ctx.api.pricing_catalog()
        cfg = catalog.get("config") or {}
        pricing_config = PricingConfig.from_values(
            cfg.get("bulkDiscountThreshold", 5), cfg.get("bulkDiscountRate", "0.10"), cfg.get("gstRate", "0.18")
        )
        self._ctx.order_state.reprice(pricing_config)
        return pricing_config

    # -- paiement
    async def initiate_payment(self) -> PaymentOrder:
        """
        Crée la commande passerelle pour le calcul courant.
        - Une seule commande en cours: un second appel pendant l'attente lève ValidationError
        - Préconditions: chaque fichier a un type de document, commande valide (aucune ligne
          écartée), total > 0, lot de fichiers conforme. Le montant couvre donc tous les fichiers.
        """
        self._ensure_open()
        if self._state.payment_in_flight:
            raise ValidationError("A payment is already in progress for this order")
        if self._state.status is not S.CALCULATED:
            raise ValidationError("Add documents and calculate the order before paying")
        if any(not f.document_type_id for f in self._ctx.staging.files()):
            raise ValidationError("Please select a document type for all files to continue")
        order_errors = self._ctx.order_state.validate()
        if order_errors:
            raise ValidationError("; ".join(order_errors))
        calculation = self._ctx.order_state.calculation
        if not calculation.breakdown:
            raise ValidationError("At least one document with a valid type and tier is required")
        if calculation.total_amount <= Decimal("0"):
            raise ValidationError("Order total must be greater than zero")
        validate_batch(f.describe() for f in self._ctx.staging.files())

        self._apply(E.PAYMENT_INITIATED)
        try:
            order = await self._ctx.adapter.create_order(
                calculation.total_minor_units,
                self._ctx.adapter.currency,
                self.user_id,
                line_items=self._ctx.order_state.items,
                calculation=calculation,
                customer=self.customer,
            )
        except IntakeError as e:
            self._fail(E.PAYMENT_FAILED, e)
            raise
        self._ctx.payment_order = order
        self._apply(E.ORDER_CREATED)
        return order

    async def await_payment(self) -> PaymentSuccess:
        """
        Ouvre le checkout, attend l'issue (timeout optionnel) puis fait vérifier la signature.
        Si le serveur est injoignable pendant la vérification, l'issue capturée est conservée:
        FAILED{confirmation}, et retry() rejoue uniquement la vérification.
        """
        self._ensure_open()
        order = self._ctx.payment_order
        if self._state.status is not S.PAYMENT_AWAITING or order is None:
            raise InvalidTransition(f"No payment awaiting in state '{self._state.status.value}'")
        result = self._ctx.captured_payment
        if result is None:
            result = await self._run_checkout(order)
            if result.gateway_order_id != order.gateway_order_id:
                error = VerificationError(VERIFICATION_FAILED_REASON)
                self._fail(E.VERIFICATION_FAILED, error)
                raise error
            self._ctx.captured_payment = result

        try:
            verified = await self._ctx.adapter.verify(result)
        except IntakeError as e:
            self._fail(E.CONFIRMATION_FAILED, e)
            logger.warning("session %s: verification unreachable payment_id=%s", self.user_id, result.payment_id)
            raise
        self._ctx.captured_payment = None
        if not verified:
            error = VerificationError(VERIFICATION_FAILED_REASON)
            self._fail(E.VERIFICATION_FAILED, error)
            raise error
        self._ctx.verified_payment = result
        self._apply(E.PAYMENT_VERIFIED)
        logger.info("session %s: payment verified payment_id=%s", self.user_id, result.payment_id)
        return result

    async def _run_checkout(self, order: PaymentOrder) -> PaymentSuccess:
        try:
            result = await asyncio.wait_for(self._ctx.adapter.open_checkout(order), self.payment_timeout)
        except asyncio.TimeoutError:
            error = GatewayError("Payment timed out, please try again")
            self._fail(E.PAYMENT_FAILED, error)
            raise error
        except IntakeError as e:
            self._fail(E.PAYMENT_FAILED, e)
            raise

        if isinstance(result, PaymentCancelled):
            error = UserCancelled()
            self._fail(E.PAYMENT_CANCELLED, error)
            logger.info("session %s: checkout dismissed order=%s", self.user_id, order.gateway_order_id)
            raise error
        if isinstance(result, PaymentFailed):
            error = GatewayError(result.reason)
            self._fail(E.PAYMENT_FAILED, error)
            raise error
        return result

    # -- upload
    async def upload_files(self, on_progress: Optional[ProgressCallback] = None) -> UploadResult:
        self._ensure_open()
        payment = self._ctx.verified_payment
        if self._state.status is not S.PAYMENT_VERIFIED or payment is None:
            raise InvalidTransition(f"Payment must be verified before upload (state '{self._state.status.value}')")
        order_state = self._ctx.order_state
        metadata = UploadMetadata(
            user_id=self.user_id,
            payment_id=payment.payment_id,
            customer_info=self.customer.to_dict() if self.customer else {},
            pricing_snapshot=order_state.pricing_snapshot(),
            extra={"orderId": payment.gateway_order_id},
        )
        self._apply(E.UPLOAD_STARTED)
        try:
            result = await self._ctx.uploader.upload(self._ctx.staging.files(), metadata, on_progress)
        except IntakeError as e:
            self._fail(E.UPLOAD_FAILED, e)
            raise
        self._apply(E.UPLOAD_COMPLETED)

        order = self._ctx.payment_order
        self._ctx.completed = CompletedOrder(
            payment_id=payment.payment_id,
            gateway_order_id=payment.gateway_order_id,
            amount=order.amount if order else order_state.calculation.total_minor_units,
            currency=order.currency if order else self._ctx.adapter.currency,
            upload_id=result.upload_id,
            total_documents=order_state.summary().total_documents,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        self._ctx.staging.clear()
        self.last_error = None
        logger.info("session %s: completed upload_id=%s", self.user_id, result.upload_id)
        return result

    # -- enchaînement complet
    async def checkout(self, on_progress: Optional[ProgressCallback] = None) -> CheckoutOutcome:
        """
        Enchaîne les étapes restantes depuis l'état courant. Les erreurs attendues ne sont pas
        levées: elles sont retournées dans CheckoutOutcome (l'état porte la raison).
        """
        try:
            if self._state.status not in (S.PAYMENT_AWAITING, S.PAYMENT_VERIFIED):
                await self.initiate_payment()
            if self._state.status is S.PAYMENT_AWAITING:
                await self.await_payment()
            await self.upload_files(on_progress)
        except UserCancelled as e:
            return CheckoutOutcome(self._state, None, e)
        except IntakeError as e:
            logger.warning("session %s: checkout stopped in %s: %s", self.user_id, self._state.status.value, e.message)
            self.last_error = e
            return CheckoutOutcome(self._state, None, e)
        return CheckoutOutcome(self._state, self._ctx.completed, None)

    def retry(self) -> SessionState:
        """
        Après un échec de paiement/vérification ou une annulation: retour à CALCULATED, la
        prochaine tentative crée une nouvelle commande. Après un échec de confirmation: retour à
        PAYMENT_AWAITING avec la même commande, seule la vérification est rejouée. Après un
        échec d'upload: retour à PAYMENT_VERIFIED, seul l'upload sera rejoué (fichiers déjà
        enregistrés conservés).
        """
        self._ensure_open()
        self._apply(E.RETRY)
        if self._state.status is S.CALCULATED:
            self._ctx.payment_order = None
            self._ctx.captured_payment = None
            self._ctx.verified_payment = None
        self.last_error = None
        return self._state

    def reset(self) -> SessionState:
        """Abandon explicite: vide la sélection et repart de EMPTY (hors étape en cours)."""
        self._ensure_open()
        self._apply(E.RESET)
        self._ctx.staging.clear()
        self._ctx.order_state.clear()
        self._ctx.payment_order = None
        self._ctx.captured_payment = None
        self._ctx.verified_payment = None
        self._ctx.completed = None
        self.last_error = None
        return self._state

    async def close(self) -> None:
        if self._ctx.closed:
            return
        self._ctx.staging.clear()
        self._ctx.order_state.clear()
        self._ctx.payment_order = None
        self._ctx.captured_payment = None
        self._ctx.verified_payment = None
        self._ctx.closed = True
        await self._ctx.api.aclose()
