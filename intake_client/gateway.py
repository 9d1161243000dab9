"""
PaymentGatewayAdapter: création de commande (via le serveur) + checkout hébergé (popup).

Le checkout lui-même est opaque: il est ouvert par un CheckoutLauncher qui reçoit un
CheckoutHandle et y signale exactement une issue (succès, échec, fermeture). Le premier
signal gagne; les suivants sont ignorés. Le handle peut être appelé depuis n'importe quel
thread (le résultat est posé sur la boucle asyncio de l'appelant).
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, Union

from backend.errors import GatewayError, ValidationError, VerificationError
from backend.payments.validation import SUPPORTED_CURRENCY, validate_order_amount
from backend.pricing import EMPTY_CALCULATION, OrderCalculation, OrderLineItem
from .api import ApiService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerContact:
    name: str = ""
    email: str = ""
    phone: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "email": self.email, "contact": self.phone}


@dataclass(frozen=True)
class PaymentOrder:
    gateway_order_id: str
    amount: int
    currency: str
    receipt: str
    line_items: Tuple[OrderLineItem, ...] = ()
    calculation: OrderCalculation = EMPTY_CALCULATION
    customer: Optional[CustomerContact] = None


@dataclass(frozen=True)
class PaymentSuccess:
    payment_id: str
    gateway_order_id: str
    signature: str


@dataclass(frozen=True)
class PaymentCancelled:
    pass


@dataclass(frozen=True)
class PaymentFailed:
    reason: str


PaymentResult = Union[PaymentSuccess, PaymentCancelled, PaymentFailed]


class CheckoutHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop, future: "asyncio.Future[PaymentResult]"):
        self._loop = loop
        self._future = future

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def succeed(self, payment_id: str, gateway_order_id: str, signature: str) -> None:
        self._post(PaymentSuccess(payment_id, gateway_order_id, signature))

    def fail(self, reason: str) -> None:
        self._post(PaymentFailed(reason or "Payment failed"))

    def dismiss(self) -> None:
        self._post(PaymentCancelled())

    def _post(self, result: PaymentResult) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._resolve, result)

    def _resolve(self, result: PaymentResult) -> None:
        if self._future.done():
            logger.debug("checkout already resolved, ignoring %s", type(result).__name__)
            return
        self._future.set_result(result)


class CheckoutLauncher(Protocol):
    def launch(self, order: PaymentOrder, options: Dict[str, Any], handle: CheckoutHandle) -> None:
        """Ouvre le checkout hébergé; doit signaler une issue via `handle`."""


class PaymentGatewayAdapter:
    def __init__(self, api: ApiService, launcher: CheckoutLauncher, currency: str = SUPPORTED_CURRENCY):
        self._api = api
        self._launcher = launcher
        self.currency = currency
        self._checkout_config: Optional[Dict[str, Any]] = None

    async def create_order(
        self,
        amount_minor_units: int,
        currency: str,
        customer_ref: str,
        *,
        line_items: Tuple[OrderLineItem, ...] = (),
        calculation: OrderCalculation = EMPTY_CALCULATION,
        customer: Optional[CustomerContact] = None,
    ) -> PaymentOrder:
        """
        Crée une commande passerelle (appel serveur). Aucune nouvelle tentative automatique.
        - ValidationError si le montant n'est pas un entier positif ou la devise non supportée
        - GatewayError si le serveur ou la passerelle échoue
        """
        validate_order_amount(amount_minor_units, currency, self.currency)
        receipt = f"receipt_{int(time.time() * 1000)}"
        notes = {"customerRef": customer_ref, "documents": sum(i.quantity for i in line_items)}
        if customer and customer.email:
            notes["email"] = customer.email
        data = await self._api.create_order(amount=amount_minor_units, currency=currency, receipt=receipt, notes=notes)
        order_id = data.get("id")
        if not order_id:
            raise GatewayError("Payment gateway returned no order id")
        logger.info("gateway order created id=%s amount=%s", order_id, amount_minor_units)
        return PaymentOrder(
            gateway_order_id=order_id,
            amount=int(data.get("amount", amount_minor_units)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            line_items=tuple(line_items),
            calculation=calculation,
            customer=customer,
        )

    async def checkout_options(self, order: PaymentOrder) -> Dict[str, Any]:
        if self._checkout_config is None:
            self._checkout_config = await self._api.checkout_config()
        cfg = self._checkout_config
        options: Dict[str, Any] = {
            "key": cfg.get("keyId"),
            "amount": order.amount,
            "currency": order.currency,
            "name": cfg.get("companyName"),
            "description": f"{len(order.line_items)} document(s)",
            "order_id": order.gateway_order_id,
            "theme": cfg.get("theme") or {},
        }
        if order.customer:
            options["prefill"] = order.customer.to_dict()
        return options

    async def open_checkout(self, order: PaymentOrder) -> PaymentResult:
        """Ouvre le checkout et attend la première issue signalée (une seule par appel)."""
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[PaymentResult]" = loop.create_future()
        handle = CheckoutHandle(loop, future)
        options = await self.checkout_options(order)
        try:
            self._launcher.launch(order, options, handle)
        except Exception as e:
            logger.exception("Erreur ouverture checkout order=%s", order.gateway_order_id)
            return PaymentFailed(f"Checkout could not be opened: {e}")
        return await future

    async def verify(self, success: PaymentSuccess) -> bool:
        """Vérification serveur de la signature. False si le serveur la rejette."""
        try:
            await self._api.verify_payment(
                payment_id=success.payment_id,
                order_id=success.gateway_order_id,
                signature=success.signature,
            )
        except (ValidationError, VerificationError) as e:
            logger.warning("payment %s rejected by server: %s", success.payment_id, e)
            return False
        return True
