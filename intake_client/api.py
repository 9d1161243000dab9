"""
Client HTTP mince (httpx.AsyncClient) des endpoints du serveur.

- Chaque réponse {success:false, error} est convertie en erreur typée (backend.errors):
  400/404/409/422 -> ValidationError, 402 -> PaymentRequired, autres échecs -> `failure`
  (GatewayError pour les appels de paiement, TransportError pour les uploads).
- Timeout / erreur réseau -> `failure` également.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

import httpx

from backend.errors import GatewayError, IntakeError, PaymentRequired, TransportError, ValidationError
from . import config

logger = logging.getLogger(__name__)

_CLIENT_ERRORS = {400, 404, 409, 422}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


class ApiService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or config.INTAKE_API_URL,
            timeout=timeout if timeout is not None else config.INTAKE_REQUEST_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiService":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, url: str, *, failure: Type[IntakeError], **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out", method, url)
            raise failure("Request timed out, please try again") from e
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise failure("Network error, please check your connection") from e
        if response.status_code < 400:
            return response
        message = _error_message(response)
        if response.status_code == 402:
            raise PaymentRequired(message)
        if response.status_code in _CLIENT_ERRORS:
            raise ValidationError(message)
        raise failure(message)

    async def _json(self, method: str, path: str, *, failure: Type[IntakeError] = GatewayError, **kwargs) -> Dict[str, Any]:
        response = await self._send(method, path, failure=failure, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise failure(f"Invalid response from server ({path})") from e

    # pricing
    async def pricing_catalog(self) -> Dict[str, Any]:
        return await self._json("GET", "/api/pricing/catalog")

    # payment
    async def checkout_config(self) -> Dict[str, Any]:
        data = await self._json("GET", "/api/payment/config")
        return data.get("config") or {}

    async def create_order(self, *, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}}
        return await self._json("POST", "/api/payment/create-order", json=payload)

    async def verify_payment(self, *, payment_id: str, order_id: str, signature: str) -> Dict[str, Any]:
        payload = {"paymentId": payment_id, "orderId": order_id, "signature": signature}
        return await self._json("POST", "/api/payment/verify", json=payload)

    async def payment_status(self, payment_id: str) -> Dict[str, Any]:
        data = await self._json("GET", f"/api/payment/status/{payment_id}")
        return data.get("payment") or {}

    # uploads
    async def upload_direct(self, files: Sequence[Tuple[str, bytes, str]], fields: Dict[str, str]) -> Dict[str, Any]:
        multipart: List[Tuple[str, Tuple[str, bytes, str]]] = [("files", f) for f in files]
        return await self._json("POST", "/api/uploads/files", failure=TransportError, data=fields, files=multipart)

    async def presign(self, *, user_id: str, file_name: str, size: int, content_type: str, payment_id: Optional[str]) -> Dict[str, Any]:
        payload = {"userId": user_id, "fileName": file_name, "size": size, "contentType": content_type, "paymentId": payment_id}
        return await self._json("POST", "/api/uploads/presign", failure=TransportError, json=payload)

    async def put_object(self, upload_url: str, data: bytes, content_type: str) -> None:
        """Transfert direct vers le stockage (URL absolue signée, hors base_url)."""
        await self._send(
            "PUT", upload_url, failure=TransportError, content=data, headers={"Content-Type": content_type, "x-upsert": "false"}
        )

    async def register(
        self, *, user_id: str, key: str, original_name: str, size: int, content_type: str, payment_id: Optional[str]
    ) -> Dict[str, Any]:
        payload = {
            "userId": user_id,
            "key": key,
            "originalName": original_name,
            "size": size,
            "contentType": content_type,
            "paymentId": payment_id,
        }
        return await self._json("POST", "/api/uploads/register", failure=TransportError, json=payload)

    async def complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._json("POST", "/api/uploads/complete", failure=TransportError, json=payload)

    async def upload_status(self, upload_id: str) -> Dict[str, Any]:
        data = await self._json("GET", f"/api/uploads/status/{upload_id}", failure=TransportError)
        return data.get("upload") or {}
