# backend/modules/pos_sync/adapters/iiko_adapter.py

"""
HTTP client for the iiko Cloud style POS API.

Every call is a JSON POST under ``/api/1`` bounded by a timeout. Transport
failures and non-2xx answers become ``NetworkError``; failures of the auth
endpoint become ``AuthError``; unparseable bodies become ``ValidationError``.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, List, Set

import httpx
from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from ..exceptions.pos_sync_exceptions import AuthError, NetworkError, ValidationError
from ..schemas.payload_schemas import (
    OrderPayload,
    NomenclatureResponse,
    POSDeliveryResponse,
    POSAuthResult,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/1"


class IikoAdapter:
    def __init__(
        self,
        api_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = api_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.POS_HTTP_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    async def _post(
        self, path: str, payload: Dict[str, Any], token: Optional[str] = None
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        async with self._client() as client:
            try:
                response = await client.post(
                    f"{API_PREFIX}{path}", json=payload, headers=headers
                )
            except httpx.TimeoutException as e:
                raise NetworkError(f"POS request {path} timed out: {e}")
            except httpx.HTTPError as e:
                raise NetworkError(f"POS request {path} failed: {e}")

        if response.status_code >= 400:
            detail = response.text[:500]
            raise NetworkError(
                f"POS API error {response.status_code} on {path}: {detail}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise ValidationError(f"POS returned non-JSON body for {path}")

        if not isinstance(data, dict):
            raise ValidationError(f"POS returned unexpected body for {path}")
        return data

    async def authenticate(self, api_login: str) -> POSAuthResult:
        """Exchange the API login for a bearer token"""
        try:
            data = await self._post("/access_token", {"apiLogin": api_login})
        except NetworkError as e:
            raise AuthError(f"Failed to obtain POS access token: {e.message}")
        except ValidationError as e:
            raise AuthError(f"Invalid POS auth response: {e.message}")

        token = data.get("token")
        if not token:
            raise AuthError("POS auth response did not contain a token")

        return POSAuthResult(token=token, expires_at=self._parse_expiry(data))

    @staticmethod
    def _parse_expiry(data: Dict[str, Any]) -> datetime:
        now = datetime.utcnow()
        expires_at = data.get("expiresAt")
        if expires_at:
            try:
                parsed = datetime.fromisoformat(str(expires_at).replace("Z", "+00:00"))
                if parsed.tzinfo is not None:
                    parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
                return parsed
            except ValueError:
                logger.warning(f"Unparseable token expiry from POS: {expires_at}")

        expires_in = data.get("expiresIn")
        if expires_in:
            try:
                return now + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                logger.warning(f"Unparseable token lifetime from POS: {expires_in}")

        return now + timedelta(seconds=settings.POS_TOKEN_DEFAULT_TTL_SECONDS)

    async def test_connection(self, api_login: str) -> bool:
        try:
            await self.authenticate(api_login)
            return True
        except AuthError as e:
            logger.info(f"POS connection test failed for {self.base_url}: {e.message}")
            return False

    async def get_nomenclature(self, token: str, organization_id: str) -> NomenclatureResponse:
        data = await self._post(
            "/nomenclature", {"organizationId": organization_id}, token=token
        )
        try:
            return NomenclatureResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed nomenclature payload: {e}")

    async def get_stop_list(self, token: str, organization_id: str) -> Set[str]:
        """Product ids that the POS currently reports as unavailable"""
        data = await self._post(
            "/stop_lists", {"organizationIds": [organization_id]}, token=token
        )
        product_ids = set()
        for org_entry in data.get("terminalGroupStopLists") or []:
            for group_entry in org_entry.get("items") or []:
                for item in group_entry.get("items") or []:
                    if item.get("productId"):
                        product_ids.add(item["productId"])
        return product_ids

    async def get_organizations(self, token: str) -> List[Dict[str, str]]:
        data = await self._post(
            "/organizations",
            {"returnAdditionalInfo": False, "includeDisabled": False},
            token=token,
        )
        return [
            {"id": org["id"], "name": org.get("name") or org["id"]}
            for org in data.get("organizations") or []
            if org.get("id")
        ]

    async def get_terminal_groups(
        self, token: str, organization_id: str
    ) -> List[Dict[str, Any]]:
        data = await self._post(
            "/terminal_groups", {"organizationIds": [organization_id]}, token=token
        )
        groups = []
        for org_entry in data.get("terminalGroups") or []:
            for group in org_entry.get("items") or []:
                if not group.get("id"):
                    continue
                groups.append(
                    {
                        "id": group["id"],
                        "name": group.get("name") or group["id"],
                        "organization_id": group.get("organizationId")
                        or org_entry.get("organizationId"),
                    }
                )
        return groups

    async def create_delivery(
        self,
        token: str,
        organization_id: str,
        terminal_group_id: Optional[str],
        payload: OrderPayload,
        idempotency_key: str,
    ) -> POSDeliveryResponse:
        body = self.transform_order_data(
            organization_id, terminal_group_id, payload, idempotency_key
        )
        data = await self._post("/deliveries/create", body, token=token)
        try:
            return POSDeliveryResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed delivery response: {e}")

    def transform_order_data(
        self,
        organization_id: str,
        terminal_group_id: Optional[str],
        payload: OrderPayload,
        idempotency_key: str,
    ) -> Dict[str, Any]:
        order: Dict[str, Any] = {
            "id": idempotency_key,
            "externalNumber": payload.order_number,
            "phone": payload.customer.phone,
            "customer": {
                "name": payload.customer.name,
                "phone": payload.customer.phone,
            },
            "items": [
                {
                    "productId": item.external_product_id,
                    "type": "Product",
                    "amount": float(item.quantity),
                    "price": float(item.price),
                    "comment": item.comment or "",
                }
                for item in payload.items
            ],
        }
        if payload.notes:
            order["comment"] = payload.notes
        if payload.delivery_address:
            order["deliveryPoint"] = {
                "address": {"street": {"name": payload.delivery_address}}
            }
        if payload.scheduled_at:
            order["completeBefore"] = payload.scheduled_at.strftime(
                "%Y-%m-%d %H:%M:%S.000"
            )

        body: Dict[str, Any] = {"organizationId": organization_id, "order": order}
        if terminal_group_id:
            body["terminalGroupId"] = terminal_group_id
        return body
