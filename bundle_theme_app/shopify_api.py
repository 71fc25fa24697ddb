from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

import httpx

from bundle_theme_app.config import settings

logger = logging.getLogger(__name__)

_ERROR_DETAIL_MAX_LENGTH = 300


class ShopifyApiError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class StoreContext:
    """Credentials for one merchant store, passed explicitly into every remote call."""

    store_id: str
    shop_domain: str
    access_token: str = field(repr=False)


@dataclass(frozen=True)
class Theme:
    id: int
    name: str
    role: str


def _error_detail_from_response(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "no response body"

    detail: Any = None
    if isinstance(body, dict):
        detail = body.get("errors") or body.get("error")
    if detail is None:
        return response.reason_phrase or "unexpected response body"
    if isinstance(detail, dict):
        detail = "; ".join(f"{key}: {value}" for key, value in detail.items())
    elif isinstance(detail, list):
        detail = "; ".join(str(item) for item in detail)
    text = str(detail).strip()
    if len(text) > _ERROR_DETAIL_MAX_LENGTH:
        text = text[:_ERROR_DETAIL_MAX_LENGTH].rstrip() + "..."
    return text


class ShopifyAssetClient:
    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    async def list_themes(self, *, store: StoreContext) -> list[Theme]:
        body = await self._request(store=store, method="GET", path="/themes.json")
        raw_themes = body.get("themes") if body is not None else None
        if not isinstance(raw_themes, list):
            raise ShopifyApiError(message="themes response is missing the themes list.")
        return [self._coerce_theme(node) for node in raw_themes]

    async def get_asset(self, *, store: StoreContext, theme_id: int, key: str) -> str | None:
        body = await self._request(
            store=store,
            method="GET",
            path=f"/themes/{theme_id}/assets.json",
            params={"asset[key]": key},
            allow_not_found=True,
        )
        if body is None:
            return None
        asset = body.get("asset")
        if not isinstance(asset, dict):
            raise ShopifyApiError(message=f"Asset response is missing asset data for {key}.")
        value = asset.get("value")
        if not isinstance(value, str):
            raise ShopifyApiError(
                message=f"Theme asset {key} is not text-backed and cannot be patched.",
                status_code=409,
            )
        return value

    async def put_asset(self, *, store: StoreContext, theme_id: int, key: str, content: str) -> None:
        body = await self._request(
            store=store,
            method="PUT",
            path=f"/themes/{theme_id}/assets.json",
            payload={"asset": {"key": key, "value": content}},
        )
        asset = body.get("asset") if body is not None else None
        if not isinstance(asset, dict) or asset.get("key") != key:
            raise ShopifyApiError(message=f"Asset write response did not confirm {key}.")

    async def delete_asset(self, *, store: StoreContext, theme_id: int, key: str) -> bool:
        """Delete an asset. Returns False when the asset was already absent."""
        body = await self._request(
            store=store,
            method="DELETE",
            path=f"/themes/{theme_id}/assets.json",
            params={"asset[key]": key},
            allow_not_found=True,
        )
        return body is not None

    @staticmethod
    def _coerce_theme(node: Any) -> Theme:
        if not isinstance(node, dict):
            raise ShopifyApiError(message="themes response contains an invalid theme entry.")
        theme_id = node.get("id")
        theme_name = node.get("name")
        theme_role = node.get("role")
        if not isinstance(theme_id, int) or isinstance(theme_id, bool):
            raise ShopifyApiError(message="themes response is missing theme.id.")
        if not isinstance(theme_name, str):
            raise ShopifyApiError(message="themes response is missing theme.name.")
        if not isinstance(theme_role, str) or not theme_role:
            raise ShopifyApiError(message="themes response is missing theme.role.")
        return Theme(id=theme_id, name=theme_name, role=theme_role)

    async def _request(
        self,
        *,
        store: StoreContext,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> dict[str, Any] | None:
        url = f"https://{store.shop_domain}/admin/api/{settings.SHOPIFY_ADMIN_API_VERSION}{path}"
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": store.access_token,
        }
        logger.debug(
            "shopify_api.request",
            extra={"store_id": store.store_id, "method": method, "path": path, "params": params},
        )
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ShopifyApiError(
                message=f"Timed out while calling Shopify {method} {path}.",
                status_code=504,
            ) from exc
        except httpx.RequestError as exc:
            raise ShopifyApiError(
                message=f"Network error while calling Shopify {method} {path}: {exc.__class__.__name__}",
            ) from exc

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code >= 400:
            raise ShopifyApiError(
                message=(
                    f"Shopify {method} {path} failed ({response.status_code}): "
                    f"{_error_detail_from_response(response)}"
                ),
                status_code=502,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ShopifyApiError(message="Shopify API returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise ShopifyApiError(message="Shopify API response must be a JSON object")
        return body
