from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from bundle_theme_app.db import get_session, init_db
from bundle_theme_app.installer import ThemeInstaller
from bundle_theme_app.logging_config import configure_logging
from bundle_theme_app.models import StoreInstallation
from bundle_theme_app.schemas import (
    CheckInstallationResponse,
    ErrorResponse,
    InstallBundleDisplayResponse,
    InstallDetails,
    StoreResponse,
    UninstallBundleDisplayResponse,
    UpsertStoreRequest,
)
from bundle_theme_app.security import normalize_shop_domain, require_internal_api_token
from bundle_theme_app.shopify_api import ShopifyAssetClient, StoreContext


@asynccontextmanager
async def _app_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    init_db()
    yield


app = FastAPI(
    title="Bundle Theme Installer",
    default_response_class=ORJSONResponse,
    lifespan=_app_lifespan,
)
theme_installer = ThemeInstaller(ShopifyAssetClient())


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


def _serialize_store(installation: StoreInstallation) -> StoreResponse:
    return StoreResponse(
        storeId=installation.store_id,
        shopDomain=installation.shop_domain,
        createdAt=installation.created_at,
        updatedAt=installation.updated_at,
    )


def _resolve_store_context(*, store_id: str, session: Session) -> StoreContext:
    installation = session.get(StoreInstallation, store_id)
    if installation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    return StoreContext(
        store_id=installation.store_id,
        shop_domain=installation.shop_domain,
        access_token=installation.admin_access_token,
    )


def _error_response(error: str | None) -> ORJSONResponse:
    payload = ErrorResponse(error=error or "Unknown error")
    return ORJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload.model_dump())


@app.put(
    "/admin/stores/{store_id}",
    response_model=StoreResponse,
    dependencies=[Depends(require_internal_api_token)],
)
def upsert_store(
    store_id: str,
    payload: UpsertStoreRequest,
    session: Session = Depends(get_session),
):
    cleaned_store_id = store_id.strip()
    if not cleaned_store_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="storeId cannot be empty")
    shop_domain = normalize_shop_domain(payload.shopDomain)
    access_token = payload.accessToken.strip()
    if not access_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="accessToken cannot be empty")

    installation = session.get(StoreInstallation, cleaned_store_id)
    if installation is None:
        installation = StoreInstallation(
            store_id=cleaned_store_id,
            shop_domain=shop_domain,
            admin_access_token=access_token,
        )
    else:
        installation.shop_domain = shop_domain
        installation.admin_access_token = access_token
        installation.updated_at = datetime.now(timezone.utc)
    session.add(installation)
    session.commit()
    session.refresh(installation)
    return _serialize_store(installation)


@app.get(
    "/admin/stores/{store_id}",
    response_model=StoreResponse,
    dependencies=[Depends(require_internal_api_token)],
)
def get_store(store_id: str, session: Session = Depends(get_session)):
    installation = session.get(StoreInstallation, store_id)
    if installation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    return _serialize_store(installation)


@app.post(
    "/v1/theme/{store_id}/install-bundle-display",
    response_model=InstallBundleDisplayResponse,
    responses={500: {"model": ErrorResponse}},
    dependencies=[Depends(require_internal_api_token)],
)
async def install_bundle_display(store_id: str, session: Session = Depends(get_session)):
    store = _resolve_store_context(store_id=store_id, session=session)
    result = await theme_installer.install_bundle_display(store)
    if not result.success:
        return _error_response(result.error)

    return InstallBundleDisplayResponse(
        message=result.message or "",
        details=InstallDetails(
            theme=result.theme,
            snippetInstalled=result.snippet_installed,
            templateUpdated=result.template_updated,
            templateKey=result.template_key,
            stage=result.stage.value,
        ),
    )


@app.post(
    "/v1/theme/{store_id}/uninstall-bundle-display",
    response_model=UninstallBundleDisplayResponse,
    responses={500: {"model": ErrorResponse}},
    dependencies=[Depends(require_internal_api_token)],
)
async def uninstall_bundle_display(store_id: str, session: Session = Depends(get_session)):
    store = _resolve_store_context(store_id=store_id, session=session)
    result = await theme_installer.uninstall_bundle_display(store)
    if not result.success:
        return _error_response(result.error)
    return UninstallBundleDisplayResponse(message=result.message or "")


@app.get(
    "/v1/theme/{store_id}/check-installation",
    response_model=CheckInstallationResponse,
    responses={500: {"model": ErrorResponse}},
    dependencies=[Depends(require_internal_api_token)],
)
async def check_installation(store_id: str, session: Session = Depends(get_session)):
    store = _resolve_store_context(store_id=store_id, session=session)
    result = await theme_installer.check_installation(store)
    if not result.success:
        return _error_response(result.error)
    return CheckInstallationResponse(
        installed=result.installed,
        theme=result.theme,
        message=result.message or "",
    )
