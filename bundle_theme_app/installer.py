from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Protocol

from bundle_theme_app.insertion import PatchOutcome, patch_text_template
from bundle_theme_app.manifest import InstallationRecorder
from bundle_theme_app.markers import has_bundle_marker
from bundle_theme_app.sections import (
    SectionDocumentError,
    patch_json_template,
    validate_section_document,
)
from bundle_theme_app.shopify_api import ShopifyApiError, StoreContext, Theme
from bundle_theme_app.snippets import (
    SECTION_CONTENT,
    SECTION_KEY,
    SNIPPET_CONTENT,
    SNIPPET_KEY,
    SNIPPET_NAME,
)
from bundle_theme_app.template_format import TemplateFormat, classify_template, load_json_composition
from bundle_theme_app.themes import resolve_active_theme

logger = logging.getLogger(__name__)

# Legacy flat template first, then the JSON template, then section-level fallbacks.
PRODUCT_TEMPLATE_KEYS: tuple[str, ...] = (
    "templates/product.liquid",
    "templates/product.json",
    "sections/product-template.liquid",
    "sections/main-product.liquid",
)

NO_ACTIVE_THEME_ERROR = "No active theme found"
INSTALLED_MESSAGE = "Bundle display has been automatically installed in your theme"
ALREADY_INSTALLED_MESSAGE = "Bundle display is already installed in your theme"
MANUAL_INSTALL_MESSAGE = (
    "Bundle display snippet installed, but the product template could not be updated "
    f"automatically. Add {{% render '{SNIPPET_NAME}', product: product %}} to your product "
    "template to finish the installation."
)
UNINSTALLED_MESSAGE = (
    "Bundle display components removed. Please manually remove the inclusion from your "
    "product template."
)


class InstallStage(str, Enum):
    IDLE = "idle"
    THEME_RESOLVED = "theme_resolved"
    TEMPLATE_FOUND = "template_found"
    ALREADY_INSTALLED = "already_installed"
    PATCH_PLANNED = "patch_planned"
    PATCHED = "patched"
    SNIPPET_WRITTEN = "snippet_written"
    RECORDED = "recorded"
    DONE = "done"
    MANUAL_REQUIRED = "manual_required"
    FAILED = "failed"


class AssetClient(Protocol):
    async def list_themes(self, *, store: StoreContext) -> list[Theme]: ...

    async def get_asset(self, *, store: StoreContext, theme_id: int, key: str) -> str | None: ...

    async def put_asset(self, *, store: StoreContext, theme_id: int, key: str, content: str) -> None: ...

    async def delete_asset(self, *, store: StoreContext, theme_id: int, key: str) -> bool: ...


@dataclass
class InstallResult:
    success: bool
    stage: InstallStage
    theme: str | None = None
    snippet_installed: bool = False
    template_updated: bool = False
    template_key: str | None = None
    message: str | None = None
    error: str | None = None
    modifications: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        if not self.success:
            payload: dict[str, Any] = {"success": False, "error": self.error}
            if self.snippet_installed or self.template_updated:
                payload["snippetInstalled"] = self.snippet_installed
                payload["templateUpdated"] = self.template_updated
            return payload
        return {
            "success": True,
            "theme": self.theme,
            "snippetInstalled": self.snippet_installed,
            "templateUpdated": self.template_updated,
            "templateKey": self.template_key,
            "stage": self.stage.value,
            "message": self.message,
        }


@dataclass
class UninstallResult:
    success: bool
    message: str | None = None
    error: str | None = None
    snippet_removed: bool = False

    def to_payload(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {"success": True, "message": self.message}


@dataclass
class CheckResult:
    success: bool
    installed: bool = False
    theme: str | None = None
    message: str | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "installed": self.installed,
            "theme": self.theme,
            "message": self.message,
        }


class ThemeInstaller:
    """
    Installs the bundle display into a store's published theme.

    Each call works on one store and awaits its remote reads and writes one at a time.
    There is no lock on the remote theme: concurrent installs for the same store race
    and the last whole-asset write wins.
    """

    def __init__(self, client: AssetClient, recorder: InstallationRecorder | None = None) -> None:
        self.client = client
        self.recorder = recorder or InstallationRecorder()

    async def install_bundle_display(self, store: StoreContext) -> InstallResult:
        result = InstallResult(success=False, stage=InstallStage.IDLE)
        logger.info("theme_installer.install.started", extra={"store_id": store.store_id})
        try:
            theme = await resolve_active_theme(self.client, store=store)
            if theme is None:
                result.stage = InstallStage.MANUAL_REQUIRED
                result.error = NO_ACTIVE_THEME_ERROR
                logger.warning("theme_installer.install.no_active_theme", extra={"store_id": store.store_id})
                return result
            result.theme = theme.name
            self._advance(result, InstallStage.THEME_RESOLVED, store)

            template_outcome = await self._update_product_template(store, theme, result)

            await self._write_if_changed(
                store,
                theme_id=theme.id,
                key=SNIPPET_KEY,
                content=SNIPPET_CONTENT,
                result=result,
            )
            result.snippet_installed = True
            self._advance(result, InstallStage.SNIPPET_WRITTEN, store)
        except ShopifyApiError as exc:
            logger.error(
                "theme_installer.install.failed",
                extra={
                    "store_id": store.store_id,
                    "stage": result.stage.value,
                    "snippet_installed": result.snippet_installed,
                    "template_updated": result.template_updated,
                    "error": str(exc),
                },
            )
            result.stage = InstallStage.FAILED
            result.error = str(exc)
            return result

        self._record(store, theme, result)

        result.success = True
        if template_outcome is PatchOutcome.PATCHED:
            result.stage = InstallStage.DONE
            result.message = INSTALLED_MESSAGE
        elif template_outcome is PatchOutcome.ALREADY_INSTALLED:
            result.stage = InstallStage.ALREADY_INSTALLED
            result.message = ALREADY_INSTALLED_MESSAGE
        else:
            result.stage = InstallStage.MANUAL_REQUIRED
            result.message = MANUAL_INSTALL_MESSAGE
        logger.info(
            "theme_installer.install.completed",
            extra={
                "store_id": store.store_id,
                "theme_id": theme.id,
                "stage": result.stage.value,
                "template_key": result.template_key,
                "modifications": result.modifications,
            },
        )
        return result

    async def uninstall_bundle_display(self, store: StoreContext) -> UninstallResult:
        logger.info("theme_installer.uninstall.started", extra={"store_id": store.store_id})
        try:
            theme = await resolve_active_theme(self.client, store=store)
            if theme is None:
                return UninstallResult(success=False, error=NO_ACTIVE_THEME_ERROR)
            removed = await self.client.delete_asset(store=store, theme_id=theme.id, key=SNIPPET_KEY)
        except ShopifyApiError as exc:
            logger.error(
                "theme_installer.uninstall.failed",
                extra={"store_id": store.store_id, "error": str(exc)},
            )
            return UninstallResult(success=False, error=str(exc))

        # Template and section edits are left in place; they were placed heuristically
        # and no record of the exact splice is kept.
        logger.info(
            "theme_installer.uninstall.completed",
            extra={
                "store_id": store.store_id,
                "theme_id": theme.id,
                "snippet": "deleted" if removed else "already_absent",
            },
        )
        return UninstallResult(success=True, message=UNINSTALLED_MESSAGE, snippet_removed=removed)

    async def check_installation(self, store: StoreContext) -> CheckResult:
        try:
            theme = await resolve_active_theme(self.client, store=store)
            if theme is None:
                return CheckResult(success=False, error=NO_ACTIVE_THEME_ERROR)
            snippet = await self.client.get_asset(store=store, theme_id=theme.id, key=SNIPPET_KEY)
        except ShopifyApiError as exc:
            logger.error(
                "theme_installer.check.failed",
                extra={"store_id": store.store_id, "error": str(exc)},
            )
            return CheckResult(success=False, error=str(exc))

        installed = snippet is not None
        return CheckResult(
            success=True,
            installed=installed,
            theme=theme.name,
            message="Bundle display is installed" if installed else "Bundle display is not installed",
        )

    async def _find_product_template(self, store: StoreContext, theme_id: int) -> tuple[str, str] | None:
        for key in PRODUCT_TEMPLATE_KEYS:
            content = await self.client.get_asset(store=store, theme_id=theme_id, key=key)
            if content:
                return key, content
        return None

    async def _update_product_template(
        self,
        store: StoreContext,
        theme: Theme,
        result: InstallResult,
    ) -> PatchOutcome:
        located = await self._find_product_template(store, theme.id)
        if located is None:
            logger.warning(
                "theme_installer.template_not_found",
                extra={"store_id": store.store_id, "theme_id": theme.id, "keys": list(PRODUCT_TEMPLATE_KEYS)},
            )
            return PatchOutcome.MANUAL_REQUIRED

        template_key, content = located
        result.template_key = template_key
        self._advance(result, InstallStage.TEMPLATE_FOUND, store)

        if has_bundle_marker(content):
            result.template_updated = True
            self._advance(result, InstallStage.ALREADY_INSTALLED, store)
            return PatchOutcome.ALREADY_INSTALLED

        template_format = classify_template(content)
        if template_format is TemplateFormat.JSON_COMPOSITION:
            outcome, next_content = await self._plan_json_template(store, theme, template_key, content, result)
        elif template_key.endswith(".json"):
            # Splicing Liquid text into a JSON asset would corrupt it.
            logger.warning(
                "theme_installer.json_template_not_composition",
                extra={"store_id": store.store_id, "template_key": template_key},
            )
            outcome, next_content = PatchOutcome.MANUAL_REQUIRED, content
        else:
            patch = patch_text_template(content)
            outcome, next_content = patch.outcome, patch.content
            if patch.plan is not None:
                logger.info(
                    "theme_installer.text_anchor_selected",
                    extra={
                        "store_id": store.store_id,
                        "template_key": template_key,
                        "anchor": patch.plan.pattern.name,
                        "position": patch.plan.pattern.position.value,
                        "offset": patch.plan.offset,
                    },
                )

        if outcome is PatchOutcome.ALREADY_INSTALLED:
            result.template_updated = True
            self._advance(result, InstallStage.ALREADY_INSTALLED, store)
            return outcome
        if outcome is PatchOutcome.MANUAL_REQUIRED:
            logger.warning(
                "theme_installer.no_anchor_found",
                extra={"store_id": store.store_id, "template_key": template_key, "format": template_format.value},
            )
            return outcome

        self._advance(result, InstallStage.PATCH_PLANNED, store)
        await self.client.put_asset(store=store, theme_id=theme.id, key=template_key, content=next_content)
        result.modifications.append(template_key)
        result.template_updated = True
        self._advance(result, InstallStage.PATCHED, store)
        return outcome

    async def _plan_json_template(
        self,
        store: StoreContext,
        theme: Theme,
        template_key: str,
        content: str,
        result: InstallResult,
    ) -> tuple[PatchOutcome, str]:
        document = load_json_composition(content)
        if document is not None:
            try:
                validate_section_document(document)
            except SectionDocumentError as exc:
                logger.warning(
                    "theme_installer.section_document_inconsistent",
                    extra={"store_id": store.store_id, "template_key": template_key, "error": str(exc)},
                )

        try:
            patch = patch_json_template(content)
        except SectionDocumentError as exc:
            logger.warning(
                "theme_installer.section_document_invalid",
                extra={"store_id": store.store_id, "template_key": template_key, "error": str(exc)},
            )
            return PatchOutcome.MANUAL_REQUIRED, content

        if patch.outcome is PatchOutcome.PATCHED:
            # The template may only reference the section once its definition exists.
            await self._write_if_changed(
                store,
                theme_id=theme.id,
                key=SECTION_KEY,
                content=SECTION_CONTENT,
                result=result,
            )
            logger.info(
                "theme_installer.section_anchor_selected",
                extra={
                    "store_id": store.store_id,
                    "template_key": template_key,
                    "anchor_section_id": patch.anchor_section_id,
                },
            )
        return patch.outcome, patch.content

    async def _write_if_changed(
        self,
        store: StoreContext,
        *,
        theme_id: int,
        key: str,
        content: str,
        result: InstallResult,
    ) -> bool:
        existing = await self.client.get_asset(store=store, theme_id=theme_id, key=key)
        if existing == content:
            logger.debug("theme_installer.asset_unchanged", extra={"store_id": store.store_id, "key": key})
            return False
        await self.client.put_asset(store=store, theme_id=theme_id, key=key, content=content)
        result.modifications.append(key)
        return True

    def _record(self, store: StoreContext, theme: Theme, result: InstallResult) -> None:
        try:
            self.recorder.record(theme_id=theme.id, modifications=result.modifications)
        except (OSError, ValueError):
            logger.exception(
                "theme_installer.manifest_write_failed",
                extra={"store_id": store.store_id, "theme_id": theme.id},
            )
            return
        self._advance(result, InstallStage.RECORDED, store)

    @staticmethod
    def _advance(result: InstallResult, stage: InstallStage, store: StoreContext) -> None:
        result.stage = stage
        logger.debug("theme_installer.stage", extra={"store_id": store.store_id, "stage": stage.value})
