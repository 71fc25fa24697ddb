import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("BUNDLE_APP_INTERNAL_API_TOKEN", "internal_token")
os.environ.setdefault("BUNDLE_APP_DB_URL", "sqlite:///./test_bundle_theme_app.db")
os.environ.setdefault("THEME_BACKUP_DIR", "./test_theme_backups")

from bundle_theme_app.installer import ThemeInstaller  # noqa: E402
from bundle_theme_app.manifest import InstallationRecorder  # noqa: E402
from bundle_theme_app.shopify_api import ShopifyApiError, StoreContext, Theme  # noqa: E402

MAIN_THEME = Theme(id=101, name="Dawn", role="main")
DRAFT_THEME = Theme(id=202, name="Dawn (draft)", role="unpublished")


class FakeAssetClient:
    """In-memory stand-in for the Shopify asset API, scoped to a single theme."""

    def __init__(self, *, themes: list[Theme] | None = None, assets: dict[str, str] | None = None) -> None:
        self.themes = list(themes) if themes is not None else [DRAFT_THEME, MAIN_THEME]
        self.assets: dict[str, str] = dict(assets or {})
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], ShopifyApiError] = {}

    def fail(self, method: str, key: str = "", message: str = "Shopify PUT failed (500): boom") -> None:
        self.failures[(method, key)] = ShopifyApiError(message=message)

    def _record(self, method: str, key: str = "") -> None:
        self.calls.append((method, key))
        failure = self.failures.get((method, key))
        if failure is not None:
            raise failure

    def writes(self) -> list[str]:
        return [key for method, key in self.calls if method == "put_asset"]

    async def list_themes(self, *, store: StoreContext) -> list[Theme]:
        self._record("list_themes")
        return list(self.themes)

    async def get_asset(self, *, store: StoreContext, theme_id: int, key: str) -> str | None:
        assert theme_id == MAIN_THEME.id
        self._record("get_asset", key)
        return self.assets.get(key)

    async def put_asset(self, *, store: StoreContext, theme_id: int, key: str, content: str) -> None:
        assert theme_id == MAIN_THEME.id
        self._record("put_asset", key)
        self.assets[key] = content

    async def delete_asset(self, *, store: StoreContext, theme_id: int, key: str) -> bool:
        assert theme_id == MAIN_THEME.id
        self._record("delete_asset", key)
        return self.assets.pop(key, None) is not None


@pytest.fixture()
def store() -> StoreContext:
    return StoreContext(store_id="store-1", shop_domain="example.myshopify.com", access_token="shpat_token")


@pytest.fixture()
def asset_client() -> FakeAssetClient:
    return FakeAssetClient()


@pytest.fixture()
def recorder(tmp_path) -> InstallationRecorder:
    return InstallationRecorder(tmp_path / "backups")


@pytest.fixture()
def installer(asset_client, recorder) -> ThemeInstaller:
    return ThemeInstaller(asset_client, recorder)
