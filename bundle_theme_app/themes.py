from __future__ import annotations

import logging
from typing import Protocol

from bundle_theme_app.shopify_api import StoreContext, Theme

logger = logging.getLogger(__name__)

MAIN_THEME_ROLE = "main"


class ThemeLister(Protocol):
    async def list_themes(self, *, store: StoreContext) -> list[Theme]: ...


async def resolve_active_theme(client: ThemeLister, *, store: StoreContext) -> Theme | None:
    """Return the single published theme, or None when there is not exactly one."""
    themes = await client.list_themes(store=store)
    matches = [theme for theme in themes if theme.role == MAIN_THEME_ROLE]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        logger.warning(
            "themes.multiple_main_themes",
            extra={"store_id": store.store_id, "theme_ids": [theme.id for theme in matches]},
        )
    return None
