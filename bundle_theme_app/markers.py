from __future__ import annotations

SNIPPET_NAME = "bundle-display"

# Any of these means a previous install (ours, or a manual one following our docs) is live.
_INSTALL_SIGNALS: tuple[str, ...] = (
    SNIPPET_NAME,
    "bundle_app.is_bundle",
)


def has_bundle_marker(content: str) -> bool:
    return any(signal in content for signal in _INSTALL_SIGNALS)
