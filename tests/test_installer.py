from __future__ import annotations

import asyncio
import json

from bundle_theme_app.installer import (
    ALREADY_INSTALLED_MESSAGE,
    INSTALLED_MESSAGE,
    MANUAL_INSTALL_MESSAGE,
    NO_ACTIVE_THEME_ERROR,
    PRODUCT_TEMPLATE_KEYS,
    UNINSTALLED_MESSAGE,
    InstallStage,
    ThemeInstaller,
)
from bundle_theme_app.manifest import InstallationRecorder
from bundle_theme_app.snippets import (
    SECTION_CONTENT,
    SECTION_KEY,
    SNIPPET_CONTENT,
    SNIPPET_KEY,
    TEMPLATE_INCLUDE_BLOCK,
)
from conftest import DRAFT_THEME, MAIN_THEME, FakeAssetClient

_LIQUID_TEMPLATE = '<div class="product">\n  <button name="add">Buy</button>\n</div>\n'


def _install(installer: ThemeInstaller, store):
    return asyncio.run(installer.install_bundle_display(store))


def test_install_patches_liquid_template_before_add_button(installer, asset_client, recorder, store):
    asset_client.assets["templates/product.liquid"] = _LIQUID_TEMPLATE

    result = _install(installer, store)

    assert result.to_payload() == {
        "success": True,
        "theme": "Dawn",
        "snippetInstalled": True,
        "templateUpdated": True,
        "templateKey": "templates/product.liquid",
        "stage": "done",
        "message": INSTALLED_MESSAGE,
    }
    button_index = _LIQUID_TEMPLATE.index("<button")
    assert asset_client.assets["templates/product.liquid"] == (
        _LIQUID_TEMPLATE[:button_index] + TEMPLATE_INCLUDE_BLOCK + "\n" + _LIQUID_TEMPLATE[button_index:]
    )
    assert asset_client.assets[SNIPPET_KEY] == SNIPPET_CONTENT
    assert asset_client.writes() == ["templates/product.liquid", SNIPPET_KEY]

    manifest = json.loads(recorder.manifest_path(MAIN_THEME.id).read_text(encoding="utf-8"))
    assert len(manifest) == 1
    assert manifest[0]["themeId"] == MAIN_THEME.id
    assert manifest[0]["modifications"] == ["templates/product.liquid", SNIPPET_KEY]


def test_second_install_is_a_noop_with_identical_content(installer, asset_client, store):
    asset_client.assets["templates/product.liquid"] = _LIQUID_TEMPLATE

    first = _install(installer, store)
    after_first = dict(asset_client.assets)
    writes_after_first = len(asset_client.writes())
    second = _install(installer, store)

    assert first.template_updated is True
    assert second.success is True
    assert second.template_updated is True
    assert second.snippet_installed is True
    assert second.stage is InstallStage.ALREADY_INSTALLED
    assert second.message == ALREADY_INSTALLED_MESSAGE
    assert second.modifications == []
    assert asset_client.assets == after_first
    assert len(asset_client.writes()) == writes_after_first


def test_reinstall_keeps_audit_record_of_first_install(installer, asset_client, recorder, store):
    asset_client.assets["templates/product.liquid"] = '<button name="add">Buy</button>'

    _install(installer, store)
    _install(installer, store)

    records = recorder.load_records(MAIN_THEME.id)
    assert [entry["modifications"] for entry in records] == [["templates/product.liquid", SNIPPET_KEY], []]


def test_install_without_main_theme_fails_before_touching_assets(recorder, store):
    client = FakeAssetClient(themes=[DRAFT_THEME])
    installer = ThemeInstaller(client, recorder)

    result = _install(installer, store)

    assert result.to_payload() == {"success": False, "error": NO_ACTIVE_THEME_ERROR}
    assert client.calls == [("list_themes", "")]
    assert not recorder.manifest_path(DRAFT_THEME.id).exists()


def test_identical_snippet_is_not_rewritten(installer, asset_client, store):
    asset_client.assets["templates/product.liquid"] = _LIQUID_TEMPLATE + TEMPLATE_INCLUDE_BLOCK
    asset_client.assets[SNIPPET_KEY] = SNIPPET_CONTENT

    result = _install(installer, store)

    assert result.snippet_installed is True
    assert asset_client.writes() == []


def test_outdated_snippet_is_overwritten(installer, asset_client, store):
    asset_client.assets["templates/product.liquid"] = _LIQUID_TEMPLATE
    asset_client.assets[SNIPPET_KEY] = "{% comment %}old version{% endcomment %}"

    result = _install(installer, store)

    assert result.snippet_installed is True
    assert asset_client.assets[SNIPPET_KEY] == SNIPPET_CONTENT
    assert SNIPPET_KEY in result.modifications


def test_template_keys_are_tried_in_priority_order(installer, asset_client, store):
    asset_client.assets["templates/product.liquid"] = ""
    asset_client.assets["templates/product.json"] = json.dumps(
        {"sections": {"main": {"type": "main-product"}}, "order": ["main"]}
    )
    asset_client.assets["sections/main-product.liquid"] = _LIQUID_TEMPLATE

    result = _install(installer, store)

    assert result.template_key == "templates/product.json"
    assert [key for method, key in asset_client.calls if method == "get_asset"][:2] == [
        "templates/product.liquid",
        "templates/product.json",
    ]
    assert asset_client.assets["sections/main-product.liquid"] == _LIQUID_TEMPLATE


def test_json_template_gets_section_asset_before_template_reference(installer, asset_client, store):
    asset_client.assets["templates/product.json"] = json.dumps(
        {
            "sections": {
                "header": {"type": "header"},
                "main": {"type": "main-product", "settings": {}},
                "footer": {"type": "footer"},
            },
            "order": ["header", "main", "footer"],
        }
    )

    result = _install(installer, store)

    assert result.stage is InstallStage.DONE
    assert asset_client.writes() == [SECTION_KEY, "templates/product.json", SNIPPET_KEY]
    assert asset_client.assets[SECTION_KEY] == SECTION_CONTENT
    template = json.loads(asset_client.assets["templates/product.json"])
    assert template["order"] == ["header", "main", "bundle-display", "footer"]
    assert template["sections"]["bundle-display"] == {"type": "bundle-display-section", "settings": {}}

    second = _install(installer, store)
    assert second.stage is InstallStage.ALREADY_INSTALLED
    assert asset_client.writes() == [SECTION_KEY, "templates/product.json", SNIPPET_KEY]


def test_json_template_without_main_product_requires_manual_install(installer, asset_client, store):
    content = json.dumps({"sections": {"hero": {"type": "image-banner"}}, "order": ["hero"]})
    asset_client.assets["templates/product.json"] = content

    result = _install(installer, store)

    assert result.to_payload()["success"] is True
    assert result.template_updated is False
    assert result.snippet_installed is True
    assert result.stage is InstallStage.MANUAL_REQUIRED
    assert result.message == MANUAL_INSTALL_MESSAGE
    assert asset_client.assets["templates/product.json"] == content
    assert asset_client.writes() == [SNIPPET_KEY]


def test_missing_product_template_still_installs_snippet(installer, asset_client, recorder, store):
    result = _install(installer, store)

    assert result.success is True
    assert result.stage is InstallStage.MANUAL_REQUIRED
    assert result.template_key is None
    assert result.template_updated is False
    assert result.snippet_installed is True
    looked_up = [key for method, key in asset_client.calls if method == "get_asset"]
    assert looked_up[: len(PRODUCT_TEMPLATE_KEYS)] == list(PRODUCT_TEMPLATE_KEYS)
    assert recorder.manifest_path(MAIN_THEME.id).exists()


def test_json_template_that_is_not_a_composition_is_left_untouched(installer, asset_client, store):
    content = json.dumps(
        {"sections": {"main": {"type": "custom-liquid", "settings": {"custom_liquid": "<button name='add'>Buy</button>"}}}}
    )
    asset_client.assets["templates/product.json"] = content

    result = _install(installer, store)

    assert result.success is True
    assert result.stage is InstallStage.MANUAL_REQUIRED
    assert result.template_key == "templates/product.json"
    assert result.template_updated is False
    assert asset_client.assets["templates/product.json"] == content
    assert asset_client.writes() == [SNIPPET_KEY]


def test_template_without_anchor_is_left_untouched(installer, asset_client, store):
    content = "<section>{{ product.description }}</section>\n"
    asset_client.assets["sections/product-template.liquid"] = content

    result = _install(installer, store)

    assert result.success is True
    assert result.template_key == "sections/product-template.liquid"
    assert result.template_updated is False
    assert asset_client.assets["sections/product-template.liquid"] == content
    assert asset_client.writes() == [SNIPPET_KEY]


def test_remote_failure_on_template_write_aborts_without_snippet(installer, asset_client, recorder, store):
    asset_client.assets["templates/product.liquid"] = _LIQUID_TEMPLATE
    asset_client.fail("put_asset", "templates/product.liquid")

    result = _install(installer, store)

    assert result.stage is InstallStage.FAILED
    assert result.to_payload() == {"success": False, "error": "Shopify PUT failed (500): boom"}
    assert SNIPPET_KEY not in asset_client.assets
    assert not recorder.manifest_path(MAIN_THEME.id).exists()


def test_snippet_failure_after_template_write_reports_partial_install(installer, asset_client, store):
    asset_client.assets["templates/product.liquid"] = _LIQUID_TEMPLATE
    asset_client.fail("put_asset", SNIPPET_KEY)

    result = _install(installer, store)

    assert result.to_payload() == {
        "success": False,
        "error": "Shopify PUT failed (500): boom",
        "snippetInstalled": False,
        "templateUpdated": True,
    }
    assert TEMPLATE_INCLUDE_BLOCK in asset_client.assets["templates/product.liquid"]


def test_theme_listing_failure_is_reported(installer, asset_client, store):
    asset_client.fail("list_themes", message="Shopify GET /themes.json failed (401): Invalid API key")

    result = _install(installer, store)

    assert result.to_payload() == {
        "success": False,
        "error": "Shopify GET /themes.json failed (401): Invalid API key",
    }


def test_manifest_write_failure_does_not_fail_install(asset_client, store, tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory", encoding="utf-8")
    installer = ThemeInstaller(asset_client, InstallationRecorder(blocker / "backups"))
    asset_client.assets["templates/product.liquid"] = _LIQUID_TEMPLATE

    result = _install(installer, store)

    assert result.success is True
    assert result.stage is InstallStage.DONE


def test_uninstall_removes_snippet_but_leaves_template(installer, asset_client, store):
    patched = _LIQUID_TEMPLATE + TEMPLATE_INCLUDE_BLOCK
    asset_client.assets["templates/product.liquid"] = patched
    asset_client.assets[SNIPPET_KEY] = SNIPPET_CONTENT

    result = asyncio.run(installer.uninstall_bundle_display(store))

    assert result.to_payload() == {"success": True, "message": UNINSTALLED_MESSAGE}
    assert result.snippet_removed is True
    assert SNIPPET_KEY not in asset_client.assets
    assert asset_client.assets["templates/product.liquid"] == patched
    assert asset_client.writes() == []


def test_uninstall_treats_missing_snippet_as_already_absent(installer, asset_client, store):
    result = asyncio.run(installer.uninstall_bundle_display(store))

    assert result.success is True
    assert result.snippet_removed is False


def test_uninstall_without_main_theme_fails(recorder, store):
    installer = ThemeInstaller(FakeAssetClient(themes=[]), recorder)

    result = asyncio.run(installer.uninstall_bundle_display(store))

    assert result.to_payload() == {"success": False, "error": NO_ACTIVE_THEME_ERROR}


def test_check_installation_reports_snippet_presence(installer, asset_client, store):
    missing = asyncio.run(installer.check_installation(store))
    asset_client.assets[SNIPPET_KEY] = SNIPPET_CONTENT
    present = asyncio.run(installer.check_installation(store))

    assert missing.to_payload() == {
        "success": True,
        "installed": False,
        "theme": "Dawn",
        "message": "Bundle display is not installed",
    }
    assert present.installed is True
    assert present.message == "Bundle display is installed"


def test_check_installation_surfaces_remote_errors(installer, asset_client, store):
    asset_client.fail("get_asset", SNIPPET_KEY, message="Timed out while calling Shopify GET /themes/101/assets.json.")

    result = asyncio.run(installer.check_installation(store))

    assert result.to_payload() == {
        "success": False,
        "error": "Timed out while calling Shopify GET /themes/101/assets.json.",
    }
