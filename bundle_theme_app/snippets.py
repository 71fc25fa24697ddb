from __future__ import annotations

from bundle_theme_app.markers import SNIPPET_NAME

SNIPPET_KEY = f"snippets/{SNIPPET_NAME}.liquid"
SECTION_ID = SNIPPET_NAME
SECTION_TYPE = "bundle-display-section"
SECTION_KEY = f"sections/{SECTION_TYPE}.liquid"

TEMPLATE_INCLUDE_BLOCK = (
    "\n"
    "{% comment %} Bundle display - auto-installed {% endcomment %}\n"
    f"{{% render '{SNIPPET_NAME}', product: product %}}\n"
)

SNIPPET_CONTENT = """{% comment %}
  Bundle display. Managed by the bundle app theme installer; changes are overwritten on reinstall.
{% endcomment %}
{%- assign bundle_components = product.metafields.bundle_app.components.value -%}
{%- if product.metafields.bundle_app.is_bundle == 'true' and bundle_components != blank -%}
  <div class="bundle-display" data-product-id="{{ product.id }}">
    <p class="bundle-display__heading">This bundle includes:</p>
    <ul class="bundle-display__items">
      {%- for component in bundle_components -%}
        <li class="bundle-display__item">
          {%- if component.featured_image -%}
            {{ component.featured_image | image_url: width: 96 | image_tag: class: 'bundle-display__image', loading: 'lazy' }}
          {%- endif -%}
          <span class="bundle-display__title">{{ component.title | escape }}</span>
        </li>
      {%- endfor -%}
    </ul>
  </div>
{%- endif -%}
"""

SECTION_CONTENT = f"""<div class="bundle-display-section page-width">
  {{% if product.metafields.bundle_app.is_bundle == 'true' %}}
    {{% render '{SNIPPET_NAME}', product: product %}}
  {{% endif %}}
</div>

{{% schema %}}
{{
  "name": "Bundle Display",
  "settings": []
}}
{{% endschema %}}
"""
