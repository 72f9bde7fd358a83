"""In-memory catalog of sites, forms and comment policies.

The catalog is the read-only collaborator the intake pipeline consults to
resolve a site and its forms.  It can be populated programmatically or from
a YAML file shaped like::

    sites:
      - id: site-demo
        slug: demo
        comment_policy:
          moderation_mode: manual
        forms:
          - id: form-contact
            name: contact-form
            fields:
              - key: name
                required: true
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional

import yaml

from intake.errors import NotFoundError
from intake.forms.models import (
    CommentPolicy,
    ContactShareConfig,
    FieldDefinition,
    FormDefinition,
    Site,
    ValidationRule,
)


def _normalize(identifier: str) -> str:
    return identifier.strip().lower()


class CatalogRegistry:
    """Lookup of sites (by id or slug) and the forms they own."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sites: dict[str, Site] = {}
        self._forms: dict[tuple[str, str], FormDefinition] = {}
        self._policies: dict[str, CommentPolicy] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_site(self, site: Site, policy: Optional[CommentPolicy] = None) -> Site:
        with self._lock:
            self._sites[site.id] = site
            self._policies[site.id] = policy or CommentPolicy()
        return site

    def register_form(self, form: FormDefinition) -> FormDefinition:
        with self._lock:
            if form.site_id not in self._sites:
                raise NotFoundError("site", form.site_id)
            self._forms[(form.site_id, _normalize(form.id))] = form
        return form

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_site(self, identifier: str) -> Optional[Site]:
        """Return the site whose id or slug matches *identifier*."""
        key = _normalize(identifier)
        with self._lock:
            for site in self._sites.values():
                if _normalize(site.id) == key or _normalize(site.slug) == key:
                    return site
        return None

    def get_site(self, identifier: str) -> Site:
        site = self.find_site(identifier)
        if site is None:
            raise NotFoundError("site", identifier)
        return site

    def get_form(self, site_id: str, form_id: str) -> FormDefinition:
        with self._lock:
            form = self._forms.get((site_id, _normalize(form_id)))
        if form is None:
            raise NotFoundError("form", form_id)
        return form

    def list_forms(self, site_id: Optional[str] = None) -> list[FormDefinition]:
        with self._lock:
            forms = list(self._forms.values())
        if site_id:
            forms = [f for f in forms if f.site_id == site_id]
        return forms

    def get_comment_policy(self, site_id: str) -> CommentPolicy:
        with self._lock:
            return self._policies.get(site_id) or CommentPolicy()


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def _rule_from_dict(d: dict[str, Any]) -> ValidationRule:
    return ValidationRule(
        type=d["type"],
        value=d.get("value"),
        message=d.get("message", ""),
    )


def _field_from_dict(d: dict[str, Any]) -> FieldDefinition:
    return FieldDefinition(
        key=d["key"],
        label=d.get("label", ""),
        type=d.get("type", "text"),
        required=bool(d.get("required", False)),
        validation=[_rule_from_dict(r) for r in d.get("validation", []) or []],
        options=list(d.get("options", []) or []),
        placeholder=d.get("placeholder", ""),
    )


def form_from_dict(site_id: str, d: dict[str, Any]) -> FormDefinition:
    """Build a FormDefinition from its YAML/JSON mapping."""
    share = d.get("contact_share") or {}
    return FormDefinition(
        id=d["id"],
        site_id=site_id,
        name=d.get("name", d["id"]),
        title=d.get("title", ""),
        fields=[_field_from_dict(f) for f in d.get("fields", []) or []],
        page_id=d.get("page_id"),
        post_id=d.get("post_id"),
        is_active=d.get("is_active", True),
        enable_honeypot=d.get("enable_honeypot", True),
        moderation_mode=d.get("moderation_mode", "manual"),
        notification_webhook=d.get("notification_webhook"),
        webhook_secret=d.get("webhook_secret", ""),
        success_message=d.get("success_message", ""),
        contact_share=ContactShareConfig(
            **{k: v for k, v in share.items() if k in ContactShareConfig.__dataclass_fields__}
        ),
    )


def load_catalog(path: str | Path, registry: Optional[CatalogRegistry] = None) -> CatalogRegistry:
    """Populate *registry* (or a new one) from a catalog YAML file."""
    registry = registry or CatalogRegistry()
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    for site_data in data.get("sites", []) or []:
        site = Site(
            id=site_data["id"],
            slug=site_data.get("slug", site_data["id"]),
            name=site_data.get("name", ""),
        )
        policy_data = site_data.get("comment_policy") or {}
        policy = CommentPolicy(
            **{k: v for k, v in policy_data.items() if k in CommentPolicy.__dataclass_fields__}
        )
        registry.register_site(site, policy)
        for form_data in site_data.get("forms", []) or []:
            registry.register_form(form_from_dict(site.id, form_data))

    return registry
