"""
Fragment naming for the rendering cache.

A fragment name is the tuple ``(namespace, template_digest, layout_digest, key)``
with the layout digest omitted when no layout is rendered. Template digests
change whenever template source changes, which invalidates every entry
rendered from the old source without an explicit expiry.
"""

from typing import Any, Optional, Tuple
from urllib.parse import urlencode

from shared.errors import MissingCacheKeyError

RENDERING_NAMESPACE = "rendering"

FragmentName = Tuple[Any, ...]


def name_for(resolved_key: Any, template_identity: str, layout_identity: Optional[str] = None,
             namespace: str = RENDERING_NAMESPACE) -> FragmentName:
    """Build the fragment name for a rendered template (and layout)."""
    if resolved_key is None:
        raise MissingCacheKeyError()
    parts = [namespace, template_identity, layout_identity, resolved_key]
    return tuple(part for part in parts if part is not None)


def fragment_name_with_digest(resolved_key: Any, digestor: Any, template: Any,
                              layout: Optional[Any] = None) -> FragmentName:
    """Name a fragment using the identity provider's digests for template and layout."""
    template_identity = digestor.digest_for(template)
    layout_identity = digestor.digest_for(layout) if layout is not None else None
    return name_for(resolved_key, template_identity, layout_identity)


def retrieve_cache_key(key: Any) -> str:
    """Expand one key component into its string form."""
    cache_key = getattr(key, "cache_key", None)
    if cache_key is not None:
        return str(cache_key() if callable(cache_key) else cache_key)
    if isinstance(key, (list, tuple)):
        return "/".join(retrieve_cache_key(part) for part in key)
    if isinstance(key, dict):
        return urlencode(sorted((str(k), str(v)) for k, v in key.items()))
    return str(key)


def expand_cache_key(name: Any, namespace: Optional[str] = None) -> str:
    """Expand a fragment name or path into the string key handed to the store."""
    expanded = retrieve_cache_key(name)
    if namespace:
        return f"{namespace}/{expanded}"
    return expanded
