"""
Action cache paths.

Whole-response entries are keyed by the request URL rather than by a
fragment name. Different representations of the same resource
(``/lists`` and ``/lists.json``) are cached separately, and ``/lists/`` is
the same entry as ``/lists/index``.

Expiry must not infer the extension from the request issuing it: expiring
``{"action": "show"}`` and ``{"action": "show", "format": "json"}`` are two
different entries, so the builder has an inferring mode (read/write during a
request) and a format-fixed mode (expiry).
"""

import mimetypes
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from urllib.parse import quote, unquote, urlsplit

DEFAULT_FORMAT = "html"

# Characters the RFC 2396 escaper leaves untouched
_EXTENSION_SAFE = ";/?:@&=+$,[]!*'()"


@dataclass(frozen=True)
class ActionCachePath:
    path: str
    extension: Optional[str] = None


class ActionCachePathBuilder:
    """Canonicalizes request URLs into action cache paths."""

    def __init__(self, include_host: bool = False):
        self.include_host = include_host

    def build(self, resolved_url: str, explicit_format: Optional[str] = None,
              infer_extension: bool = True, negotiated_format: Optional[str] = DEFAULT_FORMAT) -> ActionCachePath:
        if infer_extension:
            extension = self.infer_extension(explicit_format, negotiated_format)
        else:
            extension = str(explicit_format) if explicit_format else None

        path = self._strip_origin(resolved_url)
        return ActionCachePath(self._normalize(path, extension), extension)

    @staticmethod
    def infer_extension(explicit_format: Optional[str], negotiated_format: Optional[str]) -> Optional[str]:
        if explicit_format:
            return str(explicit_format)
        if negotiated_format and negotiated_format != DEFAULT_FORMAT:
            return str(negotiated_format)
        return None

    def for_controller(self, controller: Any, options: Union[Dict[str, Any], str, None] = None,
                       infer_extension: bool = True) -> ActionCachePath:
        """Build the path for ``controller``'s current request (or the URL ``options`` describe)."""
        if options is None:
            options = {}

        if infer_extension:
            explicit_format = controller.params.get("format")
            negotiated_format = controller.request.format
        else:
            explicit_format = options.get("format") if isinstance(options, dict) else None
            negotiated_format = None

        url = controller.url_for(options)
        return self.build(url, explicit_format, infer_extension, negotiated_format)

    def _strip_origin(self, url: str) -> str:
        parts = urlsplit(url)
        if not parts.scheme and not parts.netloc:
            return url

        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        if self.include_host:
            path = f"{parts.netloc}{path}"
        return path

    @staticmethod
    def _normalize(path: str, extension: Optional[str]) -> str:
        path, sep, query = path.partition("?")
        if path.endswith("/"):
            path += "index"
        if extension:
            ext = quote(extension, safe=_EXTENSION_SAFE)
            if not path.endswith(f".{ext}"):
                path += f".{ext}"
        # The extension belongs to the path, never to the query string
        return unquote(f"{path}{sep}{query}")


def content_type_for(extension: Optional[str]) -> Optional[str]:
    """MIME type for a cache path extension; HTML when there is none."""
    content_type, _ = mimetypes.guess_type(f"response.{extension or DEFAULT_FORMAT}")
    return content_type
