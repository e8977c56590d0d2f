"""URI and request-option helpers shared by the API clients.

Two small helpers live here:

- ``extend`` merges request options or API resources, appending list values
  and overwriting everything else.
- ``modify_url_query_string`` inserts or replaces a single ``key=value`` pair
  in a URL's query string (used to walk paged API responses).
"""

from collections.abc import Mapping, MutableMapping
from typing import Any

from audience_manager_mcp.core.exceptions import ValidationError


def extend(
    original: MutableMapping[str, Any] | None, extension: Mapping[str, Any]
) -> MutableMapping[str, Any] | Mapping[str, Any]:
    """Extend ``original`` with the values in ``extension``.

    List values in ``extension`` are appended to existing lists in
    ``original``; every other value overrides its counterpart in ``original``
    (a shallow overwrite, nested mappings are not merged). Keys that only
    exist in ``original`` are left untouched.

    ``original`` is modified in place and returned. When ``original`` is
    ``None`` the ``extension`` object itself is returned, so the result is
    shared with the caller's input and must not be mutated by either party
    afterwards. ``extension`` is never modified.

    Args:
        original: The mapping to extend, may be None
        extension: The values to extend with

    Returns:
        The extended mapping

    Raises:
        ValidationError: If ``extension`` is None or not a mapping
    """
    if extension is None:
        raise ValidationError("extension must be a mapping, got None")
    if not isinstance(extension, Mapping):
        raise ValidationError(
            f"extension must be a mapping, got {type(extension).__name__}"
        )

    if original is None:
        return extension

    for key, value in extension.items():
        current = original.get(key)
        if isinstance(value, list) and isinstance(current, list):
            current.extend(value)
        else:
            original[key] = value

    return original


def modify_url_query_string(url: str, key: str, value: Any) -> str:
    """Insert or replace ``key=value`` in the query string of ``url``.

    The query string is split into its ``&``-separated parameters and every
    parameter named exactly ``key`` gets its value replaced. If the key is
    duplicated, all occurrences are rewritten identically. When no parameter
    is named ``key``, ``key=value`` is appended to the end of ``url`` as is,
    using ``?`` if the URL has no ``?`` yet and ``&`` otherwise. A trailing
    ``?`` or ``&`` still gets a separator and a fragment is not moved.
    Replacing a value keeps the path, the other parameters and any fragment.
    No percent-encoding or decoding is performed.

    Args:
        url: The URL to modify
        key: The query parameter name
        value: The value to set, converted with ``str()``

    Returns:
        The modified URL

    Raises:
        ValidationError: If ``url`` is not a string or ``key`` is empty
    """
    if url is None:
        raise ValidationError("url must be a string, got None")
    if not isinstance(url, str):
        raise ValidationError(f"url must be a string, got {type(url).__name__}")
    if not isinstance(key, str) or not key:
        raise ValidationError("key must be a non-empty string")

    param = f"{key}={value}"

    base, hash_sign, fragment = url.partition("#")
    path, _, query = base.partition("?")
    params = query.split("&") if query else []

    replaced = False
    for index, existing in enumerate(params):
        if existing.split("=", 1)[0] == key:
            params[index] = param
            replaced = True

    if not replaced:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{param}"

    return f"{path}?{'&'.join(params)}{hash_sign}{fragment}"
