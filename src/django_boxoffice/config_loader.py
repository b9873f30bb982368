"""TOML loader for ticket catalog bootstrap configuration.

Loads and validates a catalog TOML file so that ticket categories can be
created programmatically::

    [catalog]
    name = "Summer Concert"

    [[catalog.categories]]
    code = "gold"
    name = "Gold Circle"
    price = 450.00
    quantity = 200
    series = "GOLD"
"""

import re
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

_REQUIRED_CATEGORY_FIELDS: set[str] = {"name", "price", "quantity"}

_CODE_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"[-\s]+")


def _slugify(value: str) -> str:
    """Convert a string to a URL-friendly code.

    Args:
        value: The string to slugify.

    Returns:
        Lowercase, hyphen-separated code.
    """
    value = _CODE_RE.sub("", value.lower())
    return _WHITESPACE_RE.sub("-", value).strip("-")


def _ensure_codes(items: list[dict[str, Any]], label: str) -> None:
    """Add a ``code`` key derived from ``name`` to each item that lacks one."""
    for idx, item in enumerate(items):
        if "code" not in item:
            if "name" not in item:
                msg = f"{label}[{idx}] is missing required field: name"
                raise ValueError(msg)
            item["code"] = _slugify(item["name"])


def _validate_unique_codes(items: list[dict[str, Any]], label: str) -> None:
    """Ensure each item has a unique, non-empty string code."""
    seen: set[str] = set()
    duplicates: set[str] = set()

    for idx, item in enumerate(items):
        code = item.get("code")
        if not isinstance(code, str) or not code:
            msg = f"{label}[{idx}].code must be a non-empty string"
            raise ValueError(msg)
        if code in seen:
            duplicates.add(code)
        seen.add(code)

    if duplicates:
        msg = f"{label} has duplicate codes: {', '.join(sorted(duplicates))}"
        raise ValueError(msg)


def _validate_category_values(item: dict[str, Any], label: str) -> None:
    """Normalize ``price`` to ``Decimal`` and check the quantity is a count."""
    price = item["price"]
    if isinstance(price, bool) or not isinstance(price, (int, Decimal)):
        msg = f"{label}.price must be a number"
        raise TypeError(msg)
    price = Decimal(price)
    if price < 0:
        msg = f"{label}.price must not be negative"
        raise ValueError(msg)
    item["price"] = price

    quantity = item["quantity"]
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        msg = f"{label}.quantity must be a non-negative integer"
        raise ValueError(msg)


def load_catalog_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a catalog TOML configuration file.

    Args:
        path: Filesystem path to the TOML file.

    Returns:
        The ``catalog`` mapping from the parsed TOML. Prices are ``Decimal``
        and codes are auto-generated from ``name`` when not explicitly
        provided.

    Raises:
        FileNotFoundError: If *path* does not exist.
        TypeError: If a table or value has the wrong shape.
        ValueError: If required keys or fields are missing, or the file is
            not valid TOML.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Catalog config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as fh:
        try:
            data: dict[str, Any] = tomllib.load(fh, parse_float=Decimal)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid TOML in {path}: {exc}"
            raise ValueError(msg) from exc

    if "catalog" not in data:
        msg = "Missing required [catalog] table in config file"
        raise ValueError(msg)

    catalog = data["catalog"]
    _validate_mapping(catalog, set(), "catalog")

    label = "catalog.categories"
    categories = catalog.get("categories")
    if not isinstance(categories, list) or not categories:
        msg = f"{label} must be a non-empty list"
        raise ValueError(msg)

    for idx, item in enumerate(categories):
        _validate_mapping(item, _REQUIRED_CATEGORY_FIELDS, f"{label}[{idx}]")
        _validate_category_values(item, f"{label}[{idx}]")

    _ensure_codes(categories, label)
    _validate_unique_codes(categories, label)
    return catalog


def _validate_mapping(mapping: object, required: set[str], label: str) -> None:
    """Validate that *mapping* is a dict containing all *required* keys.

    Raises:
        TypeError: If *mapping* is not a dict.
        ValueError: If *mapping* is missing required keys.
    """
    if not isinstance(mapping, dict):
        msg = f"{label} must be a mapping, got {type(mapping).__name__}"
        raise TypeError(msg)
    missing = required - mapping.keys()
    if missing:
        msg = f"{label} is missing required fields: {', '.join(sorted(missing))}"
        raise ValueError(msg)
