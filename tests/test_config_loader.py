from decimal import Decimal

import pytest

from django_boxoffice.config_loader import load_catalog_config


def _write(tmp_path, text):
    config_file = tmp_path / "catalog.toml"
    config_file.write_text(text)
    return config_file


def test_load_catalog_config_parses_prices_as_decimal(tmp_path):
    config_file = _write(
        tmp_path,
        """[catalog]
name = "Summer Concert"

[[catalog.categories]]
code = "gold"
name = "Gold Circle"
price = 450.50
quantity = 200
series = "GOLD"

[[catalog.categories]]
name = "General Access"
price = 99
quantity = 1000
""",
    )

    catalog = load_catalog_config(config_file)

    gold, general = catalog["categories"]
    assert isinstance(gold["price"], Decimal)
    assert gold["price"] == Decimal("450.50")
    assert general["price"] == Decimal("99")
    assert general["code"] == "general-access"
    assert catalog["name"] == "Summer Concert"


def test_load_catalog_config_rejects_duplicate_generated_codes(tmp_path):
    config_file = _write(
        tmp_path,
        """[catalog]

[[catalog.categories]]
name = "Tribune"
price = 100
quantity = 10

[[catalog.categories]]
name = "tribune"
price = 120
quantity = 10
""",
    )

    with pytest.raises(ValueError, match="duplicate codes: tribune"):
        load_catalog_config(config_file)


def test_load_catalog_config_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError, match="Catalog config file not found"):
        load_catalog_config(tmp_path / "missing.toml")


def test_load_catalog_config_invalid_toml(tmp_path):
    config_file = _write(tmp_path, "this is [[[not valid toml")

    with pytest.raises(ValueError, match="Invalid TOML in"):
        load_catalog_config(config_file)


def test_load_catalog_config_missing_catalog_table(tmp_path):
    config_file = _write(tmp_path, '[other]\nname = "x"\n')

    with pytest.raises(ValueError, match=r"Missing required \[catalog\] table"):
        load_catalog_config(config_file)


def test_load_catalog_config_requires_categories(tmp_path):
    config_file = _write(tmp_path, '[catalog]\nname = "Empty"\n')

    with pytest.raises(ValueError, match="catalog.categories must be a non-empty list"):
        load_catalog_config(config_file)


def test_load_catalog_config_missing_category_fields(tmp_path):
    config_file = _write(
        tmp_path,
        """[catalog]

[[catalog.categories]]
name = "Gold"
price = 100
""",
    )

    with pytest.raises(ValueError, match=r"catalog.categories\[0\] is missing required fields: quantity"):
        load_catalog_config(config_file)


def test_load_catalog_config_rejects_negative_price(tmp_path):
    config_file = _write(
        tmp_path,
        """[catalog]

[[catalog.categories]]
name = "Gold"
price = -1
quantity = 10
""",
    )

    with pytest.raises(ValueError, match="price must not be negative"):
        load_catalog_config(config_file)


def test_load_catalog_config_rejects_string_price(tmp_path):
    config_file = _write(
        tmp_path,
        """[catalog]

[[catalog.categories]]
name = "Gold"
price = "cheap"
quantity = 10
""",
    )

    with pytest.raises(TypeError, match="price must be a number"):
        load_catalog_config(config_file)


def test_load_catalog_config_rejects_fractional_quantity(tmp_path):
    config_file = _write(
        tmp_path,
        """[catalog]

[[catalog.categories]]
name = "Gold"
price = 10
quantity = 2.5
""",
    )

    with pytest.raises(ValueError, match="quantity must be a non-negative integer"):
        load_catalog_config(config_file)
