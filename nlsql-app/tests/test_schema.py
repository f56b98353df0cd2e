from __future__ import annotations

import pytest

from backend.db import duck
from backend.errors import NotFoundError, ValidationError
from backend.services import schema


@pytest.fixture
def customers():
    duck.fetch("CREATE SEQUENCE customers_id_seq START 1")
    duck.fetch(
        """
        CREATE TABLE customers (
            id INTEGER PRIMARY KEY DEFAULT nextval('customers_id_seq'),
            email VARCHAR UNIQUE,
            name VARCHAR
        )
        """
    )
    duck.fetch("CREATE INDEX idx_customers_name ON customers (name)")
    duck.fetch("INSERT INTO customers (email, name) VALUES ('a@x.io', 'Ana'), ('b@x.io', 'Bo'), ('c@x.io', 'Cy')")
    yield "customers"


@pytest.mark.parametrize("name", ["", "bad-name", "two words", "x;DROP", "tabela_ç", "t.x", "users\n"])
def test_invalid_table_names_are_rejected(name):
    with pytest.raises(ValidationError):
        schema.validate_table_name(name)


def test_valid_table_name_is_quoted():
    assert schema.validate_table_name("Orders_2024") == "Orders_2024"
    assert schema.quote_identifier("orders") == '"orders"'


def test_schema_text_lists_columns_keys_and_indexes(customers):
    text = schema.build_schema()
    assert "Table: customers" in text
    assert "- id (INTEGER) [PRI] (auto_increment)" in text
    assert "- email (VARCHAR) [UNI]" in text
    assert "- name (VARCHAR)" in text
    assert "Indices:" in text
    assert "- idx_customers_name: name" in text


def test_describe_schema_is_cached_until_rebuilt(customers):
    before = schema.describe_schema()
    duck.fetch("CREATE TABLE orders (id INTEGER)")
    assert schema.describe_schema() == before
    assert "Table: orders" in schema.build_schema()
    assert "Table: orders" in schema.describe_schema()


def test_list_tables_is_sorted(customers):
    duck.fetch("CREATE TABLE accounts (id INTEGER)")
    assert schema.list_tables() == ["accounts", "customers"]


def test_table_schema_for_unknown_table():
    with pytest.raises(NotFoundError):
        schema.table_schema("ghost")


def test_primary_key_metadata(customers):
    assert schema.primary_key("customers") == {
        "column": "id",
        "type": "INTEGER",
        "auto_increment": True,
        "is_numeric": True,
    }


def test_primary_key_edge_cases():
    duck.fetch("CREATE TABLE codes (code VARCHAR PRIMARY KEY)")
    duck.fetch("CREATE TABLE notes (body VARCHAR)")
    assert schema.primary_key("codes")["is_numeric"] is False
    assert schema.primary_key("notes") is None
    assert schema.primary_key("not a table") is None
    assert schema.primary_key("codes\n") is None


def test_sample_rows_respects_limit_and_validation(customers):
    sample = schema.sample_rows("customers", 2)
    assert sample["columns"] == ["id", "email", "name"]
    assert len(sample["rows"]) == 2
    with pytest.raises(ValidationError):
        schema.sample_rows("customers;--")
    with pytest.raises(NotFoundError):
        schema.sample_rows("ghost")


def test_column_values(customers):
    assert sorted(schema.column_values("customers", "id")) == [1, 2, 3]


def test_warm_schema_reports_duration(customers):
    assert isinstance(schema.warm_schema(), float)
