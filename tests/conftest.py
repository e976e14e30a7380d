"""
Shared test fixtures.

Settings are read at import time, so required environment values are
set here before any application module is imported.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

from io import BytesIO
from typing import Optional

import pandas as pd
import pytest

from config import Settings
from models.product import CatalogRecord, StockUpdate
from exceptions import TransientStorageError, PermanentStorageError
from tests.factories import CatalogRecordFactory


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data=None, count: int = None):
        self.data = data if data is not None else []
        self.count = count if count is not None else (len(self.data) if isinstance(self.data, list) else None)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, data: list = None, error: Exception = None):
        self._data = data or []
        self._error = error
        self._range = None

    def select(self, *args, **kwargs):
        return self

    def order(self, column, **kwargs):
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._error is not None:
            raise self._error
        data = self._data
        if self._range is not None:
            start, end = self._range
            data = data[start:end + 1]
        return MockSupabaseResponse(data=data, count=len(self._data))


class MockSupabaseRpc:
    """Mock RPC call; records its parameters on the client."""

    def __init__(self, client: "MockSupabaseClient", name: str, params: dict):
        self._client = client
        self._name = name
        self._params = params

    def execute(self) -> MockSupabaseResponse:
        self._client.rpc_calls.append((self._name, self._params))
        if self._client.rpc_errors:
            error = self._client.rpc_errors.pop(0)
            if error is not None:
                raise error
        return MockSupabaseResponse(data=len(self._params.get("updates", [])))


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables = {}
        self._table_errors = {}
        self.rpc_calls: list[tuple[str, dict]] = []
        # Consumed one per rpc().execute(); None means success
        self.rpc_errors: list[Optional[Exception]] = []

    def set_table_data(self, table_name: str, data: list):
        """Configure mock data for a table."""
        self._tables[table_name] = data

    def set_table_error(self, table_name: str, error: Exception):
        """Make every query on the table raise."""
        self._table_errors[table_name] = error

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self._tables.get(name, []), self._table_errors.get(name))

    def rpc(self, name: str, params: dict) -> MockSupabaseRpc:
        return MockSupabaseRpc(self, name, params)


# ===================
# FAKE CATALOG STORAGE
# ===================

class FakeCatalog:
    """
    In-memory stand-in for CatalogService.

    failures is consumed one entry per update_products_batch() call:
    an exception to raise, or None for success.
    """

    def __init__(self, records: list[CatalogRecord], failures: Optional[list] = None):
        self.records = list(records)
        self.failures = list(failures or [])
        self.calls: list[list[StockUpdate]] = []
        self.committed: list[StockUpdate] = []
        self.load_error: Optional[Exception] = None

    def list_all_products(self) -> list[CatalogRecord]:
        if self.load_error is not None:
            raise self.load_error
        return list(self.records)

    def update_products_batch(self, updates: list[StockUpdate]) -> int:
        self.calls.append(list(updates))
        if self.failures:
            failure = self.failures.pop(0)
            if failure is not None:
                raise failure
        self.committed.extend(updates)
        return len(updates)

    def stock_by_id(self) -> dict[str, int]:
        """Last committed stock per product ID."""
        return {update.catalog_id: update.new_stock for update in self.committed}


def transient_error(message: str = "connection reset") -> TransientStorageError:
    return TransientStorageError("update", message)


def permanent_error(message: str = "violates check constraint") -> PermanentStorageError:
    return PermanentStorageError("update", message)


# ===================
# WORKBOOKS
# ===================

def make_workbook(rows: list[list], filename: str = "stock.xlsx") -> bytes:
    """
    Build an .xlsx file whose first sheet holds rows verbatim (no header).

    Usage:
        content = make_workbook([
            ["Номенклатура", "Конечный остаток"],
            ["Хмель Cascade 100г", 5],
        ])
    """
    buffer = BytesIO()
    pd.DataFrame(rows).to_excel(buffer, index=False, header=False, engine="openpyxl")
    return buffer.getvalue()


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": "1", "title": "Хмель", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with retry and batch delays disabled."""
    return Settings(
        supabase_url="https://test-project.supabase.co",
        supabase_key="test-anon-key",
        admin_api_key=None,
        sync_retry_delay_seconds=0,
        sync_batch_delay_seconds=0,
    )


@pytest.fixture
def sample_catalog() -> list[CatalogRecord]:
    """Catalog used by the end-to-end sync scenarios."""
    return [
        CatalogRecordFactory.create(id="p-hops", title="Хмель Cascade 100г", sku="HOP-100"),
        CatalogRecordFactory.create(id="p-yeast", title="Дрожжи спиртовые Турбо", sku="YST-T"),
        CatalogRecordFactory.create(id="p-cork", title="Пробка корковая", sku="CRK"),
        CatalogRecordFactory.create(id="p-malt", title="Солод пшеничный", sku="MLT-W"),
    ]


@pytest.fixture
def sample_workbook() -> bytes:
    """1C-style export: title rows, split header, section row, three data rows."""
    return make_workbook([
        ["Остатки товаров", None, None],
        [None, None, None],
        ["Номенклатура", "Ед.", "Конечный остаток"],
        ["Магазин", None, None],
        ["хмель cascade 100г", "шт", 5],
        ["АВ Дрожжи спиртовые Турбо", "шт", "12"],
        ["Неизвестный товар", "шт", 3],
        ["Итого", None, 20],
    ])


@pytest.fixture
def fake_catalog(sample_catalog) -> FakeCatalog:
    return FakeCatalog(sample_catalog)
