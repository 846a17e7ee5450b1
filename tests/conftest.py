from __future__ import annotations

import logging
import sqlite3
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sheetsync.core.cache import Cache
from sheetsync.core.metrics import metrics_registry

SCHEMA = """
CREATE TABLE tours (id TEXT PRIMARY KEY, name TEXT);
CREATE TABLE products (id TEXT PRIMARY KEY, name TEXT);
CREATE TABLE reservations (
    id TEXT PRIMARY KEY,
    name TEXT,
    email TEXT,
    adults REAL,
    tour_date TEXT,
    is_private_tour INTEGER,
    reservation_ids TEXT,
    selected_options TEXT,
    product_id TEXT,
    updated_at TEXT
);
CREATE TABLE team (email TEXT PRIMARY KEY, name_ko TEXT, is_active INTEGER);
CREATE TABLE tour_expenses (
    id TEXT PRIMARY KEY,
    tour_id TEXT,
    product_id TEXT,
    amount TEXT,
    paid_for TEXT,
    tour_date TEXT
);
"""


@pytest.fixture
def connection() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.executescript(SCHEMA)
    yield conn
    conn.close()


@pytest.fixture
def cache() -> Cache:
    instance = Cache(sweep_interval=None)
    yield instance
    instance.close()


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    metrics_registry.reset()
    yield
    metrics_registry.reset()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    excepthook = sys.excepthook
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    sys.excepthook = excepthook
