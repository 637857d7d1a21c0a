"""Module-level engine bootstrap and session_scope (cropchain_kernel/db/engine.py)."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from cropchain_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from cropchain_kernel.models import Warehouse


@pytest.fixture
def bootstrapped():
    reset_engine()
    engine = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


def _warehouse_count() -> int:
    with session_scope() as session:
        return session.scalar(select(func.count()).select_from(Warehouse))


class TestUninitialized:

    def test_engine_required(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_session_scope_without_factory(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            with session_scope():
                pass


class TestBootstrap:

    def test_init_logged(self, captured_logs):
        reset_engine()
        try:
            init_engine_from_url("sqlite:///:memory:")
            [record] = [r for r in captured_logs() if r["message"] == "engine_initialized"]
            assert record["dialect"] == "sqlite"
        finally:
            reset_engine()

    def test_engine_is_shared(self, bootstrapped):
        assert get_engine() is bootstrapped
        assert get_session_factory().kw["bind"] is bootstrapped

    def test_commit_on_success(self, bootstrapped):
        with session_scope() as session:
            session.add(Warehouse(name="North", code="WH-N", created_by_id=uuid4()))
        assert _warehouse_count() == 1

    def test_rollback_on_error(self, bootstrapped, captured_logs):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(Warehouse(name="North", code="WH-N", created_by_id=uuid4()))
                session.flush()
                raise ValueError("abort")
        assert _warehouse_count() == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())
