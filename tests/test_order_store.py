"""
Tests for the SQL-backed order store.
"""

import pytest

from orderdesk.models import OrderRecord
from orderdesk.ordering.errors import OrderStoreError


class TestSqlOrderStore:

    def test_append_and_load(self, order_store, stored_order):
        index = order_store.append(stored_order)
        assert order_store.load_by_index(index) == stored_order

    def test_list_by_user_filters(self, order_store, stored_order):
        first = order_store.append(stored_order)
        order_store.append(stored_order.model_copy(update={"submitting_user": "Luis"}))
        second = order_store.append(stored_order.model_copy(update={"customer_name": "Transportes XYZ"}))

        listings = order_store.list_by_user("Ana")

        assert [o.index for o in listings] == [first, second]
        assert [o.customer_name for o in listings] == ["ABC Trucking", "Transportes XYZ"]
        assert listings[0].dispatch_date == "01/20/2025"
        assert order_store.list_by_user("nadie") == []

    def test_update_in_place(self, order_store, stored_order):
        index = order_store.append(stored_order)
        changed = stored_order.model_copy(update={"quantities": ("9", "1"), "dispatch_date": "02/01/2025"})

        assert order_store.update(index, changed) == index

        loaded = order_store.load_by_index(index)
        assert loaded.quantities == ("9", "1")
        assert loaded.dispatch_date == "02/01/2025"
        assert len(order_store.list_by_user("Ana")) == 1

    def test_delete(self, order_store, stored_order):
        index = order_store.append(stored_order)
        order_store.delete_by_index(index)
        assert order_store.list_by_user("Ana") == []
        with pytest.raises(OrderStoreError):
            order_store.load_by_index(index)

    def test_missing_index(self, order_store, stored_order):
        with pytest.raises(OrderStoreError):
            order_store.load_by_index(42)
        with pytest.raises(OrderStoreError):
            order_store.update(42, stored_order)
        with pytest.raises(OrderStoreError):
            order_store.delete_by_index(42)

    def _insert_raw(self, session_factory, items_json):
        db = session_factory()
        try:
            row = OrderRecord(submitting_user="Ana", customer_name="ABC Trucking", items_json=items_json)
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    @pytest.mark.parametrize("items_json", [
        "[]",
        '[{"description": "Delo", "quantity": "1"}, "oops"]',
        "not json",
    ])
    def test_malformed_row_is_a_store_error(self, order_store, session_factory, items_json):
        index = self._insert_raw(session_factory, items_json)
        with pytest.raises(OrderStoreError):
            order_store.load_by_index(index)
