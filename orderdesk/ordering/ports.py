from __future__ import annotations

from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from .catalog import AddressEntry, CatalogItem
from .draft import Order


class OrderListing(BaseModel):
    """One row of a user's order list; `index` is what load/update/delete take."""

    model_config = ConfigDict(frozen=True)

    index: int
    customer_name: str
    dispatch_date: Optional[str] = None


class CatalogSource(Protocol):
    def list(self) -> List[CatalogItem]: ...


class AddressSource(Protocol):
    def list(self) -> List[AddressEntry]: ...


class OrderStore(Protocol):
    """
    Persistence collaborator. Failures surface as OrderStoreError.

    update() returns the index the order lives at afterwards, so a store
    without in-place update may implement it as delete + append.
    """

    def append(self, order: Order) -> int: ...

    def list_by_user(self, user: str) -> List[OrderListing]: ...

    def load_by_index(self, index: int) -> Order: ...

    def delete_by_index(self, index: int) -> None: ...

    def update(self, index: int, order: Order) -> int: ...
