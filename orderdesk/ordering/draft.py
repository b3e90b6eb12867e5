from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from .catalog import AddressEntry, resolve_address
from .errors import EmptyOrderError, MissingUserError
from .nlp import parse_quantity


class Order(BaseModel):
    """A finalized order: at least one line, a submitting user, a resolved address."""

    model_config = ConfigDict(frozen=True)

    customer_name: str
    descriptions: Tuple[str, ...]
    quantities: Tuple[str, ...]
    codes: Tuple[str, ...]
    dispatch_date: Optional[str] = None
    note: str = ""
    manual_address: str = ""
    address: str = ""
    submitting_user: str

    @model_validator(mode="after")
    def check_lines(self) -> "Order":
        n = len(self.descriptions)
        if n == 0:
            raise ValueError("an order needs at least one line")
        if not n == len(self.quantities) == len(self.codes):
            raise ValueError("descriptions, quantities and codes must have the same length")
        return self

    def lines(self) -> List[Tuple[str, str, str]]:
        return list(zip(self.descriptions, self.quantities, self.codes))


@dataclass
class OrderDraft:
    """
    Order under construction.

    descriptions / quantities / codes are parallel lists and always have the
    same length; only add_line and remove_line touch them.
    """

    customer_name: str = ""
    descriptions: List[str] = field(default_factory=list)
    quantities: List[str] = field(default_factory=list)
    codes: List[str] = field(default_factory=list)
    dispatch_date: Optional[str] = None
    note: str = ""
    manual_address: str = ""
    submitting_user: str = ""

    def __len__(self) -> int:
        return len(self.descriptions)

    def add_line(self, description: str, quantity: str, code: str = "") -> None:
        if parse_quantity(quantity) is None:
            raise ValueError(f"quantity must be a positive integer, got {quantity!r}")
        self.descriptions.append(description)
        self.quantities.append(quantity)
        self.codes.append(code or "")

    def remove_line(self, index: int) -> str:
        if not 0 <= index < len(self.descriptions):
            raise IndexError(f"line {index} out of range (0..{len(self.descriptions) - 1})")
        removed = self.descriptions.pop(index)
        self.quantities.pop(index)
        self.codes.pop(index)
        return removed

    def set_quantity(self, index: int, quantity: str) -> None:
        if not 0 <= index < len(self.quantities):
            raise IndexError(f"line {index} out of range (0..{len(self.quantities) - 1})")
        if parse_quantity(quantity) is None:
            raise ValueError(f"quantity must be a positive integer, got {quantity!r}")
        self.quantities[index] = quantity

    def effective_address(self, directory: Sequence[AddressEntry]) -> str:
        return self.manual_address or resolve_address(self.customer_name, directory)

    def finalize(self, directory: Sequence[AddressEntry], user: Optional[str] = None) -> Order:
        if not self.descriptions:
            raise EmptyOrderError("order has no lines")
        submitting_user = user or self.submitting_user
        if not submitting_user:
            raise MissingUserError("order has no submitting user")
        return Order(
            customer_name=self.customer_name,
            descriptions=tuple(self.descriptions),
            quantities=tuple(self.quantities),
            codes=tuple(self.codes),
            dispatch_date=self.dispatch_date,
            note=self.note,
            manual_address=self.manual_address,
            address=self.effective_address(directory),
            submitting_user=submitting_user,
        )

    @classmethod
    def from_order(cls, order: Order) -> "OrderDraft":
        return cls(
            customer_name=order.customer_name,
            descriptions=list(order.descriptions),
            quantities=list(order.quantities),
            codes=list(order.codes),
            dispatch_date=order.dispatch_date,
            note=order.note,
            manual_address=order.manual_address,
            submitting_user=order.submitting_user,
        )


# ----------------------------
# Line (de)serialization for the order store
# ----------------------------
def dump_lines(order: Order) -> str:
    rows = [{"description": d, "quantity": q, "code": c} for d, q, c in order.lines()]
    return json.dumps(rows, ensure_ascii=False)


def load_lines(items_json: Optional[str]) -> Tuple[Tuple[str, ...], Tuple[str, ...], Tuple[str, ...]]:
    rows: List[Dict[str, Any]] = json.loads(items_json or "[]")
    return (
        tuple(str(r.get("description", "")) for r in rows),
        tuple(str(r.get("quantity", "1")) for r in rows),
        tuple(str(r.get("code", "")) for r in rows),
    )


# ----------------------------
# Summaries
# ----------------------------
def bullet_lines(descriptions: Sequence[str], quantities: Sequence[str]) -> str:
    return "\n".join(f"• {d} ({q})" for d, q in zip(descriptions, quantities))


def numbered_lines(descriptions: Sequence[str], quantities: Optional[Sequence[str]] = None) -> str:
    if quantities is None:
        return "\n".join(f"{i}. {d}" for i, d in enumerate(descriptions, start=1))
    return "\n".join(f"{i}. {d} ({q})" for i, (d, q) in enumerate(zip(descriptions, quantities), start=1))


def build_summary(draft: OrderDraft, address: str) -> str:
    if not draft.descriptions:
        return f"📄 Pedido para: {draft.customer_name}\n\n(sin productos)\n\n📍 Dirección: {address}"
    lines = [f"📄 Pedido para: {draft.customer_name}", "", bullet_lines(draft.descriptions, draft.quantities)]
    if draft.dispatch_date:
        lines += ["", f"🗓 Despacho: {draft.dispatch_date}"]
    if draft.note:
        lines += [f"🗒 Nota: {draft.note}"]
    lines += ["", f"📍 Dirección: {address}"]
    return "\n".join(lines)
