"""
Client side of the POS: a thin HTTP client plus the view state behind the
table grid, the order panel and the full-screen menu.

The active order of the selected table is always re-read from
GET /tables/{id}/active-order after a mutation; nothing is patched locally.
Observers are called synchronously once the refreshed state is in place.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional

import httpx
from pydantic import BaseModel


_log = logging.getLogger("barpos.client")


class PosApiError(Exception):
    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class NotFoundError(PosApiError):
    pass


class ValidationError(PosApiError):
    pass


class ConflictError(PosApiError):
    pass


_ERRORS = {404: NotFoundError, 400: ValidationError, 422: ValidationError, 409: ConflictError}


# --- Wire models ---
class TableInfo(BaseModel):
    id: int
    name: str
    category: str
    status: str


class OrderLine(BaseModel):
    id: int
    order_id: int
    menu_item_id: int
    menu_item_name: str
    quantity: int
    unit_price: int
    total_price: int
    note: Optional[str] = None


class ActiveOrder(BaseModel):
    id: int
    table_id: int
    table_name: str
    status: str
    total: int
    created_at: Optional[datetime] = None
    items: List[OrderLine] = []


class Receipt(BaseModel):
    id: int
    order_id: int
    table_name: str
    subtotal: int
    discount: int
    total_amount: int
    payment_method: str
    item_count: int


class PosClient:
    """
    Typed wrapper over the POS HTTP API. Pass `client` to reuse an existing
    httpx.Client (a FastAPI TestClient works too).
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8000", client: Optional[httpx.Client] = None, timeout: float = 10.0):
        self._http = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self):
        self._http.close()

    def _call(self, method: str, path: str, **kwargs) -> Any:
        r = self._http.request(method, path, **kwargs)
        try:
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                detail = e.response.json().get("detail")
            except ValueError:
                detail = e.response.text
            raise _ERRORS.get(e.response.status_code, PosApiError)(e.response.status_code, detail) from e
        return r.json()

    def list_tables(self) -> List[TableInfo]:
        return [TableInfo(**t) for t in self._call("GET", "/tables")]

    def active_order(self, table_id: int) -> Optional[ActiveOrder]:
        data = self._call("GET", f"/tables/{table_id}/active-order")
        return ActiveOrder(**data) if data else None

    def create_order(self, table_id: int) -> ActiveOrder:
        return ActiveOrder(**self._call("POST", "/orders", json={"table_id": table_id}))

    def add_item(self, order_id: int, menu_item_id: int, quantity: int = 1, note: Optional[str] = None) -> ActiveOrder:
        body: dict[str, Any] = {"menu_item_id": menu_item_id, "quantity": quantity}
        if note is not None:
            body["note"] = note
        return ActiveOrder(**self._call("POST", f"/orders/{order_id}/items", json=body))

    def update_item(self, item_id: int, **changes) -> OrderLine:
        return OrderLine(**self._call("POST", f"/order-items/{item_id}", json=changes))

    def remove_item(self, item_id: int) -> ActiveOrder:
        return ActiveOrder(**self._call("DELETE", f"/order-items/{item_id}"))

    def complete(self, order_id: int, payment_method: str = "cash", discount: int = 0) -> Receipt:
        data = self._call(
            "POST", f"/orders/{order_id}/complete", json={"payment_method": payment_method, "discount": discount}
        )
        return Receipt(**data["bill"])

    def pay_items(self, order_id: int, item_ids: List[int], payment_method: str = "cash", discount: int = 0) -> Receipt:
        body = {"item_ids": list(item_ids), "payment_method": payment_method, "discount": discount}
        return Receipt(**self._call("POST", f"/orders/{order_id}/pay-items", json=body)["bill"])

    def cancel(self, order_id: int) -> ActiveOrder:
        return ActiveOrder(**self._call("POST", f"/orders/{order_id}/cancel"))


@dataclass
class ViewState:
    tables: List[TableInfo] = field(default_factory=list)
    selected_table_id: Optional[int] = None
    active_order: Optional[ActiveOrder] = None
    mode: str = "tables"  # tables | menu


class TableOrderView:
    def __init__(self, api: PosClient):
        self.api = api
        self.state = ViewState()
        self._observers: List[Callable[[ViewState], None]] = []

    def subscribe(self, callback: Callable[[ViewState], None]) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(callback)

        def _unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return _unsubscribe

    def _notify(self):
        for cb in list(self._observers):
            cb(self.state)

    def _require_selection(self) -> int:
        if self.state.selected_table_id is None:
            raise RuntimeError("no table selected")
        return self.state.selected_table_id

    def _require_order(self) -> ActiveOrder:
        if self.state.active_order is None:
            raise RuntimeError("selected table has no active order")
        return self.state.active_order

    def _refresh(self, tables: bool = False):
        if tables:
            self.state.tables = self.api.list_tables()
        tid = self.state.selected_table_id
        self.state.active_order = self.api.active_order(tid) if tid is not None else None
        self._notify()

    @property
    def selected_table(self) -> Optional[TableInfo]:
        for t in self.state.tables:
            if t.id == self.state.selected_table_id:
                return t
        return None

    def load_tables(self):
        self.state.tables = self.api.list_tables()
        self._notify()

    def select_table(self, table_id: int):
        self.state.selected_table_id = table_id
        self.state.mode = "tables"
        self._refresh()

    def back_to_tables(self):
        self.state.selected_table_id = None
        self.state.active_order = None
        self.state.mode = "tables"
        self._notify()

    def open_menu(self) -> ActiveOrder:
        tid = self._require_selection()
        order = self.api.active_order(tid)
        if order is None:
            try:
                order = self.api.create_order(tid)
            except ConflictError:
                # another terminal opened it in the meantime
                order = self.api.active_order(tid)
            self.state.tables = self.api.list_tables()
        self.state.active_order = order
        self.state.mode = "menu"
        self._notify()
        return order

    def add_item(self, menu_item_id: int, quantity: int = 1, note: Optional[str] = None):
        order = self._require_order()
        self.api.add_item(order.id, menu_item_id, quantity=quantity, note=note)
        self._refresh()

    def update_item(self, item_id: int, **changes):
        self.api.update_item(item_id, **changes)
        self._refresh()

    def remove_item(self, item_id: int):
        self.api.remove_item(item_id)
        self._refresh()

    def checkout(self, payment_method: str = "cash", discount: int = 0) -> Receipt:
        order = self._require_order()
        receipt = self.api.complete(order.id, payment_method=payment_method, discount=discount)
        _log.info("checkout done", extra={"order_id": order.id, "bill_id": receipt.id})
        self.state.mode = "tables"
        self._refresh(tables=True)
        return receipt

    def pay_items(self, item_ids: List[int], payment_method: str = "cash", discount: int = 0) -> Receipt:
        order = self._require_order()
        receipt = self.api.pay_items(order.id, item_ids, payment_method=payment_method, discount=discount)
        self.state.tables = self.api.list_tables()
        self.state.active_order = self.api.active_order(order.table_id)
        if self.state.active_order is None:
            self.state.mode = "tables"
        self._notify()
        return receipt

    def cancel(self):
        order = self._require_order()
        self.api.cancel(order.id)
        self.state.mode = "tables"
        self._refresh(tables=True)
