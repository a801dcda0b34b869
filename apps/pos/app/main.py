import os
import json
import logging
from datetime import datetime, date, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from fastapi import FastAPI, APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field, ConfigDict
from sqlalchemy import (
    create_engine,
    String,
    Text,
    Integer,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    delete,
    func,
    select,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Session, Mapped, mapped_column

from barpos_shared import (
    RequestIDMiddleware,
    add_standard_health,
    build_lifespan,
    configure_cors,
    install_exception_handlers,
    setup_json_logging,
)

from .export import export_bill


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


DB_URL = _env_or("POS_DB_URL", _env_or("DB_URL", "sqlite+pysqlite:////tmp/barpos.db"))
DB_SCHEMA = os.getenv("DB_SCHEMA") if not DB_URL.startswith("sqlite") else None
POS_TZ = _env_or("POS_TZ", "UTC")
SEED_DEMO = _env_or("POS_SEED_DEMO", "1" if _env_or("ENV", "dev").lower() == "dev" else "0").lower() in ("1", "true", "yes", "on")

TABLE_CATEGORIES = ("regular", "vip", "special")
TABLE_STATUSES = ("available", "occupied", "reserved")
PAYMENT_METHODS = ("cash", "transfer", "card")

_log = logging.getLogger("barpos.pos")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fk(target: str) -> str:
    return f"{DB_SCHEMA}.{target}" if DB_SCHEMA else target


class Base(DeclarativeBase):
    pass


class Table(Base):
    __tablename__ = "tables"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50))
    category: Mapped[str] = mapped_column(String(16), default="regular")  # regular/vip/special
    status: Mapped[str] = mapped_column(String(16), default="available")  # available/occupied/reserved


class MenuCollection(Base):
    __tablename__ = "menu_collections"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), unique=True)
    description: Mapped[Optional[str]] = mapped_column(String(400), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    price: Mapped[int] = mapped_column(BigInteger, default=0)
    category: Mapped[str] = mapped_column(String(80))
    image_url: Mapped[Optional[str]] = mapped_column(String(400), default=None)
    available: Mapped[bool] = mapped_column(Boolean, default=True)
    menu_collection_id: Mapped[int] = mapped_column(Integer, ForeignKey(_fk("menu_collections.id")))


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Not a foreign key: tables can be removed without rewriting order history.
    table_id: Mapped[int] = mapped_column(Integer, index=True)
    table_name: Mapped[str] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(16), default="active")  # active/completed/cancelled
    total: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey(_fk("orders.id")), index=True)
    menu_item_id: Mapped[int] = mapped_column(Integer)
    # name and price are copied at insert time so history survives menu edits
    menu_item_name: Mapped[str] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[int] = mapped_column(BigInteger)
    total_price: Mapped[int] = mapped_column(BigInteger)
    note: Mapped[Optional[str]] = mapped_column(String(200), default=None)


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey(_fk("orders.id")), index=True)
    table_id: Mapped[int] = mapped_column(Integer)
    table_name: Mapped[str] = mapped_column(String(50), index=True)
    subtotal: Mapped[int] = mapped_column(BigInteger, default=0)
    discount: Mapped[int] = mapped_column(BigInteger, default=0)
    total_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    payment_method: Mapped[str] = mapped_column(String(32), default="cash")
    item_count: Mapped[int] = mapped_column(Integer, default=0)
    lines_json: Mapped[str] = mapped_column(Text, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)


engine = create_engine(DB_URL, future=True)


def get_session():
    with Session(engine) as s:
        yield s


def _db_ping():
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def on_startup():
    Base.metadata.create_all(engine)
    if SEED_DEMO:
        from .seed import seed_demo

        try:
            counts = seed_demo(engine)
            _log.info("demo data ready", extra=counts)
        except Exception:
            # Demo seeding must never block startup.
            _log.exception("demo seeding failed")


app = FastAPI(title="POS API", version="0.1.0", lifespan=build_lifespan(startup=[on_startup]))
setup_json_logging()
app.add_middleware(RequestIDMiddleware)
configure_cors(app, os.getenv("ALLOWED_ORIGINS", ""))
add_standard_health(app, checks={"db": _db_ping})
install_exception_handlers(app)
router = APIRouter()


# --- Schemas ---
class TableCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    category: str = "regular"
    status: str = "available"


class TableStatusUpdate(BaseModel):
    status: str


class TableOut(BaseModel):
    id: int
    name: str
    category: str
    status: str
    model_config = ConfigDict(from_attributes=True)


class MenuCollectionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=400)
    is_active: bool = True


class MenuCollectionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=400)
    is_active: Optional[bool] = None


class MenuCollectionOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    is_active: bool
    created_at: Optional[datetime]
    model_config = ConfigDict(from_attributes=True)


class MenuItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    price: int = Field(ge=0)
    category: str = Field(min_length=1, max_length=80)
    image_url: Optional[str] = Field(default=None, max_length=400)
    available: bool = True
    menu_collection_id: Optional[int] = None


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=80)
    image_url: Optional[str] = Field(default=None, max_length=400)
    available: Optional[bool] = None
    menu_collection_id: Optional[int] = None


class MenuItemOut(BaseModel):
    id: int
    name: str
    price: int
    category: str
    image_url: Optional[str]
    available: bool
    menu_collection_id: int
    model_config = ConfigDict(from_attributes=True)


class OrderCreate(BaseModel):
    table_id: int


class OrderItemOut(BaseModel):
    id: int
    order_id: int
    menu_item_id: int
    menu_item_name: str
    quantity: int
    unit_price: int
    total_price: int
    note: Optional[str]
    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    table_id: int
    table_name: str
    status: str
    total: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    model_config = ConfigDict(from_attributes=True)


class OrderDetail(OrderOut):
    items: List[OrderItemOut] = Field(default_factory=list)


class LineItemAdd(BaseModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1, le=999)
    note: Optional[str] = Field(default=None, max_length=200)


class LineItemUpdate(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1, le=999)
    note: Optional[str] = Field(default=None, max_length=200)


class CheckoutReq(BaseModel):
    payment_method: str = "cash"
    discount: int = Field(default=0, ge=0)


class PayItemsReq(CheckoutReq):
    item_ids: List[int] = Field(min_length=1)


class BillLineOut(BaseModel):
    menu_item_id: int
    menu_item_name: str
    quantity: int
    unit_price: int
    total_price: int
    note: Optional[str] = None


class BillOut(BaseModel):
    id: int
    order_id: int
    table_id: int
    table_name: str
    subtotal: int
    discount: int
    total_amount: int
    payment_method: str
    item_count: int
    created_at: Optional[datetime]
    lines: List[BillLineOut]

    @classmethod
    def from_db(cls, b: Bill):
        return cls(
            id=b.id,
            order_id=b.order_id,
            table_id=b.table_id,
            table_name=b.table_name,
            subtotal=b.subtotal,
            discount=b.discount,
            total_amount=b.total_amount,
            payment_method=b.payment_method,
            item_count=b.item_count,
            created_at=b.created_at,
            lines=[BillLineOut(**ln) for ln in json.loads(b.lines_json or "[]")],
        )


class CheckoutOut(BaseModel):
    order: OrderDetail
    bill: BillOut


class DailyRevenueOut(BaseModel):
    date: date
    revenue: int
    bill_count: int


class TableRevenueOut(BaseModel):
    table_name: str
    bill_count: int
    revenue: int


# --- Helpers ---
def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    note = note.strip()
    return note or None


def _get_table_or_404(s: Session, tid: int) -> Table:
    t = s.get(Table, tid)
    if not t:
        raise HTTPException(status_code=404, detail="table not found")
    return t


def _get_order_or_404(s: Session, order_id: int) -> Order:
    od = s.get(Order, order_id)
    if not od:
        raise HTTPException(status_code=404, detail="order not found")
    return od


def _get_order_item_or_404(s: Session, item_id: int) -> OrderItem:
    it = s.get(OrderItem, item_id)
    if not it:
        raise HTTPException(status_code=404, detail="order item not found")
    return it


def _require_active(od: Order):
    if od.status != "active":
        raise HTTPException(status_code=409, detail=f"order {od.id} is {od.status}")


def _active_order_for_table(s: Session, table_id: int) -> Optional[Order]:
    stmt = (
        select(Order)
        .where(Order.table_id == table_id, Order.status == "active")
        .order_by(Order.id.desc())
        .limit(1)
    )
    return s.execute(stmt).scalar_one_or_none()


def _order_items(s: Session, order_id: int) -> List[OrderItem]:
    return s.execute(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id.asc())).scalars().all()


def _recompute_total(s: Session, od: Order) -> int:
    total = s.execute(
        select(func.coalesce(func.sum(OrderItem.total_price), 0)).where(OrderItem.order_id == od.id)
    ).scalar()
    od.total = int(total or 0)
    od.updated_at = _utcnow()
    return od.total


def _set_table_status(s: Session, table_id: int, status: str):
    t = s.get(Table, table_id)
    # the table may have been deleted since the order was opened
    if t:
        t.status = status


def _order_detail(s: Session, od: Order) -> OrderDetail:
    out = OrderDetail.model_validate(od)
    out.items = [OrderItemOut.model_validate(it) for it in _order_items(s, od.id)]
    return out


def _check_payment(method: str, discount: int, subtotal: int):
    if method not in PAYMENT_METHODS:
        raise HTTPException(status_code=400, detail=f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    if discount > subtotal:
        raise HTTPException(status_code=400, detail="discount exceeds amount due")


def _issue_bill(s: Session, od: Order, lines: List[OrderItem], method: str, discount: int) -> Bill:
    subtotal = sum(ln.total_price for ln in lines)
    bill = Bill(
        order_id=od.id,
        table_id=od.table_id,
        table_name=od.table_name,
        subtotal=subtotal,
        discount=discount,
        total_amount=subtotal - discount,
        payment_method=method,
        item_count=sum(ln.quantity for ln in lines),
        lines_json=json.dumps(
            [
                {
                    "menu_item_id": ln.menu_item_id,
                    "menu_item_name": ln.menu_item_name,
                    "quantity": ln.quantity,
                    "unit_price": ln.unit_price,
                    "total_price": ln.total_price,
                    "note": ln.note,
                }
                for ln in lines
            ],
            ensure_ascii=False,
        ),
    )
    s.add(bill)
    return bill


def _export_payload(od: Order, bill: BillOut) -> dict:
    created = od.created_at.isoformat() if od.created_at else None
    return {
        "bill_id": bill.id,
        "order_id": od.id,
        "table_name": bill.table_name,
        "total_amount": bill.total_amount,
        "payment_method": bill.payment_method,
        "rows": [
            [bill.table_name, ln.menu_item_name, ln.quantity, ln.unit_price, ln.total_price, created]
            for ln in bill.lines
        ],
    }


def _parse_day(raw: str) -> date:
    if not raw:
        return datetime.now(ZoneInfo(POS_TZ)).date()
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid date, expected YYYY-MM-DD")


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in the venue time zone."""
    tz = ZoneInfo(POS_TZ)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


# --- Tables ---
@router.get("/tables", response_model=List[TableOut])
def list_tables(category: str = "", s: Session = Depends(get_session)):
    stmt = select(Table)
    if category:
        stmt = stmt.where(Table.category == category)
    return s.execute(stmt.order_by(Table.id.asc())).scalars().all()


@router.post("/tables", response_model=TableOut, status_code=201)
def create_table(req: TableCreate, s: Session = Depends(get_session)):
    if req.category not in TABLE_CATEGORIES:
        raise HTTPException(status_code=400, detail="invalid table category")
    if req.status not in TABLE_STATUSES:
        raise HTTPException(status_code=400, detail="invalid table status")
    t = Table(name=req.name.strip(), category=req.category, status=req.status)
    s.add(t); s.commit(); s.refresh(t)
    return t


@router.get("/tables/{tid}", response_model=TableOut)
def get_table(tid: int, s: Session = Depends(get_session)):
    return _get_table_or_404(s, tid)


@router.post("/tables/{tid}/status", response_model=TableOut)
def update_table_status(tid: int, req: TableStatusUpdate, s: Session = Depends(get_session)):
    t = _get_table_or_404(s, tid)
    if req.status not in TABLE_STATUSES:
        raise HTTPException(status_code=400, detail="invalid table status")
    if req.status != "occupied" and _active_order_for_table(s, tid) is not None:
        raise HTTPException(status_code=409, detail="table has an active order")
    t.status = req.status
    s.commit(); s.refresh(t)
    return t


@router.delete("/tables/{tid}")
def delete_table(tid: int, s: Session = Depends(get_session)):
    t = _get_table_or_404(s, tid)
    if _active_order_for_table(s, tid) is not None:
        raise HTTPException(status_code=409, detail="table has an active order")
    s.delete(t); s.commit()
    return {"ok": True}


@router.get("/tables/{tid}/active-order", response_model=Optional[OrderDetail])
def get_active_order(tid: int, s: Session = Depends(get_session)):
    _get_table_or_404(s, tid)
    od = _active_order_for_table(s, tid)
    if od is None:
        return None
    return _order_detail(s, od)


# --- Menu collections ---
@router.get("/menu-collections", response_model=List[MenuCollectionOut])
def list_menu_collections(active_only: bool = False, s: Session = Depends(get_session)):
    stmt = select(MenuCollection)
    if active_only:
        stmt = stmt.where(MenuCollection.is_active.is_(True))
    return s.execute(stmt.order_by(MenuCollection.id.asc())).scalars().all()


def _ensure_collection_name_free(s: Session, name: str, exclude_id: Optional[int] = None):
    stmt = select(MenuCollection.id).where(func.lower(MenuCollection.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(MenuCollection.id != exclude_id)
    if s.execute(stmt).first() is not None:
        raise HTTPException(status_code=409, detail="menu collection name already exists")


@router.post("/menu-collections", response_model=MenuCollectionOut, status_code=201)
def create_menu_collection(req: MenuCollectionCreate, s: Session = Depends(get_session)):
    name = req.name.strip()
    _ensure_collection_name_free(s, name)
    mc = MenuCollection(name=name, description=req.description, is_active=req.is_active)
    s.add(mc); s.commit(); s.refresh(mc)
    return mc


@router.post("/menu-collections/{cid}", response_model=MenuCollectionOut)
def update_menu_collection(cid: int, req: MenuCollectionUpdate, s: Session = Depends(get_session)):
    mc = s.get(MenuCollection, cid)
    if not mc:
        raise HTTPException(status_code=404, detail="menu collection not found")
    if req.name is not None:
        name = req.name.strip()
        _ensure_collection_name_free(s, name, exclude_id=cid)
        mc.name = name
    if "description" in req.model_fields_set:
        mc.description = req.description
    if req.is_active is not None:
        mc.is_active = req.is_active
    s.commit(); s.refresh(mc)
    return mc


@router.delete("/menu-collections/{cid}")
def delete_menu_collection(cid: int, s: Session = Depends(get_session)):
    mc = s.get(MenuCollection, cid)
    if not mc:
        raise HTTPException(status_code=404, detail="menu collection not found")
    linked = s.execute(select(MenuItem.id).where(MenuItem.menu_collection_id == cid).limit(1)).first()
    if linked is not None:
        raise HTTPException(status_code=409, detail="menu collection still has items")
    s.delete(mc); s.commit()
    return {"ok": True}


# --- Menu items ---
def _default_collection_id(s: Session) -> int:
    stmt = select(MenuCollection.id).order_by(MenuCollection.is_active.desc(), MenuCollection.id.asc()).limit(1)
    cid = s.execute(stmt).scalar()
    if cid is None:
        raise HTTPException(status_code=400, detail="no menu collection exists")
    return cid


@router.get("/menu-items", response_model=List[MenuItemOut])
def list_menu_items(
    collection_id: Optional[int] = None,
    category: str = "",
    q: str = "",
    available_only: bool = False,
    s: Session = Depends(get_session),
):
    stmt = select(MenuItem)
    if collection_id is not None:
        stmt = stmt.where(MenuItem.menu_collection_id == collection_id)
    if category:
        stmt = stmt.where(func.lower(MenuItem.category) == category.lower())
    if q:
        stmt = stmt.where(func.lower(MenuItem.name).contains(q.lower(), autoescape=True))
    if available_only:
        stmt = stmt.where(MenuItem.available.is_(True))
    return s.execute(stmt.order_by(MenuItem.category.asc(), MenuItem.id.asc())).scalars().all()


@router.post("/menu-items", response_model=MenuItemOut, status_code=201)
def create_menu_item(req: MenuItemCreate, s: Session = Depends(get_session)):
    if req.menu_collection_id is None:
        cid = _default_collection_id(s)
    else:
        if not s.get(MenuCollection, req.menu_collection_id):
            raise HTTPException(status_code=404, detail="menu collection not found")
        cid = req.menu_collection_id
    mi = MenuItem(
        name=req.name.strip(),
        price=req.price,
        category=req.category.strip(),
        image_url=req.image_url,
        available=req.available,
        menu_collection_id=cid,
    )
    s.add(mi); s.commit(); s.refresh(mi)
    return mi


@router.get("/menu-items/{iid}", response_model=MenuItemOut)
def get_menu_item(iid: int, s: Session = Depends(get_session)):
    mi = s.get(MenuItem, iid)
    if not mi:
        raise HTTPException(status_code=404, detail="menu item not found")
    return mi


@router.post("/menu-items/{iid}", response_model=MenuItemOut)
def update_menu_item(iid: int, req: MenuItemUpdate, s: Session = Depends(get_session)):
    mi = s.get(MenuItem, iid)
    if not mi:
        raise HTTPException(status_code=404, detail="menu item not found")
    if req.menu_collection_id is not None and not s.get(MenuCollection, req.menu_collection_id):
        raise HTTPException(status_code=404, detail="menu collection not found")
    if req.name is not None:
        mi.name = req.name.strip()
    if req.price is not None:
        mi.price = req.price
    if req.category is not None:
        mi.category = req.category.strip()
    if "image_url" in req.model_fields_set:
        mi.image_url = req.image_url
    if req.available is not None:
        mi.available = req.available
    if req.menu_collection_id is not None:
        mi.menu_collection_id = req.menu_collection_id
    s.commit(); s.refresh(mi)
    return mi


@router.delete("/menu-items/{iid}")
def delete_menu_item(iid: int, s: Session = Depends(get_session)):
    mi = s.get(MenuItem, iid)
    if not mi:
        raise HTTPException(status_code=404, detail="menu item not found")
    s.delete(mi); s.commit()
    return {"ok": True}


# --- Orders ---
@router.get("/orders", response_model=List[OrderOut])
def list_orders(status: str = "", table_id: Optional[int] = None, limit: int = 50, s: Session = Depends(get_session)):
    stmt = select(Order)
    if status:
        stmt = stmt.where(Order.status == status)
    if table_id is not None:
        stmt = stmt.where(Order.table_id == table_id)
    stmt = stmt.order_by(Order.id.desc()).limit(max(1, min(limit, 200)))
    return s.execute(stmt).scalars().all()


@router.post("/orders", response_model=OrderDetail, status_code=201)
def create_order(req: OrderCreate, s: Session = Depends(get_session)):
    t = _get_table_or_404(s, req.table_id)
    if _active_order_for_table(s, t.id) is not None:
        raise HTTPException(status_code=409, detail="table already has an active order")
    od = Order(table_id=t.id, table_name=t.name, status="active", total=0)
    t.status = "occupied"
    s.add(od); s.commit(); s.refresh(od)
    _log.info("order opened", extra={"order_id": od.id, "table_id": t.id})
    return _order_detail(s, od)


@router.get("/orders/{order_id}", response_model=OrderDetail)
def get_order(order_id: int, s: Session = Depends(get_session)):
    return _order_detail(s, _get_order_or_404(s, order_id))


@router.get("/orders/{order_id}/items", response_model=List[OrderItemOut])
def list_order_items(order_id: int, s: Session = Depends(get_session)):
    _get_order_or_404(s, order_id)
    return _order_items(s, order_id)


@router.post("/orders/{order_id}/items", response_model=OrderDetail, status_code=201)
def add_line_item(order_id: int, req: LineItemAdd, s: Session = Depends(get_session)):
    od = _get_order_or_404(s, order_id)
    _require_active(od)
    mi = s.get(MenuItem, req.menu_item_id)
    if not mi:
        raise HTTPException(status_code=404, detail="menu item not found")
    if not mi.available:
        raise HTTPException(status_code=400, detail="menu item is not available")
    s.add(
        OrderItem(
            order_id=od.id,
            menu_item_id=mi.id,
            menu_item_name=mi.name,
            quantity=req.quantity,
            unit_price=mi.price,
            total_price=mi.price * req.quantity,
            note=_clean_note(req.note),
        )
    )
    s.flush()
    _recompute_total(s, od)
    s.commit(); s.refresh(od)
    _log.info("line item added", extra={"order_id": od.id, "menu_item_id": mi.id, "order_total": od.total})
    return _order_detail(s, od)


@router.post("/order-items/{item_id}", response_model=OrderItemOut)
def update_line_item(item_id: int, req: LineItemUpdate, s: Session = Depends(get_session)):
    it = _get_order_item_or_404(s, item_id)
    od = _get_order_or_404(s, it.order_id)
    _require_active(od)
    if req.quantity is not None:
        it.quantity = req.quantity
        # priced off the stored snapshot, never the current menu price
        it.total_price = it.unit_price * req.quantity
    # an explicit null (or blank) note clears it; an omitted note is left alone
    if "note" in req.model_fields_set:
        it.note = _clean_note(req.note)
    s.flush()
    _recompute_total(s, od)
    s.commit(); s.refresh(it)
    _log.info("line item updated", extra={"order_id": od.id, "order_item_id": it.id, "order_total": od.total})
    return it


@router.delete("/order-items/{item_id}", response_model=OrderDetail)
def remove_line_item(item_id: int, s: Session = Depends(get_session)):
    it = _get_order_item_or_404(s, item_id)
    od = _get_order_or_404(s, it.order_id)
    _require_active(od)
    s.delete(it)
    s.flush()
    _recompute_total(s, od)
    s.commit(); s.refresh(od)
    _log.info("line item removed", extra={"order_id": od.id, "order_item_id": item_id, "order_total": od.total})
    return _order_detail(s, od)


@router.post("/orders/{order_id}/complete", response_model=CheckoutOut)
def complete_order(order_id: int, req: CheckoutReq, s: Session = Depends(get_session)):
    od = _get_order_or_404(s, order_id)
    _require_active(od)
    lines = _order_items(s, od.id)
    if not lines:
        raise HTTPException(status_code=400, detail="order has no items; cancel it instead")
    _recompute_total(s, od)
    _check_payment(req.payment_method, req.discount, od.total)
    bill = _issue_bill(s, od, lines, req.payment_method, req.discount)
    now = _utcnow()
    od.status = "completed"
    od.completed_at = now
    od.updated_at = now
    _set_table_status(s, od.table_id, "available")
    s.commit(); s.refresh(od); s.refresh(bill)
    bill_out = BillOut.from_db(bill)
    _log.info("order completed", extra={"order_id": od.id, "bill_id": bill.id, "amount": bill.total_amount})
    export_bill(_export_payload(od, bill_out))
    return CheckoutOut(order=_order_detail(s, od), bill=bill_out)


@router.post("/orders/{order_id}/pay-items", response_model=CheckoutOut)
def pay_line_items(order_id: int, req: PayItemsReq, s: Session = Depends(get_session)):
    od = _get_order_or_404(s, order_id)
    _require_active(od)
    wanted = set(req.item_ids)
    lines = s.execute(
        select(OrderItem).where(OrderItem.order_id == od.id, OrderItem.id.in_(wanted)).order_by(OrderItem.id.asc())
    ).scalars().all()
    if len(lines) != len(wanted):
        raise HTTPException(status_code=404, detail="order item not found in this order")
    _check_payment(req.payment_method, req.discount, sum(ln.total_price for ln in lines))
    bill = _issue_bill(s, od, lines, req.payment_method, req.discount)
    for ln in lines:
        s.delete(ln)
    s.flush()
    _recompute_total(s, od)
    if not _order_items(s, od.id):
        # everything is paid: the order closes without a second bill
        od.status = "completed"
        od.completed_at = _utcnow()
        _set_table_status(s, od.table_id, "available")
    s.commit(); s.refresh(od); s.refresh(bill)
    bill_out = BillOut.from_db(bill)
    _log.info(
        "partial payment",
        extra={"order_id": od.id, "bill_id": bill.id, "amount": bill.total_amount, "order_status": od.status},
    )
    export_bill(_export_payload(od, bill_out))
    return CheckoutOut(order=_order_detail(s, od), bill=bill_out)


@router.post("/orders/{order_id}/cancel", response_model=OrderDetail)
def cancel_order(order_id: int, s: Session = Depends(get_session)):
    od = _get_order_or_404(s, order_id)
    _require_active(od)
    s.execute(delete(OrderItem).where(OrderItem.order_id == od.id))
    now = _utcnow()
    od.total = 0
    od.status = "cancelled"
    od.cancelled_at = now
    od.updated_at = now
    _set_table_status(s, od.table_id, "available")
    s.commit(); s.refresh(od)
    _log.info("order cancelled", extra={"order_id": od.id})
    return _order_detail(s, od)


# --- Bills / revenue ---
@router.get("/orders/{order_id}/bills", response_model=List[BillOut])
def list_order_bills(order_id: int, s: Session = Depends(get_session)):
    _get_order_or_404(s, order_id)
    bills = s.execute(select(Bill).where(Bill.order_id == order_id).order_by(Bill.id.asc())).scalars().all()
    return [BillOut.from_db(b) for b in bills]


@router.get("/bills", response_model=List[BillOut])
def list_bills(date: str = "", limit: int = 200, s: Session = Depends(get_session)):
    stmt = select(Bill)
    if date:
        start, end = _day_bounds(_parse_day(date))
        stmt = stmt.where(Bill.created_at >= start, Bill.created_at < end)
    stmt = stmt.order_by(Bill.created_at.desc(), Bill.id.desc()).limit(max(1, min(limit, 1000)))
    return [BillOut.from_db(b) for b in s.execute(stmt).scalars().all()]


@router.get("/bills/{bill_id}", response_model=BillOut)
def get_bill(bill_id: int, s: Session = Depends(get_session)):
    b = s.get(Bill, bill_id)
    if not b:
        raise HTTPException(status_code=404, detail="bill not found")
    return BillOut.from_db(b)


@router.get("/revenue/daily", response_model=DailyRevenueOut)
def daily_revenue(date: str = "", s: Session = Depends(get_session)):
    day = _parse_day(date)
    start, end = _day_bounds(day)
    revenue, count = s.execute(
        select(func.coalesce(func.sum(Bill.total_amount), 0), func.count(Bill.id)).where(
            Bill.created_at >= start, Bill.created_at < end
        )
    ).one()
    return DailyRevenueOut(date=day, revenue=int(revenue or 0), bill_count=int(count or 0))


@router.get("/revenue/by-table", response_model=List[TableRevenueOut])
def revenue_by_table(date: str = "", s: Session = Depends(get_session)):
    start, end = _day_bounds(_parse_day(date))
    rows = s.execute(
        select(Bill.table_name, func.count(Bill.id), func.coalesce(func.sum(Bill.total_amount), 0))
        .where(Bill.created_at >= start, Bill.created_at < end)
        .group_by(Bill.table_name)
        .order_by(Bill.table_name.asc())
    ).all()
    return [TableRevenueOut(table_name=name, bill_count=int(cnt), revenue=int(rev)) for name, cnt, rev in rows]


app.include_router(router)
