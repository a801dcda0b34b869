import argparse
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from apps.pos.app.main import (
    Base,
    MenuCollection,
    MenuItem,
    Table,
    engine as default_engine,
)


_log = logging.getLogger("barpos.seed")

_IMG = "https://images.unsplash.com/{}?ixlib=rb-4.0.3&auto=format&fit=crop&w=300&h=200"

DEMO_MENU = [
    ("Fruit jelly", 6400, "Drinks", _IMG.format("photo-1544787219-7f47ccb76574")),
    ("Rice paper salad", 20000, "Snacks", _IMG.format("photo-1515443961218-a51367888e4b")),
    ("Iced milk coffee", 15000, "Drinks", None),
    ("Bubble milk tea", 25000, "Drinks", None),
    ("Fresh spring rolls", 18000, "Food", None),
    ("Fresh coconut water", 12000, "Drinks", None),
]


def _demo_tables():
    rows = [(f"Table {i}", "regular") for i in range(1, 23)]
    rows += [(f"VIP Room {i}", "vip") for i in range(1, 11)]
    rows += [("Take-away", "special"), ("Delivery", "special")]
    return rows


def seed_demo(engine=None, reset: bool = False) -> dict:
    """
    Idempotent demo data: tables, a default menu collection and a few items.
    Each group is only inserted when its table is still empty.
    """
    engine = engine or default_engine
    if reset:
        Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    counts = {"tables": 0, "menu_collections": 0, "menu_items": 0}
    with Session(engine) as s:
        if not s.execute(select(func.count(Table.id))).scalar():
            for name, category in _demo_tables():
                s.add(Table(name=name, category=category, status="available"))
                counts["tables"] += 1

        coll = s.execute(
            select(MenuCollection).order_by(MenuCollection.is_active.desc(), MenuCollection.id.asc()).limit(1)
        ).scalar_one_or_none()
        if coll is None:
            coll = MenuCollection(name="Main menu", description="Everyday food and drinks", is_active=True)
            s.add(coll)
            s.flush()
            counts["menu_collections"] += 1

        if not s.execute(select(func.count(MenuItem.id))).scalar():
            for name, price, category, image_url in DEMO_MENU:
                s.add(
                    MenuItem(
                        name=name,
                        price=price,
                        category=category,
                        image_url=image_url,
                        available=True,
                        menu_collection_id=coll.id,
                    )
                )
                counts["menu_items"] += 1
        s.commit()
    _log.info("seed finished", extra=counts)
    return counts


def main():
    ap = argparse.ArgumentParser(description="Seed POS demo data")
    ap.add_argument("--reset", action="store_true", help="drop and recreate all tables first")
    args = ap.parse_args()
    counts = seed_demo(reset=args.reset)
    print(f"seeded: {counts}")


if __name__ == "__main__":
    main()
