from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

import apps.pos.app.main as pos  # type: ignore[import]
from apps.pos.app.seed import seed_demo  # type: ignore[import]


def _count(engine, model) -> int:
    with Session(engine) as s:
        return s.execute(select(func.count()).select_from(model)).scalar()


def test_seed_demo_is_idempotent(engine):
    first = seed_demo(engine)
    assert first == {"tables": 34, "menu_collections": 1, "menu_items": 6}

    again = seed_demo(engine)
    assert again == {"tables": 0, "menu_collections": 0, "menu_items": 0}
    assert _count(engine, pos.Table) == 34

    with Session(engine) as s:
        cats = dict(
            s.execute(select(pos.Table.category, func.count()).group_by(pos.Table.category)).all()
        )
        assert cats == {"regular": 22, "vip": 10, "special": 2}
        coll_ids = set(s.execute(select(pos.MenuItem.menu_collection_id)).scalars())
        assert len(coll_ids) == 1


def test_seed_keeps_existing_catalog(engine):
    with Session(engine) as s:
        s.add(pos.MenuCollection(name="Drinks only", is_active=True))
        s.add(pos.Table(name="Bar counter", category="special"))
        s.commit()

    counts = seed_demo(engine)
    assert counts["tables"] == 0
    assert counts["menu_collections"] == 0
    assert counts["menu_items"] == 6
    assert _count(engine, pos.MenuCollection) == 1


def test_seed_reset_rebuilds_schema(engine):
    seed_demo(engine)
    with Session(engine) as s:
        s.add(pos.Table(name="Extra"))
        s.commit()
    counts = seed_demo(engine, reset=True)
    assert counts["tables"] == 34
    assert _count(engine, pos.Table) == 34
