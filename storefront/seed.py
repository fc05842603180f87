# storefront/seed.py
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import Settings, load_env
from .db import ensure_schema, make_engine
from .models import Product

DEMO = [
    dict(name="Beaded Leather Tote", brand="Nuthu", category="Bags", price=Decimal("8500.00"),
         description="Hand-beaded leather tote", image_url="https://picsum.photos/seed/tote/600/600"),
    dict(name="Kitenge Wrap Dress", brand="Nuthu", category="Dresses", price=Decimal("6200.00"),
         description="Wax-print wrap dress", image_url="https://picsum.photos/seed/dress/600/600"),
    dict(name="Brass Cuff", brand="Nuthu", category="Accessories", price=Decimal("2400.00"),
         description="Hammered brass cuff", image_url="https://picsum.photos/seed/cuff/600/600"),
]


def seed(engine, products=DEMO) -> int:
    with Session(engine) as db:
        for d in products:
            existing = db.execute(select(Product).where(Product.name == d["name"])).scalar_one_or_none()
            if existing:
                for k, v in d.items():
                    setattr(existing, k, v)
            else:
                db.add(Product(**d))
        db.commit()
    return len(products)


if __name__ == "__main__":
    load_env()
    engine = make_engine(Settings.from_env().DATABASE_URL)
    ensure_schema(engine)
    print("Seeded products:", seed(engine))
