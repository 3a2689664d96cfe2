from sqlalchemy import func, select

from app.cuadraturas.db.models import Product, Store


class ReferenceRepository:
    def __init__(self, db):
        self.db = db

    def get_store(self, store_id: int) -> Store | None:
        return self.db.get(Store, store_id)

    def list_stores(self):
        rows = self.db.execute(select(Store).order_by(Store.name.asc())).scalars().all()
        total = self.db.execute(select(func.count()).select_from(Store)).scalar_one()
        return rows, total

    def get_product(self, product_id: int) -> Product | None:
        return self.db.get(Product, product_id)
