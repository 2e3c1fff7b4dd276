from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..model import Batch, OrderLine, Product
from ..models.sql_models import BatchModel, OrderLineModel, ProductModel


class SQLAlchemyProductsRepository:
    """Product aggregates backed by SQLAlchemy rows.

    Rows are translated into domain objects on the way out and written back by
    `sync()`. Every product handed out is remembered in `seen` so the unit of
    work can collect the messages it raised.
    """

    def __init__(self, session: Session):
        self.session = session
        self._loaded: Dict[str, Tuple[Product, ProductModel]] = {}

    @property
    def seen(self) -> List[Product]:
        return [product for product, _ in self._loaded.values()]

    def add(self, product: Product):
        row = ProductModel(sku=product.sku, version_number=product.version_number)
        self.session.add(row)
        self._loaded[product.sku] = (product, row)

    def get(self, sku: str) -> Optional[Product]:
        if sku in self._loaded:
            return self._loaded[sku][0]
        row = self.session.query(ProductModel).filter(ProductModel.sku == sku).first()
        return self._track(row)

    def get_by_batchref(self, batchref: str) -> Optional[Product]:
        row = (self.session.query(ProductModel)
               .join(BatchModel)
               .filter(BatchModel.reference == batchref)
               .first())
        if row is not None and row.sku in self._loaded:
            return self._loaded[row.sku][0]
        return self._track(row)

    def sync(self):
        """Copy the state of every seen product onto its rows."""
        for product, row in self._loaded.values():
            _update_row(row, product)

    def _track(self, row: Optional[ProductModel]) -> Optional[Product]:
        if row is None:
            return None
        product = _to_domain(row)
        self._loaded[product.sku] = (product, row)
        return product


def _to_domain(row: ProductModel) -> Product:
    batches = []
    for b in row.batches:
        lines = [OrderLine(l.orderid, l.sku, l.qty) for l in b.allocations]
        batches.append(Batch(b.reference, b.sku, b.purchased_quantity, b.eta, allocations=lines))
    return Product(row.sku, batches, version_number=row.version_number)


def _update_row(row: ProductModel, product: Product):
    row.version_number = product.version_number
    by_ref = {b.reference: b for b in row.batches}
    for batch in product.batches:
        b_row = by_ref.get(batch.reference)
        if b_row is None:
            b_row = BatchModel(reference=batch.reference, sku=batch.sku)
            row.batches.append(b_row)
        b_row.purchased_quantity = batch.purchased_quantity
        b_row.eta = batch.eta

        wanted = batch.allocations
        current = {OrderLine(l.orderid, l.sku, l.qty): l for l in b_row.allocations}
        for line, l_row in current.items():
            if line not in wanted:
                b_row.allocations.remove(l_row)
        for line in wanted:
            if line not in current:
                b_row.allocations.append(OrderLineModel(orderid=line.orderid, sku=line.sku, qty=line.qty))
