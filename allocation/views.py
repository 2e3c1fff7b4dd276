from typing import List, Dict

from .models.sql_models import AllocationView


def allocations(orderid: str, uow) -> List[Dict[str, str]]:
    """Batches the lines of `orderid` are allocated to, read from the projection."""
    with uow:
        rows = (uow.session.query(AllocationView)
                .filter(AllocationView.orderid == orderid)
                .order_by(AllocationView.id)
                .all())
        return [{'sku': r.sku, 'batchref': r.batchref} for r in rows]
