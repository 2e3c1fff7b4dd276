from sqlalchemy import Column, Date, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class ProductModel(Base):
    __tablename__ = 'products'
    sku = Column(String(255), primary_key=True)
    # bumped by the domain on every allocation change; stale writers fail on flush
    version_number = Column(Integer, nullable=False, default=0)

    batches = relationship('BatchModel', back_populates='product',
                           cascade='all, delete-orphan', order_by='BatchModel.id')

    __mapper_args__ = {'version_id_col': version_number, 'version_id_generator': False}


class BatchModel(Base):
    __tablename__ = 'batches'
    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(255), unique=True, nullable=False)
    sku = Column(String(255), ForeignKey('products.sku'), index=True, nullable=False)
    purchased_quantity = Column(Integer, nullable=False)
    eta = Column(Date, nullable=True)

    product = relationship('ProductModel', back_populates='batches')
    allocations = relationship('OrderLineModel', cascade='all, delete-orphan',
                               order_by='OrderLineModel.id')


class OrderLineModel(Base):
    __tablename__ = 'order_lines'
    id = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(Integer, ForeignKey('batches.id'), index=True, nullable=False)
    orderid = Column(String(255), nullable=False)
    sku = Column(String(255), nullable=False)
    qty = Column(Integer, nullable=False)


class AllocationView(Base):
    """Denormalised read model kept up to date by projections."""
    __tablename__ = 'allocations_view'
    id = Column(Integer, primary_key=True, autoincrement=True)
    orderid = Column(String(255), index=True, nullable=False)
    sku = Column(String(255), nullable=False)
    batchref = Column(String(255), nullable=False)
