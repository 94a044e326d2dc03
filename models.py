from extensions import db
from datetime import datetime, timezone
from config import ORDER_STATUS_PENDING


def utcnow():
    return datetime.now(timezone.utc)


class SoftDeleteMixin:
    """Adds soft deletion and an update timestamp to a model."""
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def soft_delete(self):
        """Marks the row as deleted without removing it."""
        self.is_deleted = True
        self.deleted_at = utcnow()


class Store(db.Model):
    """Represents a store; customers belong to exactly one store."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False, index=True)

    # Relationships
    customers = db.relationship('Customer', back_populates='store', lazy='dynamic')

    def __repr__(self):
        return f'<Store {self.name}>'


class Customer(SoftDeleteMixin, db.Model):
    """Represents a customer of a store."""
    id = db.Column(db.String(20), primary_key=True)  # e.g. C-00001
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False, index=True)
    contact_person = db.Column(db.String(100))
    address = db.Column(db.String(200))
    phone = db.Column(db.String(30))
    delivery_condition = db.Column(db.String(200))
    note = db.Column(db.Text)

    # Relationships
    store = db.relationship('Store', back_populates='customers')
    orders = db.relationship('Order', back_populates='customer', lazy='select')
    deliveries = db.relationship('Delivery', back_populates='customer', lazy='select')
    statistics = db.relationship('Statistics', back_populates='customer', uselist=False)

    def __repr__(self):
        return f'<Customer {self.id} {self.name}>'


class Order(SoftDeleteMixin, db.Model):
    """Represents a customer order with its line items."""
    id = db.Column(db.String(20), primary_key=True)  # e.g. O0000001
    customer_id = db.Column(db.String(20), db.ForeignKey('customer.id'), nullable=False, index=True)
    order_date = db.Column(db.Date, nullable=False, index=True)
    note = db.Column(db.Text)
    status = db.Column(db.String(10), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    # Relationships
    customer = db.relationship('Customer', back_populates='orders')
    details = db.relationship('OrderDetail', back_populates='order', lazy='select',
                              cascade="all, delete-orphan", order_by='OrderDetail.id')

    @property
    def live_details(self):
        return [d for d in self.details if not d.is_deleted]

    @property
    def total_amount(self):
        """Sum of unit price x quantity over details that are not deleted."""
        return sum(d.subtotal for d in self.live_details)

    def soft_delete(self):
        super().soft_delete()
        for detail in self.details:
            detail.soft_delete()

    def __repr__(self):
        return f'<Order {self.id} {self.status}>'


class OrderDetail(SoftDeleteMixin, db.Model):
    """Represents one line item of an order."""
    id = db.Column(db.String(24), primary_key=True)  # e.g. O0000001-01
    order_id = db.Column(db.String(20), db.ForeignKey('order.id', ondelete='CASCADE'), nullable=False, index=True)
    product_name = db.Column(db.String(200), nullable=False, default='')
    unit_price = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    description = db.Column(db.String(200))

    # Relationships
    order = db.relationship('Order', back_populates='details')

    # Constraints
    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='check_order_detail_quantity_positive'),
        db.CheckConstraint('unit_price >= 0', name='check_order_detail_price_non_negative'),
    )

    @property
    def subtotal(self):
        return self.unit_price * self.quantity

    def __repr__(self):
        return f'<OrderDetail {self.id} {self.product_name} x{self.quantity}>'


class Delivery(SoftDeleteMixin, db.Model):
    """Represents a delivery made to a customer."""
    id = db.Column(db.String(20), primary_key=True)  # e.g. D0000001
    customer_id = db.Column(db.String(20), db.ForeignKey('customer.id'), nullable=False, index=True)
    delivery_date = db.Column(db.Date, nullable=False, index=True)
    note = db.Column(db.Text)

    # Relationships
    customer = db.relationship('Customer', back_populates='deliveries')
    details = db.relationship('DeliveryDetail', back_populates='delivery', lazy='select',
                              cascade="all, delete-orphan", order_by='DeliveryDetail.id')

    @property
    def live_details(self):
        return [d for d in self.details if not d.is_deleted]

    @property
    def total_amount(self):
        return sum(d.unit_price * d.quantity for d in self.live_details)

    def soft_delete(self):
        super().soft_delete()
        for detail in self.details:
            detail.soft_delete()

    def __repr__(self):
        return f'<Delivery {self.id} on {self.delivery_date}>'


class DeliveryDetail(SoftDeleteMixin, db.Model):
    """Represents one line item of a delivery."""
    id = db.Column(db.String(24), primary_key=True)  # e.g. D0000001-01
    delivery_id = db.Column(db.String(20), db.ForeignKey('delivery.id', ondelete='CASCADE'), nullable=False, index=True)
    product_name = db.Column(db.String(200), nullable=False, default='')
    unit_price = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    # Relationships
    delivery = db.relationship('Delivery', back_populates='details')

    # Constraints
    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='check_delivery_detail_quantity_positive'),
        db.CheckConstraint('unit_price >= 0', name='check_delivery_detail_price_non_negative'),
    )

    def __repr__(self):
        return f'<DeliveryDetail {self.id} {self.product_name} x{self.quantity}>'


class Statistics(SoftDeleteMixin, db.Model):
    """Per-customer derived figures: average lead time (days) and total sales."""
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(20), db.ForeignKey('customer.id'), unique=True, nullable=False)
    average_lead_time = db.Column(db.Float, nullable=False, default=0.0)
    total_sales = db.Column(db.Integer, nullable=False, default=0)

    # Relationships
    customer = db.relationship('Customer', back_populates='statistics')

    def __repr__(self):
        return f'<Statistics {self.customer_id} lead={self.average_lead_time} sales={self.total_sales}>'
