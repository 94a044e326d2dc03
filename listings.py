# -*- coding: utf-8 -*-
"""
Field registries for each list endpoint and the functions that turn model
rows into the flat records the list query engine works on.
"""
from list_query import FieldDescriptor, FieldRegistry, ASCENDING

DATE_FORMAT = '%Y-%m-%d'


def format_date(value):
    """Formats a date/datetime as YYYY-MM-DD, '' for None."""
    if value is None:
        return ''
    return value.strftime(DATE_FORMAT)


ORDER_FIELDS = FieldRegistry([
    FieldDescriptor('id', 'Order ID'),
    FieldDescriptor('order_date', 'Order Date'),
    FieldDescriptor('customer_name', 'Customer Name'),
    FieldDescriptor('note', 'Note'),
    FieldDescriptor('status', 'Status'),
    FieldDescriptor('total_amount', 'Total', searchable=False, blank=0),
    FieldDescriptor('product_names', 'Product Name', comparable=False),
])

CUSTOMER_FIELDS = FieldRegistry([
    FieldDescriptor('id', 'Customer ID'),
    FieldDescriptor('customer_name', 'Customer Name'),
    FieldDescriptor('manager_name', 'Contact Person'),
    FieldDescriptor('store_name', 'Store'),
])

DELIVERY_FIELDS = FieldRegistry([
    FieldDescriptor('id', 'Delivery ID'),
    FieldDescriptor('delivery_date', 'Delivery Date'),
    FieldDescriptor('customer_name', 'Customer Name'),
    FieldDescriptor('note', 'Note'),
])

STATISTICS_FIELDS = FieldRegistry([
    FieldDescriptor('customer_id', 'Customer ID'),
    FieldDescriptor('customer_name', 'Customer Name'),
    FieldDescriptor('average_lead_time', 'Average Lead Time (days)', blank=0),
    FieldDescriptor('total_sales', 'Total Sales', blank=0),
    FieldDescriptor('updated_at', 'Updated', searchable=False),
])

STORE_FIELDS = FieldRegistry([
    FieldDescriptor('id', 'Store ID', blank=0),
    FieldDescriptor('name', 'Store Name'),
])

# Default (sort key, direction) used when the request names none
DEFAULT_SORTS = {
    'orders': ('id', ASCENDING),
    'customers': ('id', ASCENDING),
    'deliveries': ('id', ASCENDING),
    'statistics': ('customer_id', ASCENDING),
    'stores': ('name', ASCENDING),
}


def order_record(order):
    details = order.live_details
    return {
        'id': order.id,
        'order_date': format_date(order.order_date),
        'customer_name': order.customer.name,
        'note': order.note or '',
        'status': order.status,
        'total_amount': sum(d.subtotal for d in details),
        'product_names': ', '.join(d.product_name for d in details if d.product_name),
    }


def customer_record(customer):
    return {
        'id': customer.id,
        'customer_name': customer.name,
        'manager_name': customer.contact_person or '',
        'store_name': customer.store.name,
    }


def delivery_record(delivery):
    return {
        'id': delivery.id,
        'delivery_date': format_date(delivery.delivery_date),
        'customer_name': delivery.customer.name,
        'note': delivery.note or '',
    }


def statistics_record(stat):
    return {
        'customer_id': stat.customer.id,
        'customer_name': stat.customer.name,
        'average_lead_time': stat.average_lead_time or 0,
        'total_sales': stat.total_sales or 0,
        'updated_at': stat.updated_at.isoformat() if stat.updated_at else '',
    }


def store_record(store):
    return {'id': store.id, 'name': store.name}
