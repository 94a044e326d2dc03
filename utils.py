from extensions import db
from models import Store, Customer, Order, OrderDetail, Delivery, DeliveryDetail, Statistics
from flask import current_app, jsonify, request
from list_query import Query, SCOPE_ALL, ASCENDING
from config import PAGINATION_SETTINGS, STORE_COOKIE_SETTINGS
import csv
import re
from io import StringIO


class StoreSelectionError(Exception):
    """Raised when a store-scoped request has no usable store."""

    def __init__(self, status, message, http_status):
        super().__init__(message)
        self.status = status
        self.message = message
        self.http_status = http_status

def error_response(message, status_code, **extra):
    """JSON error body shared by route handlers and error handlers."""
    payload = {'success': False, 'error': message}
    payload.update(extra)
    return jsonify(payload), status_code

# --- Store Context ---

def get_store_id_from_cookie():
    """
    Returns the selected store id from the explicit storeId argument or the
    store selection cookie, or None when neither holds an integer.
    """
    raw = request.args.get('storeId') or request.cookies.get(STORE_COOKIE_SETTINGS['ID_COOKIE'])
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        current_app.logger.warning(f"Ignoring malformed store id: {raw!r}")
        return None

def require_store():
    """
    Resolves the current store.
    Raises StoreSelectionError when no store is selected or it does not exist.
    """
    store_id = get_store_id_from_cookie()
    if store_id is None:
        raise StoreSelectionError('store_required', 'Please select a store.', 400)
    store = db.session.get(Store, store_id)
    if store is None:
        raise StoreSelectionError('store_invalid', 'The selected store was not found.', 404)
    return store

# --- List Queries ---

def query_from_request(listing, default_sorts):
    """
    Builds a list Query from the request arguments q, field, sort, direction and page.
    Pages are 1-based on the wire and zero-based in the Query.
    """
    default_key, default_direction = default_sorts.get(listing, (None, ASCENDING))
    sort_key = request.args.get('sort', '').strip() or default_key
    direction = request.args.get('direction', '').strip().lower() or default_direction
    page = request.args.get('page', 1, type=int) or 1
    return Query(
        keyword=request.args.get('q', '').strip(),
        scope=request.args.get('field', '').strip() or SCOPE_ALL,
        sort_key=sort_key,
        sort_direction=direction,
        page=max(page, 1) - 1,
    )

def page_size_from_request(setting_key):
    """Returns per_page from the request, clamped to 1..MAX_PER_PAGE."""
    per_page = request.args.get('per_page', PAGINATION_SETTINGS[setting_key], type=int)
    if per_page is None or per_page < 1:
        per_page = PAGINATION_SETTINGS[setting_key]
    return min(per_page, PAGINATION_SETTINGS['MAX_PER_PAGE'])

def min_rows_from_request():
    """Padding is only applied when the caller asks for it, up to MAX_PER_PAGE rows."""
    min_rows = request.args.get('min_rows', type=int)
    if min_rows is None or min_rows < 0:
        return None
    return min(min_rows, PAGINATION_SETTINGS['MAX_PER_PAGE'])

# --- ID Generation ---

def _next_sequence_id(model, prefix, width):
    """
    Returns the id after the numerically highest one shaped prefix + at least
    `width` digits. Imported ids of any other shape are ignored.
    """
    pattern = re.compile(rf'^{re.escape(prefix)}\d{{{width},}}$')
    candidates = db.session.query(model.id).filter(model.id.like(f'{prefix}%')).all()
    numbers = [int(row[0][len(prefix):]) for row in candidates if pattern.match(row[0])]
    return f'{prefix}{max(numbers, default=0) + 1:0{width}d}'

def generate_customer_id():
    return _next_sequence_id(Customer, 'C-', 5)

def generate_order_id():
    return _next_sequence_id(Order, 'O', 7)

def generate_delivery_id():
    return _next_sequence_id(Delivery, 'D', 7)

def generate_detail_id(parent_id, index):
    """Line item ids are the parent id plus a two digit, 1-based position."""
    return f'{parent_id}-{index + 1:02d}'

# --- Payload Helpers ---

def validate_non_negative_int(value, label):
    """
    Validates that the input is an integer >= 0.
    Raises ValueError if the input is invalid or negative.
    """
    try:
        num = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {label} value: {value}")
    if num < 0:
        raise ValueError(f"Invalid {label} value: {value}")
    return num

def validate_positive_int(value, label='quantity'):
    """
    Validates that the input is a positive integer.
    Raises ValueError if the input is invalid or non-positive.
    """
    num = validate_non_negative_int(value, label)
    if num == 0:
        raise ValueError(f"Invalid {label} value: {value}")
    return num

def parse_line_items(items):
    """
    Validates the line items of an order or delivery payload.
    Returns a list of dicts with product_name, unit_price, quantity and description.
    """
    if not items or not isinstance(items, list):
        raise ValueError("Add at least one product.")
    parsed = []
    for position, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValueError(f"Line {position} is not an object.")
        product_name = str(item.get('product_name') or '').strip()
        description = str(item.get('description') or '').strip()
        if not product_name and not description:
            raise ValueError(f"Line {position}: enter a product name or description.")
        parsed.append({
            'product_name': product_name,
            'unit_price': validate_non_negative_int(item.get('unit_price', 0), 'unit price'),
            'quantity': validate_positive_int(item.get('quantity', 1)),
            'description': description or None,
        })
    return parsed

def get_live_customer(customer_id, store=None):
    """Returns the customer unless it is deleted or belongs to another store."""
    customer = db.session.get(Customer, customer_id) if customer_id else None
    if customer is None or customer.is_deleted:
        return None
    if store is not None and customer.store_id != store.id:
        return None
    return customer

def create_order(customer, order_date, note, items):
    """Adds an order and its details to the session; the caller commits."""
    order = Order(id=generate_order_id(), customer_id=customer.id, order_date=order_date, note=note)
    db.session.add(order)
    for index, item in enumerate(items):
        order.details.append(OrderDetail(id=generate_detail_id(order.id, index), **item))
    return order

def _detail_position(detail_id):
    suffix = detail_id.rpartition('-')[2]
    return int(suffix) if suffix.isdigit() else 0

def replace_order_details(order, items):
    """
    Soft-deletes the live details of an order and appends new ones built from items.
    New ids continue after the highest position used so far, deleted details included.
    """
    last_position = max((_detail_position(d.id) for d in order.details), default=0)
    for detail in order.live_details:
        detail.soft_delete()
    for offset, item in enumerate(items):
        order.details.append(OrderDetail(id=generate_detail_id(order.id, last_position + offset), **item))

def create_delivery(customer, delivery_date, note, items):
    """Adds a delivery and its details to the session; the caller commits."""
    delivery = Delivery(id=generate_delivery_id(), customer_id=customer.id, delivery_date=delivery_date, note=note)
    db.session.add(delivery)
    for index, item in enumerate(items):
        delivery.details.append(DeliveryDetail(
            id=generate_detail_id(delivery.id, index),
            product_name=item['product_name'],
            unit_price=item['unit_price'],
            quantity=item['quantity'],
        ))
    return delivery

# --- Statistics ---

def calculate_customer_statistics(customer):
    """
    Computes (average_lead_time, total_sales) for one customer.
    The lead time of an order is the number of days until the customer's first
    delivery on or after the order date; orders without one are skipped.
    """
    orders = Order.query.filter_by(customer_id=customer.id, is_deleted=False).all()
    total_sales = sum(order.total_amount for order in orders)

    delivery_dates = sorted(
        d.delivery_date for d in Delivery.query.filter_by(customer_id=customer.id, is_deleted=False)
    )
    lead_times = []
    for order in orders:
        first_delivery = next((d for d in delivery_dates if d >= order.order_date), None)
        if first_delivery is not None:
            lead_times.append((first_delivery - order.order_date).days)

    average_lead_time = sum(lead_times) / len(lead_times) if lead_times else 0.0
    return average_lead_time, total_sales

def recalculate_statistics(store):
    """
    Recalculates and upserts the Statistics row of every live customer of the store.
    Returns the number of customers processed. The caller commits.
    """
    customers = Customer.query.filter_by(store_id=store.id, is_deleted=False).order_by(Customer.id).all()
    for customer in customers:
        average_lead_time, total_sales = calculate_customer_statistics(customer)
        stat = Statistics.query.filter_by(customer_id=customer.id).first()
        if stat is None:
            stat = Statistics(customer_id=customer.id)
            db.session.add(stat)
        stat.average_lead_time = average_lead_time
        stat.total_sales = total_sales
        stat.is_deleted = False
        stat.deleted_at = None
    current_app.logger.info(f"Recalculated statistics for {len(customers)} customers of store '{store.name}'")
    return len(customers)

# --- CSV Processing Functions ---

CUSTOMER_CSV_HEADERS = ['ID', 'Name', 'ContactPerson', 'Address', 'Phone', 'DeliveryCondition', 'Note']

def process_customer_row(row, store, existing_ids):
    """
    Processes a single row from a customer CSV import.
    Returns the new Customer, or None when the ID already exists.
    Raises ValueError when ID or Name is missing.
    """
    customer_id = (row.get('ID') or '').strip()
    name = (row.get('Name') or '').strip()
    if not customer_id or not name:
        raise ValueError("ID and Name are required.")
    if customer_id in existing_ids:
        return None
    customer = Customer(
        id=customer_id,
        store_id=store.id,
        name=name,
        contact_person=(row.get('ContactPerson') or '').strip() or None,
        address=(row.get('Address') or '').strip() or None,
        phone=(row.get('Phone') or '').strip() or None,
        delivery_condition=(row.get('DeliveryCondition') or '').strip() or None,
        note=(row.get('Note') or '').strip() or None,
    )
    db.session.add(customer)
    existing_ids.add(customer_id)
    return customer

def import_customers_csv(text, store):
    """
    Imports customers from CSV text into the given store.
    Returns (imported, skipped, errors); the caller commits.
    """
    reader = csv.DictReader(StringIO(text))
    missing = {'ID', 'Name'} - set(reader.fieldnames or [])
    if missing:
        raise ValueError(f"CSV is missing required columns: {', '.join(sorted(missing))}")
    existing_ids = {row[0] for row in db.session.query(Customer.id).all()}
    imported, skipped, errors = 0, 0, []
    for line_number, row in enumerate(reader, start=2):
        try:
            if process_customer_row(row, store, existing_ids) is None:
                skipped += 1
            else:
                imported += 1
        except ValueError as e:
            errors.append(f"Row {line_number}: {e}")
    return imported, skipped, errors

# --- CSV Generation Functions ---

def generate_statistics_csv(rows):
    """
    Generates a CSV string of statistics records, in the given order.
    """
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(['Customer ID', 'Customer Name', 'Average Lead Time (days)', 'Total Sales'])
    for row in rows:
        writer.writerow([
            row['customer_id'],
            row['customer_name'],
            f"{row['average_lead_time']:.1f}",
            row['total_sales'],
        ])
    return output.getvalue()

# --- Template Generation Functions ---

def generate_customers_template():
    """
    Generates a CSV template for customer import.
    """
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CUSTOMER_CSV_HEADERS)
    writer.writerow(['C-00001', '大阪情報専門学校', '山田太郎', '大阪府大阪市北区', '06-1234-5678',
                     '通常2-3営業日以内', '学校関連の納品は事前に連絡が必要'])
    return output.getvalue()
