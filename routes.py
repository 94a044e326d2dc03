# -*- coding: utf-8 -*-
# Third-party Imports
from flask import request, jsonify, send_file, abort, current_app
from io import BytesIO
from datetime import datetime
from urllib.parse import quote

# Local Imports
from extensions import db
from models import Store, Customer, Order, Delivery, Statistics
from forms import StoreForm, CustomerForm, OrderForm, OrderUpdateForm, DeliveryForm
from list_query import apply
from listings import (
    ORDER_FIELDS, CUSTOMER_FIELDS, DELIVERY_FIELDS, STATISTICS_FIELDS, STORE_FIELDS,
    DEFAULT_SORTS, order_record, customer_record, delivery_record, statistics_record,
    store_record
)
from utils import (
    error_response, require_store, query_from_request, page_size_from_request,
    min_rows_from_request, get_live_customer, parse_line_items, create_order,
    replace_order_details, create_delivery, generate_customer_id, recalculate_statistics,
    import_customers_csv, generate_statistics_csv, generate_customers_template
)
from config import STORE_COOKIE_SETTINGS, ORDER_STATUSES
from app import app


def list_response(records, listing, registry, per_page_key):
    """Runs the request's list query over ``records`` and builds the JSON response."""
    query = query_from_request(listing, DEFAULT_SORTS)
    per_page = page_size_from_request(per_page_key)
    result = apply(records, query, registry, page_size=per_page, min_rows=min_rows_from_request())
    return jsonify({
        'success': True,
        'data': {
            'rows': result.rows,
            'pagination': {
                'page': result.page + 1,
                'limit': result.page_size,
                'total': result.total_matched,
                'totalPages': result.pages,
                'hasNext': result.has_next,
                'hasPrev': result.has_prev,
            },
            'fields': registry.search_options(),
            'sort': {'key': query.sort_key, 'direction': query.sort_direction},
        },
    })


def form_error(form):
    return error_response(form.first_error(), 400, errors=form.errors)


def json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400, "Request body must be a JSON object.")
    return payload


def csv_download(data, filename):
    buffer = BytesIO()
    buffer.write(data.encode('utf-8-sig'))
    buffer.seek(0)
    return send_file(
        buffer,
        download_name=filename,
        as_attachment=True,
        mimetype='text/csv'
    )

# ---------- STORE ROUTES ---------- #

@app.route('/api/stores', methods=['GET'])
def list_stores():
    """Lists all stores."""
    stores = Store.query.order_by(Store.name).all()
    return list_response([store_record(s) for s in stores], 'stores', STORE_FIELDS, 'STORES_PER_PAGE')

@app.route('/api/stores', methods=['POST'])
def create_store():
    """Creates a store."""
    json_body()
    form = StoreForm()
    if not form.validate_on_submit():
        return form_error(form)
    name = form.name.data.strip()
    if Store.query.filter_by(name=name).first():
        return error_response(f'Store "{name}" already exists.', 409)
    store = Store(name=name)
    db.session.add(store)
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"DB error creating store '{name}': {e}", exc_info=True)
        return error_response('Failed to create the store.', 500)
    current_app.logger.info(f"Store '{name}' created (id={store.id}).")
    return jsonify({'success': True, 'data': store_record(store)}), 201

@app.route('/api/store-selection', methods=['POST'])
def select_store():
    """Remembers the selected store in cookies."""
    payload = json_body()
    try:
        store_id = int(payload.get('storeId'))
    except (TypeError, ValueError):
        return error_response('storeId must be an integer.', 400, status='store_required')
    store = db.session.get(Store, store_id)
    if store is None:
        return error_response('The selected store was not found.', 404, status='store_invalid')
    response = jsonify({'success': True, 'data': store_record(store)})
    max_age = STORE_COOKIE_SETTINGS['MAX_AGE']
    response.set_cookie(STORE_COOKIE_SETTINGS['ID_COOKIE'], str(store.id), max_age=max_age, samesite='Lax')
    response.set_cookie(STORE_COOKIE_SETTINGS['NAME_COOKIE'], quote(store.name),
                        max_age=max_age, samesite='Lax')
    current_app.logger.info(f"Store {store.id} selected from {request.remote_addr}")
    return response

@app.route('/api/store-selection', methods=['DELETE'])
def clear_store_selection():
    """Forgets the selected store."""
    response = jsonify({'success': True})
    response.delete_cookie(STORE_COOKIE_SETTINGS['ID_COOKIE'])
    response.delete_cookie(STORE_COOKIE_SETTINGS['NAME_COOKIE'])
    return response

# ---------- CUSTOMER ROUTES ---------- #

@app.route('/api/customers', methods=['GET'])
def list_customers():
    """Lists the live customers of the selected store."""
    store = require_store()
    customers = Customer.query.options(db.joinedload(Customer.store)).filter(
        Customer.store_id == store.id,
        Customer.is_deleted == False
    ).order_by(Customer.id).all()
    return list_response([customer_record(c) for c in customers], 'customers', CUSTOMER_FIELDS,
                         'CUSTOMERS_PER_PAGE')

@app.route('/api/customers/<customer_id>', methods=['GET'])
def get_customer(customer_id):
    """Returns one customer of the selected store."""
    store = require_store()
    customer = get_live_customer(customer_id, store)
    if customer is None:
        abort(404, "Customer not found.")
    return jsonify({'success': True, 'data': {
        **customer_record(customer),
        'address': customer.address or '',
        'phone': customer.phone or '',
        'delivery_condition': customer.delivery_condition or '',
        'note': customer.note or '',
    }})

@app.route('/api/customers', methods=['POST'])
def create_customer():
    """Creates a customer in the selected store."""
    store = require_store()
    json_body()
    form = CustomerForm()
    if not form.validate_on_submit():
        return form_error(form)
    try:
        customer_id = (form.id.data or '').strip() or generate_customer_id()
        if db.session.get(Customer, customer_id):
            return error_response(f'Customer ID "{customer_id}" already exists.', 409)
        customer = Customer(
            id=customer_id,
            store_id=store.id,
            name=form.name.data.strip(),
            contact_person=form.contact_person.data or None,
            address=form.address.data or None,
            phone=form.phone.data or None,
            delivery_condition=form.delivery_condition.data or None,
            note=form.note.data or None,
        )
        db.session.add(customer)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"DB error creating customer: {e}", exc_info=True)
        return error_response('Failed to create the customer.', 500)
    current_app.logger.info(f"Customer '{customer.id}' created in store {store.id}.")
    return jsonify({'success': True, 'data': customer_record(customer)}), 201

@app.route('/api/customers/<customer_id>', methods=['DELETE'])
def delete_customer(customer_id):
    """Soft-deletes a customer."""
    store = require_store()
    customer = get_live_customer(customer_id, store)
    if customer is None:
        abort(404, "Customer not found.")
    customer.soft_delete()
    db.session.commit()
    current_app.logger.info(f"Customer '{customer_id}' deleted.")
    return jsonify({'success': True})

@app.route('/api/customers/import', methods=['POST'])
def import_customers():
    """Imports customers from an uploaded CSV file; existing IDs are skipped."""
    store = require_store()
    upload = request.files.get('file')
    if not upload or not upload.filename:
        return error_response('No file uploaded.', 400)
    if not upload.filename.lower().endswith('.csv'):
        return error_response('Invalid file type. Please upload a CSV file.', 400)
    try:
        text = upload.stream.read().decode('utf-8-sig')
        imported, skipped, errors = import_customers_csv(text, store)
        if imported == 0:
            db.session.rollback()
            message = 'All customers already exist.' if skipped else 'No valid rows to import.'
            return error_response(message, 400, errors=errors)
        db.session.commit()
    except (ValueError, UnicodeDecodeError) as e:
        db.session.rollback()
        return error_response(f'Import failed: {e}', 400)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Customer CSV import failed: {e}", exc_info=True)
        return error_response('Import failed.', 500)
    current_app.logger.info(f"Imported {imported} customers into store {store.id} ({skipped} skipped).")
    return jsonify({'success': True, 'data': {
        'importedCount': imported,
        'skippedCount': skipped,
        'errors': errors,
    }})

@app.route('/api/customers/template', methods=['GET'])
def download_customers_template():
    """Downloads the customer import template."""
    return csv_download(generate_customers_template(), 'customers_template.csv')

# ---------- ORDER ROUTES ---------- #

def _store_orders(store):
    return Order.query.join(Customer).options(
        db.joinedload(Order.customer),
        db.selectinload(Order.details)
    ).filter(
        Order.is_deleted == False,
        Customer.is_deleted == False,
        Customer.store_id == store.id
    )

def _order_detail(order):
    return {
        **order_record(order),
        'customer_id': order.customer_id,
        'details': [{
            'id': d.id,
            'product_name': d.product_name,
            'unit_price': d.unit_price,
            'quantity': d.quantity,
            'description': d.description or '',
            'subtotal': d.subtotal,
        } for d in order.live_details],
    }

@app.route('/api/orders', methods=['GET'])
def list_orders():
    """Lists the orders of the selected store, optionally filtered by status."""
    store = require_store()
    query = _store_orders(store)
    status = request.args.get('status', '').strip()
    if status:
        if status not in ORDER_STATUSES:
            return error_response(f"Unknown status: '{status}'", 400)
        query = query.filter(Order.status == status)
    orders = query.order_by(Order.id).all()
    return list_response([order_record(o) for o in orders], 'orders', ORDER_FIELDS, 'ORDERS_PER_PAGE')

@app.route('/api/orders/<order_id>', methods=['GET'])
def get_order(order_id):
    """Returns one order with its line items."""
    store = require_store()
    order = _store_orders(store).filter(Order.id == order_id).first()
    if order is None:
        abort(404, "Order not found.")
    return jsonify({'success': True, 'data': _order_detail(order)})

@app.route('/api/orders', methods=['POST'])
def create_order_route():
    """Creates an order with its line items; status starts as pending."""
    store = require_store()
    payload = json_body()
    form = OrderForm()
    if not form.validate_on_submit():
        return form_error(form)
    customer = get_live_customer(str(form.customer_id.data), store)
    if customer is None:
        return error_response('The specified customer was not found.', 404)
    try:
        items = parse_line_items(payload.get('order_details'))
        order = create_order(customer, form.order_date.data, form.note.data or None, items)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating order: {e}", exc_info=True)
        return error_response('Failed to create the order.', 500)
    current_app.logger.info(f"Order '{order.id}' created for customer '{customer.id}'.")
    return jsonify({'success': True, 'data': _order_detail(order)}), 201

@app.route('/api/orders/<order_id>', methods=['PUT'])
def update_order(order_id):
    """Updates the customer, date, note, status or line items of an order."""
    store = require_store()
    payload = json_body()
    order = _store_orders(store).filter(Order.id == order_id).first()
    if order is None:
        abort(404, "Order not found.")
    form = OrderUpdateForm()
    if not form.validate_on_submit():
        return form_error(form)
    customer = None
    if form.customer_id.data:
        customer = get_live_customer(str(form.customer_id.data).strip(), store)
        if customer is None:
            return error_response('The specified customer was not found.', 404)
    items = None
    if 'order_details' in payload:
        try:
            items = parse_line_items(payload['order_details'])
        except ValueError as e:
            return error_response(str(e), 400)
    if customer is not None:
        order.customer = customer
    if items is not None:
        replace_order_details(order, items)
    if form.order_date.data:
        order.order_date = form.order_date.data
    if 'note' in payload:
        order.note = form.note.data or None
    if form.status.data:
        order.status = form.status.data
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating order '{order_id}': {e}", exc_info=True)
        return error_response('Failed to update the order.', 500)
    current_app.logger.info(f"Order '{order_id}' updated.")
    return jsonify({'success': True, 'data': _order_detail(order)})

@app.route('/api/orders/<order_id>', methods=['DELETE'])
def delete_order(order_id):
    """Soft-deletes an order and its line items."""
    store = require_store()
    order = _store_orders(store).filter(Order.id == order_id).first()
    if order is None:
        abort(404, "Order not found.")
    order.soft_delete()
    db.session.commit()
    current_app.logger.info(f"Order '{order_id}' deleted.")
    return jsonify({'success': True})

# ---------- DELIVERY ROUTES ---------- #

def _store_deliveries(store):
    return Delivery.query.join(Customer).options(
        db.joinedload(Delivery.customer),
        db.selectinload(Delivery.details)
    ).filter(
        Delivery.is_deleted == False,
        Customer.is_deleted == False,
        Customer.store_id == store.id
    )

def _delivery_detail(delivery):
    return {
        **delivery_record(delivery),
        'customer_id': delivery.customer_id,
        'total_amount': delivery.total_amount,
        'details': [{
            'id': d.id,
            'product_name': d.product_name,
            'unit_price': d.unit_price,
            'quantity': d.quantity,
        } for d in delivery.live_details],
    }

@app.route('/api/deliveries', methods=['GET'])
def list_deliveries():
    """Lists the deliveries of the selected store."""
    store = require_store()
    deliveries = _store_deliveries(store).order_by(Delivery.id).all()
    return list_response([delivery_record(d) for d in deliveries], 'deliveries', DELIVERY_FIELDS,
                         'DELIVERIES_PER_PAGE')

@app.route('/api/deliveries/<delivery_id>', methods=['GET'])
def get_delivery(delivery_id):
    """Returns one delivery with its line items."""
    store = require_store()
    delivery = _store_deliveries(store).filter(Delivery.id == delivery_id).first()
    if delivery is None:
        abort(404, "Delivery not found.")
    return jsonify({'success': True, 'data': _delivery_detail(delivery)})

@app.route('/api/deliveries', methods=['POST'])
def create_delivery_route():
    """Records a delivery with its line items."""
    store = require_store()
    payload = json_body()
    form = DeliveryForm()
    if not form.validate_on_submit():
        return form_error(form)
    customer = get_live_customer(str(form.customer_id.data), store)
    if customer is None:
        return error_response('The specified customer was not found.', 404)
    try:
        items = parse_line_items(payload.get('delivery_details'))
        delivery = create_delivery(customer, form.delivery_date.data, form.note.data or None, items)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating delivery: {e}", exc_info=True)
        return error_response('Failed to create the delivery.', 500)
    current_app.logger.info(f"Delivery '{delivery.id}' created for customer '{customer.id}'.")
    return jsonify({'success': True, 'data': _delivery_detail(delivery)}), 201

@app.route('/api/deliveries/<delivery_id>', methods=['DELETE'])
def delete_delivery(delivery_id):
    """Soft-deletes a delivery and its line items."""
    store = require_store()
    delivery = _store_deliveries(store).filter(Delivery.id == delivery_id).first()
    if delivery is None:
        abort(404, "Delivery not found.")
    delivery.soft_delete()
    db.session.commit()
    current_app.logger.info(f"Delivery '{delivery_id}' deleted.")
    return jsonify({'success': True})

# ---------- STATISTICS ROUTES ---------- #

def _store_statistics(store):
    stats = Statistics.query.join(Customer).options(db.joinedload(Statistics.customer)).filter(
        Statistics.is_deleted == False,
        Customer.is_deleted == False,
        Customer.store_id == store.id
    ).order_by(Customer.id).all()
    return [statistics_record(s) for s in stats]

@app.route('/api/statistics', methods=['GET'])
def list_statistics():
    """Lists the average lead time and total sales per customer."""
    store = require_store()
    return list_response(_store_statistics(store), 'statistics', STATISTICS_FIELDS, 'STATISTICS_PER_PAGE')

@app.route('/api/statistics/recalculate', methods=['POST'])
def recalculate_statistics_route():
    """Recomputes statistics from orders and deliveries of the selected store."""
    store = require_store()
    try:
        count = recalculate_statistics(store)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error recalculating statistics for store {store.id}: {e}", exc_info=True)
        return error_response('Failed to recalculate statistics.', 500)
    return jsonify({'success': True, 'data': {'customerCount': count}})

@app.route('/api/statistics/export', methods=['GET'])
def export_statistics():
    """Exports the filtered and sorted statistics as CSV."""
    store = require_store()
    query = query_from_request('statistics', DEFAULT_SORTS)
    result = apply(_store_statistics(store), query, STATISTICS_FIELDS)
    if not result.total_matched:
        return error_response('There is no data to export.', 404)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    current_app.logger.info(f"Exported {result.total_matched} statistics rows for store {store.id}.")
    return csv_download(generate_statistics_csv(result.rows), f'statistics_{timestamp}.csv')
