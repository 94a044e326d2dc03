# -*- coding: utf-8 -*-
# Standard Library Imports
import os
import random
import logging
from datetime import date, timedelta
from logging.handlers import RotatingFileHandler
import click
from flask import Flask, request
from extensions import db  # Import db from extensions
from flask_migrate import Migrate
from list_query import ConfigurationError


# --- App Configuration ---
app = Flask(__name__)
app.secret_key = os.environ.get('SECRET_KEY', 'dev-insecure-fallback-key')
db_url = os.environ.get('DATABASE_URL', 'sqlite:///store.db')
app.config['SQLALCHEMY_DATABASE_URI'] = db_url
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
if db_url.startswith('sqlite'):
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'connect_args': {'check_same_thread': False}
    }
app.json.ensure_ascii = False

# Initialize db
db.init_app(app)


# --- Other Extensions ---
migrate = Migrate(app, db)

# --- Logging Setup ---
log_formatter = logging.Formatter('%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')
log_level_str = os.environ.get('LOG_LEVEL', 'DEBUG').upper()
log_level = getattr(logging, log_level_str, logging.DEBUG)
log_file = os.environ.get('LOG_FILE', 'app.log')
if log_file and not app.debug:
    log_handler = RotatingFileHandler(log_file, maxBytes=1024000, backupCount=10, encoding='utf-8')
    log_handler.setFormatter(log_formatter)
    log_handler.setLevel(log_level)
    app.logger.addHandler(log_handler)
app.logger.setLevel(log_level)
app.logger.info('Store Management App Starting Up...')
app.logger.info(f'Database URI: {db_url}')
if app.secret_key == 'dev-insecure-fallback-key':
    app.logger.warning('SECURITY WARNING: Using default SECRET_KEY. Set the SECRET_KEY environment variable for production!')

# --- Import Models and Routes ---
from models import *
from routes import *
from utils import StoreSelectionError, error_response, recalculate_statistics, generate_detail_id
from config import ORDER_STATUSES

# --- CLI Commands ---
@app.cli.command("seed-demo")
@click.option('--store-name', default='本社', show_default=True, help='Name of the store to create.')
@click.option('--orders', 'order_count', default=20, show_default=True, help='Number of orders to generate.')
def seed_demo(store_name, order_count):
    """Creates a store with demo customers, orders and deliveries."""
    if Store.query.filter_by(name=store_name).first():
        click.echo(f"Store '{store_name}' already exists.")
        return
    store = Store(name=store_name)
    db.session.add(store)
    db.session.flush()
    customers = [
        Customer(id='C-00001', store_id=store.id, name='大阪情報専門学校', contact_person='山田太郎',
                 address='大阪府大阪市北区', phone='06-1234-5678', delivery_condition='通常2-3営業日以内'),
        Customer(id='C-00002', store_id=store.id, name='株式会社スマートソリューションズ', contact_person='佐藤次郎',
                 address='大阪府大阪市中央区', phone='06-2345-6789', delivery_condition='当日納品対応可'),
        Customer(id='C-00003', store_id=store.id, name='株式会社SCC', contact_person='田中三郎',
                 address='大阪府吹田市', phone='06-3456-7890', delivery_condition='午前中指定'),
    ]
    db.session.add_all(customers)
    products = [('ノートパソコン', 120000), ('タブレット', 50000), ('モニター', 25000), ('キーボード', 5000)]
    for i in range(1, order_count + 1):
        customer = random.choice(customers)
        order_date = date(2025, 1, 1) + timedelta(days=random.randint(0, 180))
        order = Order(id=f'O{i:07d}', customer_id=customer.id, order_date=order_date,
                      status=random.choice(ORDER_STATUSES), note=f'Order {i}')
        db.session.add(order)
        for index in range(random.randint(1, 3)):
            name, price = random.choice(products)
            order.details.append(OrderDetail(id=generate_detail_id(order.id, index), product_name=name,
                                             unit_price=price, quantity=random.randint(1, 5)))
        delivery = Delivery(id=f'D{i:07d}', customer_id=customer.id,
                            delivery_date=order_date + timedelta(days=random.randint(1, 10)))
        db.session.add(delivery)
    try:
        db.session.flush()
        recalculate_statistics(store)
        db.session.commit()
        click.echo(f"Seeded store '{store_name}' with {len(customers)} customers and {order_count} orders.")
        app.logger.info(f"Demo data seeded for store '{store_name}' via CLI.")
    except Exception as e:
        db.session.rollback()
        click.echo(f"Error seeding demo data: {e}")
        app.logger.error(f"Error seeding demo data for store '{store_name}' via CLI: {e}", exc_info=True)

@app.cli.command("recalculate-statistics")
@click.option('--store-id', type=int, default=None, help='Only recalculate this store (default: all stores).')
def recalculate_statistics_command(store_id):
    """Recalculates lead time and sales statistics for one or all stores."""
    if store_id is not None:
        store = db.session.get(Store, store_id)
        if store is None:
            click.echo(f"Store {store_id} not found.")
            return
        stores = [store]
    else:
        stores = Store.query.order_by(Store.id).all()
    total = 0
    for store in stores:
        total += recalculate_statistics(store)
    db.session.commit()
    click.echo(f"Recalculated statistics for {total} customers in {len(stores)} store(s).")

# --- Error Handling ---
@app.errorhandler(ConfigurationError)
def invalid_list_query(e):
    app.logger.warning(f"Invalid list query on {request.url}: {e}")
    return error_response(str(e), 400)

@app.errorhandler(StoreSelectionError)
def store_selection_error(e):
    app.logger.info(f"Store selection problem on {request.url}: {e.status}")
    return error_response(e.message, e.http_status, status=e.status)

@app.errorhandler(404)
def page_not_found(e):
    app.logger.warning(f"404 Not Found: {request.url} ({e})")
    return error_response(getattr(e, 'description', None) or 'Not found.', 404)

@app.errorhandler(500)
def internal_server_error(e):
    app.logger.error(f"500 Internal Server Error: {request.url} ({e})", exc_info=True)
    try:
        db.session.rollback()
        app.logger.info("Rolled back database session after 500 error.")
    except Exception as rollback_e:
        app.logger.error(f"Error during rollback after 500 error: {rollback_e}", exc_info=True)
    return error_response('Internal server error.', 500)

@app.errorhandler(405)
def method_not_allowed(e):
    app.logger.warning(f"405 Method Not Allowed: {request.url}")
    return error_response('Method not allowed.', 405)

@app.errorhandler(400)
def bad_request(e):
    return error_response(getattr(e, 'description', None) or 'Bad request.', 400)

# --- Main Execution ---
if __name__ == '__main__':
    app_debug = os.environ.get('FLASK_DEBUG', 'False').lower() in ('true', '1', 't')
    port = int(os.environ.get('PORT', 5000))
    host = os.environ.get('HOST', '127.0.0.1')
    app.run(debug=app_debug, host=host, port=port)
