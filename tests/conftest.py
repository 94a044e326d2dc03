"""Pytest configuration and fixtures."""

import os
from datetime import date

import pytest

# The app reads its configuration at import time
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['LOG_FILE'] = ''
os.environ.setdefault('LOG_LEVEL', 'WARNING')

from app import app as flask_app  # noqa: E402
from extensions import db  # noqa: E402
from models import Store, Customer, Order, OrderDetail, Delivery  # noqa: E402


@pytest.fixture
def app():
    """Application with a fresh in-memory database per test."""
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    store = Store(name='本社')
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture
def other_store(app):
    store = Store(name='Branch')
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture
def customers(store):
    rows = [
        Customer(id='C-00001', store_id=store.id, name='大阪情報専門学校', contact_person='山田太郎'),
        Customer(id='C-00002', store_id=store.id, name='株式会社スマートソリューションズ', contact_person='佐藤次郎'),
        Customer(id='C-00003', store_id=store.id, name='株式会社SCC', contact_person='田中三郎'),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


@pytest.fixture
def orders(customers):
    """Two orders for C-00001 and one for C-00002."""
    first = Order(id='O0000001', customer_id='C-00001', order_date=date(2025, 1, 10), status='完了', note='急ぎ')
    first.details.append(OrderDetail(id='O0000001-01', product_name='ノートパソコン', unit_price=120000, quantity=2))
    first.details.append(OrderDetail(id='O0000001-02', product_name='マウス', unit_price=3000, quantity=1))
    second = Order(id='O0000002', customer_id='C-00001', order_date=date(2025, 2, 1), status='未完了')
    second.details.append(OrderDetail(id='O0000002-01', product_name='モニター', unit_price=25000, quantity=1))
    third = Order(id='O0000003', customer_id='C-00002', order_date=date(2025, 1, 20), status='未完了', note='午前中')
    third.details.append(OrderDetail(id='O0000003-01', product_name='プリンタ', unit_price=30000, quantity=1))
    db.session.add_all([first, second, third])
    db.session.commit()
    return [first, second, third]


@pytest.fixture
def deliveries(customers):
    rows = [
        Delivery(id='D0000001', customer_id='C-00001', delivery_date=date(2025, 1, 13)),
        Delivery(id='D0000002', customer_id='C-00001', delivery_date=date(2025, 2, 6)),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


@pytest.fixture
def selected_client(client, store):
    """Test client whose store selection cookie points at ``store``."""
    response = client.post('/api/store-selection', json={'storeId': store.id})
    assert response.status_code == 200
    return client
