import pytest
from datetime import datetime, timedelta
import uuid

from marketplace import create_app
from marketplace.database import get_session, create_tables, drop_tables
from marketplace.models import (
    Company, User, UserRole, Address, Category, Product, Promotion, Order, OrderStatus
)


@pytest.fixture(scope='function')
def app():
    """Create application instance with a fresh in-memory database."""
    app = create_app('config.TestConfig')
    with app.app_context():
        create_tables()
        yield app
        get_session().remove()
        drop_tables()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def other_session(app):
    """Second session on the same engine, as a concurrent request would hold."""
    from sqlalchemy.orm import sessionmaker
    from marketplace import database
    other = sessionmaker(bind=database.engine)()
    yield other
    other.rollback()
    other.close()


@pytest.fixture(scope='function')
def now():
    return datetime.now()


@pytest.fixture(scope='function')
def vendor_a(session):
    """Vendor delivering in KARKH."""
    company = Company(name='Vendor A', email='vendor-a@test.com', zones=['KARKH'], is_active=True)
    session.add(company)
    session.commit()
    return company


@pytest.fixture(scope='function')
def vendor_b(session):
    """Vendor delivering in RUSAFA only."""
    company = Company(name='Vendor B', email='vendor-b@test.com', zones=['RUSAFA'], is_active=True)
    session.add(company)
    session.commit()
    return company


def _make_user(session, role, zones=None, company=None, name=None):
    suffix = str(uuid.uuid4())[:8]
    user = User(
        email=f'{role.value.lower()}-{suffix}@test.com',
        name=name or role.value.title(),
        role=role.value,
        company_id=company.id if company else None,
        zones=zones or [],
        is_active=True
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def shop_owner(session):
    return _make_user(session, UserRole.SHOP_OWNER, zones=['KARKH'], name='Shop Owner')


@pytest.fixture(scope='function')
def other_shop_owner(session):
    return _make_user(session, UserRole.SHOP_OWNER, zones=['RUSAFA'], name='Other Shop')


@pytest.fixture(scope='function')
def vendor_admin(session, vendor_a):
    return _make_user(session, UserRole.COMPANY_ADMIN, company=vendor_a, name='Vendor A Admin')


@pytest.fixture(scope='function')
def vendor_b_admin(session, vendor_b):
    return _make_user(session, UserRole.COMPANY_ADMIN, company=vendor_b, name='Vendor B Admin')


@pytest.fixture(scope='function')
def super_admin(session):
    return _make_user(session, UserRole.SUPER_ADMIN, name='Platform Admin')


@pytest.fixture(scope='function')
def driver(session):
    return _make_user(session, UserRole.DRIVER, zones=['KARKH'], name='Driver One')


@pytest.fixture(scope='function')
def address(session, shop_owner):
    """Shop owner's delivery address in KARKH."""
    address = Address(user_id=shop_owner.id, label='Shop', street='Street 14', city='Baghdad', zone='KARKH')
    session.add(address)
    session.commit()
    return address


@pytest.fixture(scope='function')
def category(session):
    category = Category(name='Beverages')
    session.add(category)
    session.commit()
    return category


@pytest.fixture(scope='function')
def product_a(session, vendor_a, category):
    """price=1000, stock=5, min_order_qty=1, owned by vendor A."""
    product = Product(
        company_id=vendor_a.id,
        category_id=category.id,
        sku='SKU-A',
        name='Product A',
        price=1000,
        stock=5,
        min_order_qty=1,
        is_active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(session, vendor_b):
    """price=500, stock=20, owned by vendor B."""
    product = Product(
        company_id=vendor_b.id,
        sku='SKU-B',
        name='Product B',
        price=500,
        stock=20,
        min_order_qty=1,
        is_active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_c(session, vendor_a):
    """price=250, stock=100, min_order_qty=10, owned by vendor A."""
    product = Product(
        company_id=vendor_a.id,
        sku='SKU-C',
        name='Product C',
        price=250,
        stock=100,
        min_order_qty=10,
        is_active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def make_promotion(session, now):
    """Factory for promotions current around `now`."""
    def _make(type, value, products=None, categories=None, **fields):
        promotion = Promotion(
            name=fields.pop('name', f'{type} promo'),
            type=type,
            value=value,
            start_date=fields.pop('start_date', now - timedelta(days=1)),
            end_date=fields.pop('end_date', now + timedelta(days=1)),
            zones=fields.pop('zones', []),
            is_active=fields.pop('is_active', True),
            **fields
        )
        promotion.products = list(products or [])
        promotion.categories = list(categories or [])
        session.add(promotion)
        session.commit()
        return promotion
    return _make


@pytest.fixture(scope='function')
def make_order(session):
    """Factory for an order of `product` in a given status, bypassing checkout."""
    from marketplace.models import OrderItem

    def _make(user, product, quantity=1, status=OrderStatus.PENDING, total=None, **fields):
        subtotal = product.price * quantity
        order = Order(
            order_number=f'ORD-TEST-{uuid.uuid4().hex[:8]}',
            user_id=user.id,
            company_id=product.company_id,
            zone=fields.pop('zone', 'KARKH'),
            status=status,
            subtotal=subtotal,
            discount=0,
            delivery_fee=fields.pop('delivery_fee', 0),
            total=total if total is not None else subtotal,
            **fields
        )
        session.add(order)
        session.flush()
        session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            discount=0,
            total=subtotal,
        ))
        session.commit()
        return order
    return _make


def login(client, user):
    """Put the user in the Flask session (login itself lives outside this service)."""
    user_id = user.id
    with client.session_transaction() as sess:
        sess['user_id'] = user_id
    return client


@pytest.fixture(scope='function')
def owner_client(client, shop_owner):
    return login(client, shop_owner)


@pytest.fixture(scope='function')
def vendor_client(app, vendor_admin):
    return login(app.test_client(), vendor_admin)


@pytest.fixture(scope='function')
def admin_client(app, super_admin):
    return login(app.test_client(), super_admin)


@pytest.fixture(scope='function')
def driver_client(app, driver):
    return login(app.test_client(), driver)


@pytest.fixture(scope='function')
def login_as(app):
    """Factory for a fresh test client logged in as the given user."""
    def _login(user):
        return login(app.test_client(), user)
    return _login
