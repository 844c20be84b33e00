import pytest
from decimal import Decimal

from tabletop import create_app
from tabletop.database import create_schema, drop_schema, get_session
from tabletop.cli_commands import seed_demo_data
from tabletop.models import MenuItem, StaffMember, RestaurantTable, DiscountPreset
from tabletop.services.checkout_service import CheckoutLine


@pytest.fixture(scope='function')
def app():
    """Application on a fresh in-memory SQLite database."""
    app = create_app('config.TestingConfig')
    with app.app_context():
        create_schema()
        yield app
        get_session().remove()
        drop_schema()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session shared with the requests of the test."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def demo(session):
    """Seed the demo data and return handy ids."""
    seed_demo_data(session)
    menu = {item.name: item.id for item in session.query(MenuItem).all()}
    staff = {member.name: member.id for member in session.query(StaffMember).all()}
    tables = {table.name: table.id for table in session.query(RestaurantTable).all()}
    presets = {preset.name: preset.id for preset in session.query(DiscountPreset).all()}
    return {'menu': menu, 'staff': staff, 'tables': tables, 'presets': presets}


class StaticCatalog:
    """In-memory preset lookup for CheckoutSession tests."""

    def __init__(self, *rules):
        self.rules = {rule.id: rule for rule in rules}

    def get_rule(self, preset_id):
        return self.rules.get(preset_id)

    def find_rule_by_coupon(self, code):
        for rule in self.rules.values():
            if rule.coupon_code and rule.coupon_code.upper() == code.strip().upper():
                return rule
        return None


def make_line(item_id, price, quantity=1, menu_item_id=None, category_id=None, is_courtesy=False,
              status='pending', assigned_guest=None):
    return CheckoutLine(
        id=item_id,
        menu_item_id=menu_item_id or f'm-{item_id}',
        name=f'Item {item_id}',
        price=Decimal(str(price)),
        quantity=quantity,
        is_courtesy=is_courtesy,
        status=status,
        category_id=category_id,
        assigned_guest=assigned_guest
    )


@pytest.fixture
def line():
    return make_line


@pytest.fixture
def static_catalog():
    return StaticCatalog
