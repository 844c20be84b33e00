"""
Flask CLI commands.

Commands:
- flask init-db: Create the database schema
- flask seed-demo: Load the demo menu, staff, tables and discount presets
"""

import click
from decimal import Decimal
from tabletop.database import create_schema, get_session
from tabletop.models import (
    MenuCategory, MenuItem, MenuItemAvailability, StaffMember, StaffRole,
    RestaurantTable, TableStatus, DiscountPreset
)

DEMO_CATEGORIES = ['Appetizers', 'Main Courses', 'Desserts', 'Beverages']

DEMO_MENU = [
    # (number, name, price, category, available, description, allergy tags)
    ('A01', 'Bruschetta', '9.50', 'Appetizers', True,
     'Grilled bread rubbed with garlic and topped with olive oil and salt.', ['vegetarian']),
    ('M01', 'Spaghetti Carbonara', '18.00', 'Main Courses', True,
     'Spaghetti with eggs, hard cheese, cured pork and black pepper.', []),
    ('D01', 'Tiramisu', '8.00', 'Desserts', False,
     'Coffee-flavoured Italian dessert.', ['vegetarian']),
    ('A02', 'Spring Rolls', '8.99', 'Appetizers', True,
     'Crispy rolls with vegetables, served with sweet chili sauce.', ['vegan']),
    ('M02', 'Grilled Salmon', '22.50', 'Main Courses', True,
     'Fresh salmon fillet grilled with lemon and herbs.', ['gluten-free', 'dairy-free']),
    ('D02', 'Chocolate Lava Cake', '9.75', 'Desserts', True,
     'Warm chocolate cake with a molten center.', ['vegetarian']),
    ('B01', 'Iced Tea', '3.50', 'Beverages', True,
     'Freshly brewed iced tea with lemon.', ['vegan', 'gluten-free']),
]

DEMO_STAFF = [
    ('Alice', 'alice@example.com', StaffRole.ADMIN.value),
    ('Bob', 'bob@example.com', StaffRole.WAITER.value),
    ('Charlie', 'charlie@example.com', StaffRole.CASHIER.value),
    ('Diana', 'diana@example.com', StaffRole.WAITER.value),
]

DEMO_TABLES = [('Mesa 1', 2), ('Mesa 2', 4), ('Mesa 3', 4), ('Mesa 4', 6), ('Barra', 8)]

DEMO_DISCOUNTS = [
    # (name, percentage, coupon, description)
    ('Happy Hour', '10', None, '10% en toda la cuenta'),
    ('Cliente frecuente', '15', 'FRECUENTE15', 'Cupón para clientes frecuentes'),
    ('Postres a mitad', '50', 'POSTRE50', 'Mitad de precio en postres'),
]


def seed_demo_data(db_session) -> dict:
    """Insert the demo data; existing rows (by name/email) are left alone."""
    created = {'categories': 0, 'menu_items': 0, 'staff': 0, 'tables': 0, 'discounts': 0}

    categories = {}
    for name in DEMO_CATEGORIES:
        category = db_session.query(MenuCategory).filter_by(name=name).first()
        if not category:
            category = MenuCategory(name=name)
            db_session.add(category)
            db_session.flush()
            created['categories'] += 1
        categories[name] = category

    for number, name, price, category, available, description, tags in DEMO_MENU:
        if db_session.query(MenuItem).filter_by(name=name).first():
            continue
        db_session.add(MenuItem(
            number=number,
            name=name,
            price=Decimal(price),
            category_id=categories[category].id,
            availability=MenuItemAvailability.AVAILABLE.value if available else MenuItemAvailability.UNAVAILABLE.value,
            description=description,
            allergy_tags=tags
        ))
        created['menu_items'] += 1

    for name, email, role in DEMO_STAFF:
        if db_session.query(StaffMember).filter_by(email=email).first():
            continue
        db_session.add(StaffMember(name=name, email=email, role=role, active=True))
        created['staff'] += 1

    for name, capacity in DEMO_TABLES:
        if db_session.query(RestaurantTable).filter_by(name=name).first():
            continue
        db_session.add(RestaurantTable(name=name, capacity=capacity, status=TableStatus.AVAILABLE.value))
        created['tables'] += 1

    db_session.flush()
    desserts_id = categories['Desserts'].id
    for name, pct, coupon, description in DEMO_DISCOUNTS:
        if db_session.query(DiscountPreset).filter_by(name=name).first():
            continue
        db_session.add(DiscountPreset(
            name=name,
            percentage=Decimal(pct),
            coupon_code=coupon,
            description=description,
            applicable_item_ids=[],
            applicable_category_ids=[desserts_id] if coupon == 'POSTRE50' else []
        ))
        created['discounts'] += 1

    db_session.commit()
    return created


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        try:
            create_schema()
            click.echo(click.style('✅ Esquema creado', fg='green', bold=True))
        except Exception as e:
            click.echo(click.style(f'❌ Error al crear el esquema: {str(e)}', fg='red'))

    @app.cli.command('seed-demo')
    @click.option('--create-schema/--no-create-schema', 'with_schema', default=True,
                  help='Create missing tables before seeding')
    def seed_demo(with_schema):
        """Load demo menu, staff, tables and discounts."""
        db_session = get_session()
        try:
            if with_schema:
                create_schema()
            created = seed_demo_data(db_session)
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al cargar datos demo: {str(e)}', fg='red'))
            return

        click.echo(click.style('\n✅ Datos demo cargados', fg='green', bold=True))
        for key, count in created.items():
            click.echo(f'   {key}: {count}')
