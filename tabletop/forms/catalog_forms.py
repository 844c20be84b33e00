"""
Catalog forms: menu items, discount presets, tables and staff.
"""
from decimal import Decimal

from flask_wtf import FlaskForm
from wtforms import (
    BooleanField, DecimalField, IntegerField, SelectField, SelectMultipleField, StringField, TextAreaField
)
from wtforms.validators import DataRequired, NumberRange, Length, Optional, Regexp

from tabletop.exceptions import BusinessLogicError
from tabletop.models import ALLERGY_TAG_OPTIONS, MenuItemAvailability, StaffRole, TableStatus

CENT = Decimal('0.01')


class MenuItemForm(FlaskForm):
    """Menu item create/edit."""

    number = StringField('Código', validators=[Optional(), Length(max=20)])

    name = StringField(
        'Nombre',
        validators=[DataRequired(message='El nombre es requerido'), Length(max=120)]
    )

    description = TextAreaField('Descripción', validators=[Optional()])

    price = DecimalField(
        'Precio',
        validators=[NumberRange(min=0, message='El precio debe ser un número mayor o igual a 0')],
        places=2
    )

    category_id = IntegerField(
        'Categoría',
        validators=[DataRequired(message='La categoría es requerida')]
    )

    availability = SelectField(
        'Disponibilidad',
        choices=[
            (MenuItemAvailability.AVAILABLE.value, 'Disponible'),
            (MenuItemAvailability.UNAVAILABLE.value, 'No disponible')
        ],
        default=MenuItemAvailability.AVAILABLE.value
    )

    image_url = StringField('Imagen', validators=[Optional(), Length(max=255)])

    allergies_notes = TextAreaField('Notas de alergias', validators=[Optional()])

    allergy_tags = SelectMultipleField(
        'Etiquetas de alergia',
        choices=[(tag, tag) for tag in ALLERGY_TAG_OPTIONS],
        validators=[Optional()]
    )

    def to_data(self) -> dict:
        return {
            'number': self.number.data,
            'name': self.name.data,
            'description': self.description.data,
            'price': self.price.data.quantize(CENT),
            'category_id': self.category_id.data,
            'availability': self.availability.data,
            'image_url': self.image_url.data,
            'allergies_notes': self.allergies_notes.data,
            'allergy_tags': self.allergy_tags.data or [],
        }


class DiscountPresetForm(FlaskForm):
    """Discount preset create/edit. Item/category restrictions are read from the JSON body."""

    name = StringField(
        'Nombre',
        validators=[DataRequired(message='El nombre es requerido'), Length(max=120)]
    )

    percentage = DecimalField(
        'Porcentaje',
        validators=[NumberRange(message='El porcentaje es requerido')],  # range checked by discount_service
        places=2
    )

    description = TextAreaField('Descripción', validators=[Optional()])

    coupon_code = StringField(
        'Cupón',
        validators=[
            Optional(),
            Length(max=50),
            Regexp(r'^[A-Za-z0-9_-]+$', message='El cupón solo admite letras, números, - y _')
        ]
    )


class TableForm(FlaskForm):
    """Restaurant table create/edit."""

    name = StringField(
        'Nombre',
        validators=[DataRequired(message='El nombre es requerido'), Length(max=50)]
    )

    capacity = IntegerField(
        'Capacidad',
        validators=[NumberRange(min=1, max=50, message='La capacidad debe estar entre 1 y 50')],
        default=4
    )

    status = SelectField(
        'Estado',
        choices=[('', 'Sin cambio')] + [(s.value, s.value) for s in TableStatus],
        default=''
    )


class StaffForm(FlaskForm):
    """Staff member create/edit."""

    name = StringField(
        'Nombre',
        validators=[DataRequired(message='El nombre es requerido'), Length(max=120)]
    )

    email = StringField(
        'Email',
        validators=[
            DataRequired(message='El email es requerido'),
            Regexp(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', message='Email inválido')
        ]
    )

    role = SelectField(
        'Rol',
        choices=[(r.value, r.value) for r in StaffRole],
        default=StaffRole.WAITER.value
    )

    active = BooleanField('Activo', default=True)


def validate_or_raise(form):
    """Validate a form; field errors travel in the error payload."""
    if not form.validate():
        raise BusinessLogicError('Datos inválidos', payload={'errors': form.errors})
    return form
