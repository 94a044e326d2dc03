from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField, DateField
from wtforms.validators import AnyOf, DataRequired, Length, Optional, Regexp
from config import ORDER_STATUSES


class ApiForm(FlaskForm):
    """Base form for JSON payloads; the store cookie carries no credentials."""

    class Meta:
        csrf = False

    def first_error(self):
        for field_name, messages in self.errors.items():
            if messages:
                return f"{getattr(self, field_name).label.text}: {messages[0]}"
        return 'Invalid request.'


class StoreForm(ApiForm):
    name = StringField('Store name', validators=[DataRequired(), Length(max=100)])


class CustomerForm(ApiForm):
    id = StringField('Customer ID', validators=[
        Optional(),
        Length(max=20),
        Regexp(r'^[A-Za-z0-9-]+$', message='Use letters, digits and hyphens only.'),
    ])
    name = StringField('Customer name', validators=[DataRequired(), Length(max=100)])
    contact_person = StringField('Contact person', validators=[Optional(), Length(max=100)])
    address = StringField('Address', validators=[Optional(), Length(max=200)])
    phone = StringField('Phone', validators=[Optional(), Length(max=30)])
    delivery_condition = StringField('Delivery condition', validators=[Optional(), Length(max=200)])
    note = TextAreaField('Note', validators=[Optional()])


class OrderForm(ApiForm):
    customer_id = StringField('Customer', validators=[DataRequired(message='Select a customer.')])
    order_date = DateField('Order date', format='%Y-%m-%d', validators=[DataRequired()])
    note = TextAreaField('Note', validators=[Optional()])


class OrderUpdateForm(ApiForm):
    customer_id = StringField('Customer', validators=[Optional()])
    order_date = DateField('Order date', format='%Y-%m-%d', validators=[Optional()])
    note = TextAreaField('Note', validators=[Optional()])
    status = StringField('Status', validators=[
        Optional(),
        AnyOf(ORDER_STATUSES, message=f"Status must be one of {', '.join(ORDER_STATUSES)}."),
    ])


class DeliveryForm(ApiForm):
    customer_id = StringField('Customer', validators=[DataRequired(message='Select a customer.')])
    delivery_date = DateField('Delivery date', format='%Y-%m-%d', validators=[DataRequired()])
    note = TextAreaField('Note', validators=[Optional()])
