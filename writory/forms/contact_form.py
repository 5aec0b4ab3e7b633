"""Contact form (stored, then mirrored to the Contacts sheet)."""

from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional


class ContactForm(FlaskForm):
    name = StringField(
        "Name",
        validators=[DataRequired(message="Please enter your name."), Length(max=160)],
    )
    email = StringField(
        "Email",
        validators=[DataRequired(message="Please enter your email."), Email(), Length(max=255)],
    )
    phone = StringField("Phone", validators=[Optional(), Length(max=40)])
    subject = StringField("Subject", validators=[Optional(), Length(max=200)])
    message = TextAreaField(
        "Message",
        validators=[DataRequired(message="Please enter a message."), Length(max=5000)],
    )
