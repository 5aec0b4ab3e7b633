"""
Contest entry forms.
Files are read from request.files by the route; these forms cover the text fields.
"""

from flask_wtf import FlaskForm
from wtforms import BooleanField, IntegerField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Email, Length, NumberRange, Optional


class SubmissionForm(FlaskForm):
    first_name = StringField(
        "First name",
        validators=[DataRequired(message="Please enter your first name."), Length(max=120)],
    )
    last_name = StringField("Last name", validators=[Optional(), Length(max=120)])
    email = StringField(
        "Email",
        validators=[DataRequired(message="Please enter your email."), Email(), Length(max=255)],
    )
    phone = StringField("Phone", validators=[Optional(), Length(max=40)])
    age = IntegerField(
        "Age",
        validators=[Optional(), NumberRange(min=5, max=120, message="Please enter a valid age.")],
    )
    tier = StringField(
        "Tier",
        validators=[DataRequired(message="Please choose a tier.")],
    )
    poem_title = StringField("Poem title", validators=[Optional(), Length(max=255)])
    payment_method = StringField(
        "Payment method",
        validators=[Optional(), AnyOf(["stripe", "paypal", "qr", "free", "coupon"])],
    )
    payment_id = StringField("Payment reference", validators=[Optional(), Length(max=160)])
    coupon_code = StringField("Coupon", validators=[Optional(), Length(max=40)])
    user_uid = StringField("User id", validators=[Optional(), Length(max=128)])
    user_id = StringField("User id (alias)", validators=[Optional(), Length(max=128)])
    terms_accepted = BooleanField(
        "I accept the contest terms",
        validators=[DataRequired(message="Please accept the terms and conditions.")],
    )

    @property
    def uid(self):
        return (self.user_uid.data or self.user_id.data or "").strip() or None


class LegacySubmissionForm(SubmissionForm):
    """JSON body with files already uploaded; terms are accepted client-side."""

    terms_accepted = BooleanField("I accept the contest terms", validators=[Optional()])
    poem_file_url = StringField("Poem file URL", validators=[Optional(), Length(max=512)])
    photo_url = StringField("Photo URL", validators=[Optional(), Length(max=512)])


class WallPostForm(FlaskForm):
    title = StringField(
        "Title",
        validators=[DataRequired(message="Please add a title."), Length(max=200)],
    )
    content = TextAreaField(
        "Content",
        validators=[DataRequired(message="Please write something."), Length(max=5000)],
    )
    category = StringField("Category", validators=[Optional(), Length(max=60)])
    user_uid = StringField("User id", validators=[Optional(), Length(max=128)])
    user_id = StringField("User id (alias)", validators=[Optional(), Length(max=128)])
    author_name = StringField("Author", validators=[Optional(), Length(max=160)])
    author_instagram = StringField("Instagram", validators=[Optional(), Length(max=80)])
    author_profile_picture = StringField("Profile picture", validators=[Optional(), Length(max=512)])
