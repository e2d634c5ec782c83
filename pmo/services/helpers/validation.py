"""
Field converters for request payloads.

Each service declares a ``{field_name: Field}`` map. ``coerce`` walks only
the keys present in the payload, converts them to column-ready values and
raises ``ValidationError`` on the first bad value. On create
(``partial=False``) every required field must be present; on update the
result is the sparse field map handed to the partial-update assembler.

Usage:
    PHASE_FIELDS = {
        "name": Text(200, required=True),
        "order": Number(minimum=1, integer=True),
        "status": OneOf(PHASE_STATUSES),
    }
    values = coerce(payload, PHASE_FIELDS)                 # create
    patch = coerce(payload, PHASE_FIELDS, partial=True)    # update
"""

from email_validator import EmailNotValidError, validate_email

from pmo.core.exceptions import ValidationError
from pmo.models import db
from pmo.utils.helpers import parse_number, require_date


def _missing(name):
    return ValidationError(f"{name} is required", details={name: "required"})


class Field:
    """Base converter. ``None`` is accepted unless the field is required."""

    def __init__(self, *, required: bool = False, nullable: bool | None = None):
        self.required = required
        self.nullable = (not required) if nullable is None else nullable

    def __call__(self, value, name):
        if value is None or (isinstance(value, str) and not value.strip()):
            if self.required or not self.nullable:
                raise _missing(name)
            return None
        return self.convert(value, name)

    def convert(self, value, name):
        return value


class Text(Field):
    def __init__(self, max_len: int | None = None, **kwargs):
        super().__init__(**kwargs)
        self.max_len = max_len

    def convert(self, value, name):
        value = str(value).strip()
        if self.max_len and len(value) > self.max_len:
            raise ValidationError(
                f"{name} exceeds maximum length of {self.max_len} characters",
                details={name: "too long"},
            )
        return value


class Code(Text):
    """Short identifier stored upper-case."""

    def convert(self, value, name):
        return super().convert(value, name).upper()


class Email(Text):
    def __init__(self, **kwargs):
        super().__init__(200, **kwargs)

    def convert(self, value, name):
        value = super().convert(value, name)
        try:
            return validate_email(value, check_deliverability=False).normalized.lower()
        except EmailNotValidError as exc:
            raise ValidationError(f"Invalid {name}: {exc}", details={name: "invalid email"}) from None


class Number(Field):
    def __init__(self, *, minimum=None, maximum=None, integer=False, **kwargs):
        kwargs.setdefault("nullable", False)
        super().__init__(**kwargs)
        self.minimum = minimum
        self.maximum = maximum
        self.integer = integer

    def convert(self, value, name):
        return parse_number(
            value, name, minimum=self.minimum, maximum=self.maximum, integer=self.integer,
        )


class DateField(Field):
    def convert(self, value, name):
        return require_date(value, name)


class OneOf(Field):
    def __init__(self, allowed, **kwargs):
        kwargs.setdefault("nullable", False)
        super().__init__(**kwargs)
        self.allowed = frozenset(allowed)

    def convert(self, value, name):
        if value not in self.allowed:
            raise ValidationError(
                f"Invalid {name}: '{value}'. Allowed: {sorted(self.allowed)}",
                details={name: "invalid choice"},
            )
        return value


class Reference(Field):
    """Foreign key that must point at an existing row of ``model``."""

    def __init__(self, model, **kwargs):
        super().__init__(**kwargs)
        self.model = model

    def convert(self, value, name):
        try:
            pk = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer id", details={name: "invalid id"}) from None
        if db.session.get(self.model, pk) is None:
            raise ValidationError(
                f"Invalid reference: {self.model.__name__} id={pk} does not exist",
                details={name: "unknown reference"},
            )
        return pk


def coerce(data: dict, fields: dict[str, Field], *, partial: bool = False) -> dict:
    """Convert the payload keys declared in ``fields``; others are dropped."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    if not partial:
        missing = [
            name for name, field in fields.items()
            if field.required and (data.get(name) is None or data.get(name) == "")
        ]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={name: "required" for name in missing},
            )
    return {name: field(data[name], name) for name, field in fields.items() if name in data}


def check_date_range(start, end, start_name="start_date", end_name="end_date"):
    if start and end and end < start:
        raise ValidationError(
            f"{end_name} must not be before {start_name}",
            details={end_name: "before start"},
        )
