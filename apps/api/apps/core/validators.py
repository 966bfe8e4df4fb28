"""Input coercion shared by the service layer."""
import uuid

from apps.core.exceptions import ValidationError


def require(value, field):
    if value is None or value == '' or value == []:
        raise ValidationError(f'{field} is required')
    return value


def to_uuid(value, field='id'):
    """Parse a UUID (or UUID string); malformed ids are a ValidationError."""
    require(value, field)
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f'{field} is not a valid id: {value!r}')


def to_uuid_list(values, field='ids'):
    """
    Parse a non-empty list of ids, dropping duplicates but keeping order.
    """
    if not isinstance(values, (list, tuple)) or not values:
        raise ValidationError(f'{field} must be a non-empty list')
    seen = []
    for value in values:
        parsed = to_uuid(value, field)
        if parsed not in seen:
            seen.append(parsed)
    return seen


def to_positive_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a positive integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a positive integer, got {value!r}')
    if number != value and str(number) != str(value).strip():
        raise ValidationError(f'{field} must be a positive integer, got {value!r}')
    if number < 1:
        raise ValidationError(f'{field} must be a positive integer, got {value!r}')
    return number


def to_non_negative_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a non-negative integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a non-negative integer, got {value!r}')
    if number != value and str(number) != str(value).strip():
        raise ValidationError(f'{field} must be a non-negative integer, got {value!r}')
    if number < 0:
        raise ValidationError(f'{field} cannot be negative')
    return number


def to_optional_positive_int(value, field):
    if value is None:
        return None
    return to_positive_int(value, field)


def check_choice(value, choices, field):
    """Validate value against a TextChoices enum."""
    require(value, field)
    if value not in choices.values:
        raise ValidationError(
            f'Invalid {field} {value!r}. Valid values: {", ".join(choices.values)}'
        )
    return choices(value)
