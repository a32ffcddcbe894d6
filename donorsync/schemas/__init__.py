"""Request payload schemas.

Every body and query string goes through ``parse`` so that malformed input
surfaces as a ValidationError with per-field details.
"""
from pydantic import ValidationError as PydanticValidationError

from donorsync.errors import ValidationError


def _field_path(loc):
    return '.'.join(str(part) for part in loc) or '__root__'


def parse(schema, payload):
    try:
        return schema.model_validate(payload if payload is not None else {})
    except PydanticValidationError as exc:
        details = [
            {'field': _field_path(error['loc']), 'message': error['msg']}
            for error in exc.errors()
        ]
        raise ValidationError('Validation failed', details=details)
