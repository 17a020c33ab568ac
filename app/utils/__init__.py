"""
Utilities Package

Shared helper functions used across the application.
"""

from app.utils.formatting import (
    format_currency,
    format_decimal_comma,
    format_european_date,
    format_european_time,
    resolve_placeholders,
)

from app.utils.helpers import (
    API_ERRORS,
    arg_bool,
    arg_date,
    arg_int,
    file_response,
    get_email_service,
    get_payment_service,
    get_storage,
    json_body,
    language_arg,
    list_args,
    org_scope,
    repository,
    server_error,
)

__all__ = [
    'format_currency',
    'format_decimal_comma',
    'format_european_date',
    'format_european_time',
    'resolve_placeholders',
    'API_ERRORS',
    'arg_bool',
    'arg_date',
    'arg_int',
    'file_response',
    'get_email_service',
    'get_payment_service',
    'get_storage',
    'json_body',
    'language_arg',
    'list_args',
    'org_scope',
    'repository',
    'server_error',
]
