"""
Input Validation & Sanitization Utilities
Provides secure validation for API requests, file uploads, and business documents
"""
import re
import os
from datetime import date, datetime, timezone
from typing import Dict, Any, List, Optional, Tuple
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename
import logging

logger = logging.getLogger(__name__)

# Allowed file extensions by category
ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
ALLOWED_DOCUMENT_EXTENSIONS = {'pdf', 'doc', 'docx', 'txt', 'xlsx', 'csv', 'png', 'jpg', 'jpeg'}
ALLOWED_IMPORT_EXTENSIONS = {'csv'}

# Maximum file sizes (in bytes)
MAX_IMAGE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_DOCUMENT_SIZE = 20 * 1024 * 1024  # 20MB
MAX_IMPORT_SIZE = 5 * 1024 * 1024  # 5MB

# Regex patterns
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\+?\d{6,15}$')

# Allowed enum values
USER_ROLES = ['super_admin', 'admin', 'key_user', 'field_service_employee']
INVOICE_STATUSES = ['draft', 'sent', 'paid', 'overdue']
QUOTE_STATUSES = ['draft', 'sent', 'accepted', 'declined']
VISIT_STATUSES = ['planned', 'completed', 'cancelled']
VISIT_CATEGORIES = ['Maintenance', 'Repair', 'Consulting', 'Training']
APPOINTMENT_STATUSES = ['draft', 'open', 'in_progress', 'done']
APPOINTMENT_TYPES = ['standard', 'absence']
PRODUCT_TYPES = ['good', 'service']
STOCK_STATUSES = ['Available', 'Low', 'Not Available', 'Available Soon']
TEXT_BLOCK_TARGETS = ['invoice', 'quote', 'visit']


class ValidationError(Exception):
    """Custom exception for validation errors"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


def ensure_valid(result: Tuple[bool, Optional[str]], field: Optional[str] = None) -> None:
    """
    Raise ValidationError for a failed (is_valid, error_message) result

    Args:
        result: Tuple returned by one of the validate_* helpers
        field: Field name to attach to the error
    """
    is_valid, error = result
    if not is_valid:
        raise ValidationError(error, field)


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate that all required fields are present in the data

    Args:
        data: Dictionary of input data
        required_fields: List of required field names

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None or data[field] == '']

    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Validate email format

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not email or not isinstance(email, str):
        return False, "Email must be a non-empty string"

    if len(email) > 254:  # RFC 5321
        return False, "Email address too long"

    if not EMAIL_PATTERN.match(email):
        return False, "Invalid email format"

    return True, None


def validate_phone(phone: str) -> Tuple[bool, Optional[str]]:
    """
    Validate phone number format

    Args:
        phone: Phone number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone must be a non-empty string"

    # Remove common separators
    cleaned_phone = re.sub(r'[\s\-\(\)/\.]', '', phone)

    if not PHONE_PATTERN.match(cleaned_phone):
        return False, "Invalid phone number format"

    return True, None


def validate_string_length(value: str, min_length: int = 0, max_length: int = 1000) -> Tuple[bool, Optional[str]]:
    """
    Validate string length is within acceptable range

    Args:
        value: String to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, "Value must be a string"

    if len(value) < min_length:
        return False, f"Value too short (minimum {min_length} characters)"

    if len(value) > max_length:
        return False, f"Value too long (maximum {max_length} characters)"

    return True, None


def validate_choice(value: Any, choices: List[str], label: str = 'value') -> Tuple[bool, Optional[str]]:
    """Validate that a value is one of the allowed choices"""
    if value not in choices:
        return False, f"Invalid {label}. Allowed: {', '.join(choices)}"
    return True, None


def to_number(value: Any, field: str, default: Optional[float] = 0.0) -> Optional[float]:
    """
    Coerce form/JSON input to a float

    Raises:
        ValidationError: If the value is present but not numeric
    """
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field)


def parse_date(value: Any, field: str) -> Optional[date]:
    """
    Parse an ISO date (``YYYY-MM-DD``) or timestamp into a date

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if 'T' in text:
                return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a valid date (YYYY-MM-DD)", field)


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """
    Parse an ISO timestamp into a naive datetime

    Timezone-aware values are converted to UTC before dropping the offset.

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"{field} must be a valid ISO timestamp", field)
    else:
        raise ValidationError(f"{field} must be a valid ISO timestamp", field)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """
    Sanitize string input by removing potentially dangerous characters

    Args:
        value: String to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return str(value)

    # Remove null bytes
    sanitized = value.replace('\x00', '')

    # Trim whitespace
    sanitized = sanitized.strip()

    # Limit length
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent directory traversal attacks

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    safe_name = secure_filename(filename)

    # If secure_filename removes everything, generate a default name
    if not safe_name:
        safe_name = 'file'

    return safe_name


def validate_file_extension(filename: str, allowed_extensions: set) -> Tuple[bool, Optional[str]]:
    """
    Validate file has an allowed extension

    Args:
        filename: Filename to check
        allowed_extensions: Set of allowed extensions (without dots)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not filename or '.' not in filename:
        return False, "File must have an extension"

    extension = filename.rsplit('.', 1)[1].lower()

    if extension not in allowed_extensions:
        return False, f"File type not allowed. Allowed types: {', '.join(sorted(allowed_extensions))}"

    return True, None


def validate_file_upload(
    file: FileStorage,
    allowed_extensions: set,
    max_size: int,
    file_type: str = "file"
) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Comprehensive file upload validation

    Args:
        file: FileStorage object from request.files
        allowed_extensions: Set of allowed extensions
        max_size: Maximum file size in bytes
        file_type: Type of file for error messages

    Returns:
        Tuple of (is_valid, error_message, sanitized_filename)
    """
    if not file or not file.filename:
        return False, f"No {file_type} provided", None

    safe_filename = sanitize_filename(file.filename)

    is_valid, error = validate_file_extension(safe_filename, allowed_extensions)
    if not is_valid:
        return False, error, None

    file.seek(0, os.SEEK_END)
    file_size = file.tell()
    file.seek(0)

    if file_size > max_size:
        max_mb = max_size / (1024 * 1024)
        return False, f"{file_type.capitalize()} too large (maximum {max_mb:.1f}MB)", None

    if file_size == 0:
        return False, f"{file_type.capitalize()} is empty", None

    logger.info(f"File validation successful: {safe_filename} ({file_size} bytes)")
    return True, None, safe_filename


def validate_image_upload(file: FileStorage) -> Tuple[bool, Optional[str], Optional[str]]:
    """Validate image file upload (logos)"""
    return validate_file_upload(file, ALLOWED_IMAGE_EXTENSIONS, MAX_IMAGE_SIZE, "image")


def validate_document_upload(file: FileStorage) -> Tuple[bool, Optional[str], Optional[str]]:
    """Validate customer document upload"""
    return validate_file_upload(file, ALLOWED_DOCUMENT_EXTENSIONS, MAX_DOCUMENT_SIZE, "document")


def validate_import_upload(file: FileStorage) -> Tuple[bool, Optional[str], Optional[str]]:
    """Validate CSV import upload"""
    return validate_file_upload(file, ALLOWED_IMPORT_EXTENSIONS, MAX_IMPORT_SIZE, "CSV file")


# ============================================================================
# BUSINESS PAYLOADS
# ============================================================================

def validate_customer_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate customer create/update data"""
    is_valid, error = validate_required_fields(data, ['name'])
    if not is_valid:
        return False, error

    is_valid, error = validate_string_length(data['name'], min_length=1, max_length=255)
    if not is_valid:
        return False, f"Invalid name: {error}"

    if data.get('email'):
        is_valid, error = validate_email(data['email'])
        if not is_valid:
            return False, f"Invalid email: {error}"

    if data.get('phone'):
        is_valid, error = validate_phone(data['phone'])
        if not is_valid:
            return False, f"Invalid phone: {error}"

    return True, None


def validate_product_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate product create/update data"""
    is_valid, error = validate_required_fields(data, ['name'])
    if not is_valid:
        return False, error

    product_type = data.get('type', 'good')
    is_valid, error = validate_choice(product_type, PRODUCT_TYPES, 'product type')
    if not is_valid:
        return False, error

    if data.get('stock_status'):
        is_valid, error = validate_choice(data['stock_status'], STOCK_STATUSES, 'stock status')
        if not is_valid:
            return False, error

    try:
        price = to_number(data.get('selling_price'), 'selling_price')
    except ValidationError as e:
        return False, e.message
    if price < 0:
        return False, "selling_price must not be negative"

    return True, None


def validate_expense_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate expense create/update data"""
    is_valid, error = validate_required_fields(data, ['description', 'amount', 'expense_date'])
    if not is_valid:
        return False, error

    try:
        to_number(data['amount'], 'amount')
        parse_date(data['expense_date'], 'expense_date')
    except ValidationError as e:
        return False, e.message

    return True, None


def validate_line_items(items: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate invoice/quote line items

    Each item needs a numeric quantity, unit_price and vat_rate (missing values
    default to 0) and either a description, a product or an expense.
    """
    if items is None:
        return True, None

    if not isinstance(items, list):
        return False, "items must be an array"

    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            return False, f"Item {idx + 1} must be an object"
        try:
            to_number(item.get('quantity'), 'quantity')
            to_number(item.get('unit_price'), 'unit_price')
            vat_rate = to_number(item.get('vat_rate'), 'vat_rate')
        except ValidationError as e:
            return False, f"Item {idx + 1}: {e.message}"
        if vat_rate < 0 or vat_rate > 100:
            return False, f"Item {idx + 1}: vat_rate must be between 0 and 100"

    return True, None


def validate_invoice_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate invoice save data"""
    if not data.get('customer_id'):
        return False, "Please select a customer"

    if data.get('status'):
        is_valid, error = validate_choice(data['status'], INVOICE_STATUSES, 'invoice status')
        if not is_valid:
            return False, error

    try:
        parse_date(data.get('issue_date'), 'issue_date')
        parse_date(data.get('due_date'), 'due_date')
    except ValidationError as e:
        return False, e.message

    return validate_line_items(data.get('items'))


def validate_quote_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate quote save data"""
    if not data.get('customer_id'):
        return False, "Please select a customer"

    if data.get('status'):
        is_valid, error = validate_choice(data['status'], QUOTE_STATUSES, 'quote status')
        if not is_valid:
            return False, error

    try:
        parse_date(data.get('issue_date'), 'issue_date')
        parse_date(data.get('valid_until_date'), 'valid_until_date')
    except ValidationError as e:
        return False, e.message

    return validate_line_items(data.get('items'))


def validate_visit_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate visit save data"""
    is_valid, error = validate_required_fields(data, ['customer_id', 'start_time', 'end_time'])
    if not is_valid:
        return False, error

    if data.get('status'):
        is_valid, error = validate_choice(data['status'], VISIT_STATUSES, 'visit status')
        if not is_valid:
            return False, error

    if data.get('category'):
        is_valid, error = validate_choice(data['category'], VISIT_CATEGORIES, 'visit category')
        if not is_valid:
            return False, error

    try:
        start = parse_datetime(data['start_time'], 'start_time')
        end = parse_datetime(data['end_time'], 'end_time')
    except ValidationError as e:
        return False, e.message

    if end < start:
        return False, "end_time must not be before start_time"

    return True, None


def validate_appointment_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate appointment save data"""
    is_valid, error = validate_required_fields(data, ['title', 'start_time', 'end_time'])
    if not is_valid:
        return False, error

    if data.get('status'):
        is_valid, error = validate_choice(data['status'], APPOINTMENT_STATUSES, 'appointment status')
        if not is_valid:
            return False, error

    if data.get('type'):
        is_valid, error = validate_choice(data['type'], APPOINTMENT_TYPES, 'appointment type')
        if not is_valid:
            return False, error

    try:
        start = parse_datetime(data['start_time'], 'start_time')
        end = parse_datetime(data['end_time'], 'end_time')
    except ValidationError as e:
        return False, e.message

    if end < start:
        return False, "end_time must not be before start_time"

    return True, None


def validate_task_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate task save data"""
    is_valid, error = validate_required_fields(data, ['title'])
    if not is_valid:
        return False, error

    try:
        start = parse_datetime(data.get('start_time'), 'start_time')
        end = parse_datetime(data.get('end_time'), 'end_time')
    except ValidationError as e:
        return False, e.message

    if start and end and end < start:
        return False, "end_time must not be before start_time"

    return True, None


def validate_text_block_payload(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate text block data"""
    is_valid, error = validate_required_fields(data, ['title', 'content'])
    if not is_valid:
        return False, error

    targets = data.get('applicable_to') or []
    if not isinstance(targets, list):
        return False, "applicable_to must be an array"
    for target in targets:
        is_valid, error = validate_choice(target, TEXT_BLOCK_TARGETS, 'document type')
        if not is_valid:
            return False, error

    return True, None


def format_validation_error(field: str, message: str) -> Dict[str, Any]:
    """
    Format validation error for consistent API responses

    Args:
        field: Field name that failed validation
        message: Error message

    Returns:
        Error response dictionary
    """
    return {
        'success': False,
        'error': message,
        'field': field,
    }
