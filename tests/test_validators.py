"""
Tests for input validation utilities
"""
import pytest
from datetime import date, datetime
from io import BytesIO
from werkzeug.datastructures import FileStorage
from validators import (
    ValidationError,
    ensure_valid,
    validate_required_fields,
    validate_email,
    validate_phone,
    validate_string_length,
    validate_choice,
    to_number,
    parse_date,
    parse_datetime,
    sanitize_string,
    sanitize_filename,
    validate_file_extension,
    validate_image_upload,
    validate_import_upload,
    validate_customer_payload,
    validate_product_payload,
    validate_expense_payload,
    validate_line_items,
    validate_invoice_payload,
    validate_quote_payload,
    validate_visit_payload,
    validate_appointment_payload,
    validate_task_payload,
    validate_text_block_payload,
    format_validation_error,
    ALLOWED_IMAGE_EXTENSIONS,
    ALLOWED_DOCUMENT_EXTENSIONS,
)


@pytest.mark.unit
class TestRequiredFields:
    """Tests for required fields validation"""

    def test_validate_all_fields_present(self):
        """Test validation passes when all fields present"""
        is_valid, error = validate_required_fields({'name': 'Erika', 'email': 'e@x.de'}, ['name', 'email'])
        assert is_valid is True
        assert error is None

    def test_validate_missing_field(self):
        """Test validation fails when field missing"""
        is_valid, error = validate_required_fields({'name': 'Erika'}, ['name', 'email'])
        assert is_valid is False
        assert 'email' in error

    @pytest.mark.parametrize('value', ['', None])
    def test_validate_empty_field(self, value):
        """Test validation fails for empty strings and None"""
        is_valid, _ = validate_required_fields({'name': value}, ['name'])
        assert is_valid is False

    def test_ensure_valid_raises_with_field(self):
        """Test that ensure_valid turns a failed result into ValidationError"""
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid((False, "broken"), 'name')
        assert exc_info.value.field == 'name'
        assert exc_info.value.message == 'broken'


@pytest.mark.unit
class TestEmailValidation:
    """Tests for email validation"""

    @pytest.mark.parametrize('email', ['test@example.com', 'user@mail.example.de', 'a.b+c@firma.al'])
    def test_valid_email(self, email):
        """Test valid emails pass"""
        assert validate_email(email) == (True, None)

    @pytest.mark.parametrize('email', ['invalidemail.com', 'test@', '', None, 'a@b'])
    def test_invalid_email(self, email):
        """Test malformed emails fail"""
        is_valid, _ = validate_email(email)
        assert is_valid is False

    def test_email_too_long(self):
        """Test that addresses beyond 254 characters fail"""
        is_valid, error = validate_email('a' * 250 + '@x.de')
        assert is_valid is False
        assert 'too long' in error


@pytest.mark.unit
class TestPhoneValidation:
    """Tests for phone validation"""

    @pytest.mark.parametrize('phone', ['+49 30 123456', '030/123456', '(030) 123-456', '+355691234567'])
    def test_valid_phone(self, phone):
        """Test common German and Albanian formats pass"""
        assert validate_phone(phone)[0] is True

    @pytest.mark.parametrize('phone', ['12345', 'abc-defg', '+49 30 123456789012345'])
    def test_invalid_phone(self, phone):
        """Test too short, non-numeric and too long numbers fail"""
        assert validate_phone(phone)[0] is False


@pytest.mark.unit
class TestStringAndChoice:
    """Tests for string length and choice validation"""

    def test_string_within_bounds(self):
        assert validate_string_length('Heizung', 1, 20) == (True, None)

    def test_string_too_short(self):
        is_valid, error = validate_string_length('', min_length=1)
        assert is_valid is False
        assert 'too short' in error

    def test_string_too_long(self):
        is_valid, error = validate_string_length('x' * 11, max_length=10)
        assert is_valid is False
        assert 'too long' in error

    def test_non_string_fails(self):
        assert validate_string_length(42)[0] is False

    def test_choice_lists_allowed_values(self):
        """Test that the error names every allowed choice"""
        is_valid, error = validate_choice('archived', ['draft', 'sent'], 'invoice status')
        assert is_valid is False
        assert 'draft, sent' in error


@pytest.mark.unit
class TestCoercion:
    """Tests for number, date and timestamp parsing"""

    def test_to_number_accepts_numeric_strings(self):
        assert to_number('12.5', 'amount') == 12.5

    def test_to_number_defaults_on_empty(self):
        assert to_number('', 'amount') == 0.0
        assert to_number(None, 'amount', default=None) is None

    @pytest.mark.parametrize('value', ['abc', True, [1]])
    def test_to_number_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError) as exc_info:
            to_number(value, 'amount')
        assert exc_info.value.field == 'amount'

    def test_parse_date_variants(self):
        """Test ISO dates, timestamps and date objects"""
        assert parse_date('2026-03-01', 'd') == date(2026, 3, 1)
        assert parse_date('2026-03-01T23:00:00Z', 'd') == date(2026, 3, 1)
        assert parse_date(datetime(2026, 3, 1, 8), 'd') == date(2026, 3, 1)
        assert parse_date('', 'd') is None

    def test_parse_date_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_date('01.03.2026', 'issue_date')

    def test_parse_datetime_converts_to_naive_utc(self):
        """Test that offsets are normalised to UTC"""
        assert parse_datetime('2026-03-01T10:00:00+02:00', 't') == datetime(2026, 3, 1, 8, 0)
        assert parse_datetime('2026-03-01T10:00:00Z', 't') == datetime(2026, 3, 1, 10, 0)

    def test_parse_datetime_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_datetime('tomorrow', 'start_time')


@pytest.mark.unit
class TestSanitization:
    """Tests for string and filename sanitization"""

    def test_sanitize_string_strips_null_bytes(self):
        assert sanitize_string('  Hallo\x00 Welt  ') == 'Hallo Welt'

    def test_sanitize_string_truncates(self):
        assert sanitize_string('abcdef', max_length=3) == 'abc'

    def test_sanitize_filename_prevents_traversal(self):
        """Test that path traversal components are removed"""
        safe = sanitize_filename('../../../etc/passwd')
        assert '/' not in safe
        assert '..' not in safe

    def test_sanitize_filename_fallback(self):
        assert sanitize_filename('///') == 'file'

    def test_file_extension_allowed(self):
        assert validate_file_extension('logo.PNG', ALLOWED_IMAGE_EXTENSIONS)[0] is True
        assert validate_file_extension('vertrag.pdf', ALLOWED_DOCUMENT_EXTENSIONS)[0] is True

    def test_file_extension_rejected(self):
        assert validate_file_extension('malware.exe', ALLOWED_DOCUMENT_EXTENSIONS)[0] is False
        assert validate_file_extension('noextension', ALLOWED_IMAGE_EXTENSIONS)[0] is False


@pytest.mark.unit
class TestFileUploads:
    """Tests for upload validation"""

    def _file(self, name, content):
        return FileStorage(stream=BytesIO(content), filename=name)

    def test_valid_image(self):
        is_valid, error, filename = validate_image_upload(self._file('logo.png', b'\x89PNG data'))
        assert is_valid is True
        assert filename == 'logo.png'

    def test_empty_file_rejected(self):
        is_valid, error, _ = validate_import_upload(self._file('kunden.csv', b''))
        assert is_valid is False
        assert 'empty' in error

    def test_oversized_image_rejected(self):
        is_valid, error, _ = validate_image_upload(self._file('logo.png', b'x' * (5 * 1024 * 1024 + 1)))
        assert is_valid is False
        assert 'too large' in error

    def test_missing_file_rejected(self):
        is_valid, error, _ = validate_import_upload(None)
        assert is_valid is False

    def test_wrong_type_rejected(self):
        assert validate_import_upload(self._file('kunden.xlsx', b'data'))[0] is False


@pytest.mark.unit
class TestBusinessPayloads:
    """Tests for the document and master data payload validators"""

    def test_customer_requires_name(self):
        assert validate_customer_payload({'email': 'a@b.de'})[0] is False

    def test_customer_validates_contact_fields(self):
        assert validate_customer_payload({'name': 'Erika', 'email': 'kaputt'})[0] is False
        assert validate_customer_payload({'name': 'Erika', 'phone': '12'})[0] is False
        assert validate_customer_payload({'name': 'Erika', 'email': 'e@x.de', 'phone': '+4930123456'})[0] is True

    def test_product_type_and_price(self):
        assert validate_product_payload({'name': 'Ventil', 'type': 'good', 'selling_price': '9.90'})[0] is True
        assert validate_product_payload({'name': 'Ventil', 'type': 'rental'})[0] is False
        assert validate_product_payload({'name': 'Ventil', 'selling_price': -1})[0] is False
        assert validate_product_payload({'name': 'Ventil', 'stock_status': 'Gone'})[0] is False

    def test_expense_requires_amount_and_date(self):
        assert validate_expense_payload({'description': 'Anfahrt'})[0] is False
        assert validate_expense_payload(
            {'description': 'Anfahrt', 'amount': 'x', 'expense_date': '2026-03-01'})[0] is False
        assert validate_expense_payload(
            {'description': 'Anfahrt', 'amount': 30, 'expense_date': '2026-03-01'})[0] is True

    def test_line_items(self):
        assert validate_line_items(None) == (True, None)
        assert validate_line_items('x')[0] is False
        assert validate_line_items([{'quantity': 'a'}])[0] is False
        is_valid, error = validate_line_items([{'quantity': 1, 'vat_rate': 150}])
        assert is_valid is False
        assert error.startswith('Item 1')

    def test_invoice_requires_customer(self):
        is_valid, error = validate_invoice_payload({'items': []})
        assert is_valid is False
        assert error == 'Please select a customer'

    def test_invoice_status_must_be_known(self):
        assert validate_invoice_payload({'customer_id': 1, 'status': 'cancelled'})[0] is False
        assert validate_invoice_payload({'customer_id': 1, 'status': 'overdue'})[0] is True

    def test_quote_status_must_be_known(self):
        assert validate_quote_payload({'customer_id': 1, 'status': 'overdue'})[0] is False
        assert validate_quote_payload({'customer_id': 1, 'status': 'declined'})[0] is True

    def test_visit_times_are_ordered(self):
        payload = {'customer_id': 1, 'start_time': '2026-03-02T11:00', 'end_time': '2026-03-02T09:00'}
        is_valid, error = validate_visit_payload(payload)
        assert is_valid is False
        assert 'end_time' in error

    def test_visit_category_must_be_known(self):
        payload = {'customer_id': 1, 'start_time': '2026-03-02T09:00', 'end_time': '2026-03-02T10:00',
                   'category': 'Demolition'}
        assert validate_visit_payload(payload)[0] is False
        payload['category'] = 'Repair'
        assert validate_visit_payload(payload)[0] is True

    def test_appointment_type(self):
        payload = {'title': 'Urlaub', 'start_time': '2026-03-02T00:00', 'end_time': '2026-03-03T00:00',
                   'type': 'holiday'}
        assert validate_appointment_payload(payload)[0] is False
        payload['type'] = 'absence'
        assert validate_appointment_payload(payload)[0] is True

    def test_task_times_optional(self):
        assert validate_task_payload({'title': 'Angebot nachfassen'})[0] is True
        assert validate_task_payload({'title': 'x', 'start_time': '2026-03-02T10:00',
                                      'end_time': '2026-03-02T09:00'})[0] is False

    def test_text_block_targets(self):
        assert validate_text_block_payload({'title': 'Gruß', 'content': 'MfG',
                                            'applicable_to': ['invoice', 'quote']})[0] is True
        assert validate_text_block_payload({'title': 'Gruß', 'content': 'MfG',
                                            'applicable_to': ['letter']})[0] is False
        assert validate_text_block_payload({'title': 'Gruß', 'content': 'MfG',
                                            'applicable_to': 'invoice'})[0] is False


@pytest.mark.unit
class TestErrorFormatting:
    """Tests for error response formatting"""

    def test_format_validation_error(self):
        assert format_validation_error('email', 'Invalid email format') == {
            'success': False,
            'error': 'Invalid email format',
            'field': 'email',
        }
