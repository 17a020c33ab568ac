"""
Integration tests for the JSON API through the Flask test client
"""
import pytest
from unittest.mock import Mock, patch


@pytest.mark.integration
class TestAuthApi:
    """Tests for sign-in, session and sign-up"""

    def test_login_returns_user_and_modules(self, client, seeded):
        response = client.post('/api/auth/login', json={'email': 'admin@muster.example',
                                                         'password': 'secret-pass-1'})
        assert response.status_code == 200
        data = response.get_json()
        assert data['user']['email'] == 'admin@muster.example'
        assert data['user']['org_name'] == 'Muster Haustechnik'
        assert 'settings' in data['modules']

        assert client.get('/api/auth/me').status_code == 200

    def test_wrong_password(self, client, seeded):
        response = client.post('/api/auth/login', json={'email': 'admin@muster.example', 'password': 'nope'})
        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_missing_credentials(self, client):
        assert client.post('/api/auth/login', json={}).status_code == 400

    def test_logout(self, admin_client):
        admin_client.post('/api/auth/logout')
        assert admin_client.get('/api/auth/me').status_code == 401

    def test_sign_up_without_invitation(self, client):
        response = client.post('/api/auth/register', json={'email': 'neu@firma.example',
                                                            'password': 'langes-passwort'})
        assert response.status_code == 403
        assert response.get_json()['error'] == 'Sign-up requires an invitation'

    def test_forgot_password_does_not_leak(self, client):
        response = client.post('/api/auth/forgot-password', json={'email': 'niemand@x.example'})
        assert response.status_code == 200

    def test_reset_link_flow(self, client, seeded):
        """Test that only redeeming the mailed token changes the password"""
        mailer = Mock()
        with patch('app.api.auth_routes.get_email_service', return_value=mailer):
            response = client.post('/api/auth/forgot-password', json={'email': 'fse@muster.example'})
        assert response.status_code == 200
        token = mailer.send_password_reset_link.call_args[0][1].split('token=')[1]

        login = {'email': 'fse@muster.example', 'password': 'secret-pass-1'}
        assert client.post('/api/auth/login', json=login).status_code == 200

        response = client.post('/api/auth/reset-password', json={'token': token, 'password': 'neues-passwort-9'})
        assert response.status_code == 200
        assert client.post('/api/auth/login', json=login).status_code == 401
        assert client.post('/api/auth/login', json={'email': 'fse@muster.example',
                                                    'password': 'neues-passwort-9'}).status_code == 200

    def test_reset_with_invalid_token(self, client, seeded):
        response = client.post('/api/auth/reset-password', json={'token': 'erfunden', 'password': 'neues-passwort-9'})
        assert response.status_code == 400
        assert response.get_json()['field'] == 'token'

    def test_field_service_modules(self, fse_client):
        modules = fse_client.get('/api/auth/me').get_json()['modules']
        assert 'visits' in modules
        assert 'team' not in modules


@pytest.mark.integration
class TestAccessControl:
    """Tests for 401/403 answers"""

    @pytest.mark.parametrize('path', ['/api/customers', '/api/invoices', '/api/search?q=abc', '/api/dashboard'])
    def test_anonymous_requests_are_rejected(self, client, path):
        response = client.get(path)
        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'error': 'Authentication required'}

    def test_module_gate(self, fse_client):
        response = fse_client.get('/api/team')
        assert response.status_code == 403
        assert response.get_json()['required'] == 'team'

    def test_settings_are_admin_only(self, fse_client):
        assert fse_client.put('/api/organization', json={'company_name': 'X'}).status_code == 403

    def test_org_invitations_need_super_admin(self, admin_client):
        assert admin_client.get('/api/organization-invitations').status_code == 403

    def test_unknown_route_is_json(self, admin_client):
        response = admin_client.get('/api/does-not-exist')
        assert response.status_code == 404
        assert response.get_json()['success'] is False


@pytest.mark.integration
class TestCustomersApi:
    """Tests for customer CRUD over HTTP"""

    def test_create_list_update_delete(self, admin_client):
        created = admin_client.post('/api/customers', json={'name': 'Max Muster', 'email': 'max@x.example'})
        assert created.status_code == 201
        customer = created.get_json()['customer']
        assert customer['customer_number'] == 'KD-00001'

        listing = admin_client.get('/api/customers?search=max').get_json()
        assert [c['name'] for c in listing['items']] == ['Max Muster']

        updated = admin_client.put(f"/api/customers/{customer['id']}", json={'phone': '+49301234'})
        assert updated.get_json()['customer']['phone'] == '+49301234'

        assert admin_client.delete(f"/api/customers/{customer['id']}").status_code == 200
        assert admin_client.get(f"/api/customers/{customer['id']}").status_code == 404

    def test_validation_error_names_field(self, admin_client):
        response = admin_client.post('/api/customers', json={'name': 'Max', 'email': 'kaputt'})
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_body_must_be_an_object(self, admin_client):
        assert admin_client.post('/api/customers', json=['Max']).status_code == 400


@pytest.mark.integration
class TestInvoicesApi:
    """Tests for invoices over HTTP"""

    def _create(self, client, seeded):
        return client.post('/api/invoices', json={
            'customer_id': seeded['customer_id'],
            'issue_date': '2026-03-01',
            'items': [{'description': 'Montage', 'quantity': 2, 'unit_price': 50.0, 'vat_rate': 19}],
        })

    def test_create_and_download_pdf(self, admin_client, seeded):
        response = self._create(admin_client, seeded)
        assert response.status_code == 201
        invoice = response.get_json()['invoice']
        assert invoice['invoice_number'] == 'RE-2026-0001'
        assert invoice['total_amount'] == 119.0

        pdf = admin_client.get(f"/api/invoices/{invoice['id']}/pdf")
        assert pdf.status_code == 200
        assert pdf.mimetype == 'application/pdf'
        assert pdf.data.startswith(b'%PDF')

    def test_field_service_employee_cannot_create(self, fse_client, seeded):
        assert self._create(fse_client, seeded).status_code == 403

    def test_unknown_invoice(self, admin_client):
        response = admin_client.get('/api/invoices/4711')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Invoice 4711 not found'


@pytest.mark.integration
class TestMiscApi:
    """Tests for search, dashboard and exports over HTTP"""

    def test_search(self, admin_client):
        results = admin_client.get('/api/search?q=muster').get_json()['results']
        assert results['customers'][0]['label'] == 'Erika Mustermann'

    def test_dashboard_by_role(self, admin_client, fse_client):
        assert admin_client.get('/api/dashboard').get_json()['type'] == 'admin'
        assert fse_client.get('/api/dashboard').get_json()['type'] == 'field_service'

    def test_datev_export_requires_flag(self, admin_client):
        response = admin_client.get('/api/exports/datev?start_date=2026-03-01&end_date=2026-03-31')
        assert response.status_code == 403

    def test_customer_list_export(self, admin_client):
        response = admin_client.get('/api/exports/customers')
        assert response.status_code == 200
        assert b'Erika Mustermann' in response.data

    def test_import_template(self, admin_client):
        response = admin_client.get('/api/migration/templates/customer')
        assert response.data.decode('utf-8').strip() == 'name,email,phone,address'
