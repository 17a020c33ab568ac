"""
API Blueprints Package

All HTTP route handlers for the application, organized by domain.
Each module defines a Flask Blueprint registered in app/__init__.py.

BLUEPRINT REFERENCE:
====================

Accounts:
- auth_routes.py    : Login, logout, sign-up, profile, passwords (/api/auth/*)
- team.py           : Members and e-mail invitations (/api/team/*, /api/invitations/*)
- organization.py   : Company settings, logo, role permissions, organization invitations

Business documents:
- customers.py      : Customers, timeline and documents
- inventory.py      : Products and stock
- expenses.py       : Expenses
- invoices.py       : Invoices, PDF, e-mail, payment links
- quotes.py         : Quotes and conversion to invoices
- visits.py         : Field visits, signatures, invoicing
- scheduling.py     : Appointments, tasks, dispatcher board
- text_blocks.py    : Text blocks with placeholders

Other:
- dashboard.py      : Dashboards and the business report
- data_exchange.py  : DATEV, list and GDPR exports, CSV import
- audit_log.py      : Changelog queries
- notifications.py  : Notifications
- search.py         : Global search
- content.py        : Help texts and legal pages
"""

# All blueprints are imported and registered in app/__init__.py
# This file serves as documentation only

__all__ = []
