"""
Dashboard Service - admin overview, field service agenda and the business
report.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import and_, func, or_

from database.models import Appointment, Customer, Expense, Invoice, InvoiceItem, Quote, Task, User, Visit
from services.base_repository import TenantRepository
from services.document_totals import line_net, net_by_vat_rate, round_money
from services.scheduling_repository import DISPATCH_ROLES

logger = logging.getLogger(__name__)

FREE_PLAN_MONTHLY_LIMIT = 3
BILLED_INVOICE_STATUSES = ('sent', 'paid', 'overdue')
DECIDED_QUOTE_STATUSES = ('sent', 'accepted', 'declined')
CHART_STATUSES = ('paid', 'sent', 'overdue', 'draft')
TOP_LIST_SIZE = 10


def _day_start(day: date) -> datetime:
    return datetime.combine(day, datetime.min.time())


class DashboardService(TenantRepository):
    """Aggregations for dashboards and reports."""

    def _today(self, today: Optional[date]) -> date:
        return today or date.today()

    # =========================================================================
    # ADMIN DASHBOARD
    # =========================================================================

    def admin_dashboard(self, today: date = None) -> Dict:
        today = self._today(today)
        day_start, day_end = _day_start(today), _day_start(today + timedelta(days=1))

        year_invoices = self._scoped(Invoice).filter(
            Invoice.issue_date >= date(today.year, 1, 1),
            Invoice.issue_date <= date(today.year, 12, 31),
        ).all()

        monthly = [{'month': month + 1, **{status: 0.0 for status in CHART_STATUSES}} for month in range(12)]
        for invoice in year_invoices:
            if invoice.issue_date and invoice.status in CHART_STATUSES:
                monthly[invoice.issue_date.month - 1][invoice.status] += invoice.total_amount or 0.0
        for row in monthly:
            for status in CHART_STATUSES:
                row[status] = round_money(row[status])

        unassigned = self._scoped(Visit).filter(Visit.assigned_employee_id == None,  # noqa: E711
                                                Visit.status == 'planned')

        recent = self._scoped(Invoice).order_by(Invoice.issue_date.desc(), Invoice.id.desc()).limit(5).all()

        return {
            'stats': {
                'total_revenue': round_money(sum(i.total_amount or 0.0 for i in year_invoices if i.status == 'paid')),
                'unpaid_invoices': len([i for i in year_invoices if i.status in ('sent', 'overdue')]),
                'pending_quotes': self._scoped(Quote).filter(Quote.status == 'sent').count(),
            },
            'monthly_sales': monthly,
            'actionable_items': {
                'overdue_invoices': self._scoped(Invoice).filter(Invoice.status == 'overdue').count(),
                'expiring_quotes': self._scoped(Quote).filter(
                    Quote.status == 'sent',
                    Quote.valid_until_date >= today,
                    Quote.valid_until_date <= today + timedelta(days=7),
                ).count(),
                'unassigned_visits': unassigned.count(),
            },
            'dispatch_summary': {
                'unassigned_today': unassigned.filter(Visit.start_time >= day_start,
                                                      Visit.start_time < day_end).count(),
                'employee_load': self._employee_load(day_start, day_end),
            },
            'recent_invoices': [i.to_dict() for i in recent],
            'plan_usage': self.plan_usage(today),
        }

    def _employee_load(self, day_start: datetime, day_end: datetime) -> List[Dict]:
        """Open activities per employee today, busiest first."""
        employees = self.session.query(User).filter(User.role.in_(DISPATCH_ROLES))
        if self.organization_id:
            employees = employees.filter(User.org_id == self.organization_id)

        counts = defaultdict(int)
        for (user_id,) in self._scoped(Visit).with_entities(Visit.assigned_employee_id).filter(
                Visit.status == 'planned', Visit.start_time >= day_start, Visit.start_time < day_end):
            counts[user_id] += 1
        for (user_id,) in self._scoped(Task).with_entities(Task.user_id).filter(
                Task.is_complete == False,  # noqa: E712
                Task.start_time >= day_start, Task.start_time < day_end):
            counts[user_id] += 1
        for (user_id,) in self._scoped(Appointment).with_entities(Appointment.user_id).filter(
                Appointment.status != 'done', Appointment.start_time >= day_start, Appointment.start_time < day_end):
            counts[user_id] += 1

        load = [{'id': e.id, 'name': e.full_name or e.email, 'activity_count': counts.get(e.id, 0)}
                for e in employees.all()]
        return sorted(load, key=lambda entry: entry['activity_count'], reverse=True)

    def plan_usage(self, today: date = None) -> Dict:
        """Invoices and quotes the caller created this month against the free plan limit."""
        today = self._today(today)
        user = self.session.get(User, self.user_id) if self.user_id else None
        first_of_month = today.replace(day=1)
        invoices = self._scoped(Invoice).filter(Invoice.user_id == self.user_id,
                                                Invoice.issue_date >= first_of_month).count()
        quotes = self._scoped(Quote).filter(Quote.user_id == self.user_id,
                                            Quote.issue_date >= first_of_month).count()
        is_free = bool(user and user.current_plan == 'free')
        return {
            'plan': user.current_plan if user else None,
            'invoices_this_month': invoices,
            'quotes_this_month': quotes,
            'monthly_limit': FREE_PLAN_MONTHLY_LIMIT if is_free else None,
            'invoice_limit_reached': is_free and invoices >= FREE_PLAN_MONTHLY_LIMIT,
            'quote_limit_reached': is_free and quotes >= FREE_PLAN_MONTHLY_LIMIT,
        }

    # =========================================================================
    # FIELD SERVICE DASHBOARD
    # =========================================================================

    def field_service_dashboard(self, start: date = None, end: date = None, today: date = None) -> Dict:
        """
        The caller's agenda between start and end (default: today), sorted by
        time, plus their invoice and quote counts this month.
        """
        today = self._today(today)
        start = start or today
        end = end or start
        lower, upper = _day_start(start), _day_start(end + timedelta(days=1))
        user_id = self.user_id

        visits = self._scoped(Visit).filter(Visit.assigned_employee_id == user_id,
                                            Visit.start_time < upper, Visit.end_time >= lower).all()
        appointments = self._scoped(Appointment).filter(Appointment.user_id == user_id,
                                                        Appointment.start_time < upper,
                                                        Appointment.end_time >= lower).all()
        tasks = self._scoped(Task).filter(
            Task.user_id == user_id,
            Task.start_time != None,  # noqa: E711
            or_(
                and_(Task.end_time != None, Task.start_time < upper, Task.end_time >= lower),  # noqa: E711
                and_(Task.end_time == None, Task.start_time >= lower, Task.start_time < upper),  # noqa: E711
            ),
        ).all()
        quotes = self._scoped(Quote).filter(Quote.user_id == user_id,
                                            Quote.issue_date >= start, Quote.issue_date <= end).all()

        agenda = (
            [{**v.to_dict(), 'activity_type': 'visit', 'sort_time': v.start_time} for v in visits]
            + [{**a.to_dict(), 'activity_type': 'appointment', 'sort_time': a.start_time} for a in appointments]
            + [{**t.to_dict(), 'activity_type': 'task', 'sort_time': t.start_time} for t in tasks]
            + [{**q.to_dict(), 'activity_type': 'quote', 'sort_time': _day_start(q.issue_date)} for q in quotes]
        )
        agenda.sort(key=lambda entry: entry['sort_time'] or datetime.min)
        for entry in agenda:
            del entry['sort_time']

        usage = self.plan_usage(today)
        return {
            'start_date': start.isoformat(),
            'end_date': end.isoformat(),
            'agenda': agenda,
            'counts': {
                'visits': len(visits),
                'appointments': len(appointments),
                'tasks': len(tasks),
                'invoices_this_month': usage['invoices_this_month'],
                'quotes_this_month': usage['quotes_this_month'],
            },
            'plan_usage': usage,
        }

    # =========================================================================
    # BUSINESS REPORT
    # =========================================================================

    def business_report(self, start: date, end: date) -> Dict:
        """
        KPIs, profit and loss, sales by customer, tax collected, top products
        and team performance for invoices, quotes and expenses dated in
        [start, end]. Draft invoices are not counted.
        """
        invoices = self._scoped(Invoice).filter(
            Invoice.issue_date >= start, Invoice.issue_date <= end,
            Invoice.status.in_(BILLED_INVOICE_STATUSES),
        ).all()
        quotes = self._scoped(Quote).filter(
            Quote.issue_date >= start, Quote.issue_date <= end,
            Quote.status.in_(DECIDED_QUOTE_STATUSES),
        ).all()
        expenses_total = self._scoped(Expense).with_entities(func.coalesce(func.sum(Expense.amount), 0.0)).filter(
            Expense.expense_date >= start, Expense.expense_date <= end).scalar() or 0.0
        new_customers = self._scoped(Customer).filter(
            Customer.created_at >= _day_start(start), Customer.created_at < _day_start(end + timedelta(days=1))
        ).count()

        invoiced_total = sum(i.total_amount or 0.0 for i in invoices)
        revenue = sum(i.total_amount or 0.0 for i in invoices if i.status == 'paid')
        accepted = len([q for q in quotes if q.status == 'accepted'])

        sales = defaultdict(float)
        tax = defaultdict(float)
        for invoice in invoices:
            sales[invoice.customer.name if invoice.customer else '-'] += invoice.total_amount or 0.0
            for rate, net in net_by_vat_rate(invoice.items).items():
                tax[rate] += net * rate / 100

        report = {
            'period': {'start_date': start.isoformat(), 'end_date': end.isoformat()},
            'kpis': {
                'new_customers': new_customers,
                'average_invoice_value': round_money(invoiced_total / len(invoices)) if invoices else 0.0,
                'quote_conversion_rate': round(accepted * 100.0 / len(quotes), 1) if quotes else 0.0,
            },
            'profit_and_loss': {
                'revenue': round_money(revenue),
                'expenses': round_money(expenses_total),
                'profit': round_money(revenue - expenses_total),
            },
            'sales_by_customer': [
                {'customer_name': name, 'total': round_money(total)}
                for name, total in sorted(sales.items(), key=lambda item: item[1], reverse=True)
            ],
            'tax_collected': [
                {'vat_rate': rate, 'amount': round_money(amount)} for rate, amount in sorted(tax.items(), reverse=True)
            ],
            'top_products': self._top_products([i.id for i in invoices]),
            'team_performance': self._team_performance(invoices, start, end),
        }
        logger.info(f"Built business report {start} - {end} for org {self.organization_id}")
        return report

    def _top_products(self, invoice_ids: List[int]) -> List[Dict]:
        if not invoice_ids:
            return []
        items = self.session.query(InvoiceItem).filter(InvoiceItem.invoice_id.in_(invoice_ids),
                                                       InvoiceItem.product_id != None).all()  # noqa: E711
        totals = {}
        for item in items:
            entry = totals.setdefault(item.product_id, {
                'product_name': item.product.name if item.product else item.description,
                'quantity': 0.0,
                'revenue': 0.0,
            })
            entry['quantity'] += item.quantity or 0.0
            entry['revenue'] += line_net(item)
        ranked = sorted(totals.values(), key=lambda entry: entry['quantity'], reverse=True)[:TOP_LIST_SIZE]
        for entry in ranked:
            entry['revenue'] = round_money(entry['revenue'])
        return ranked

    def _team_performance(self, invoices, start: date, end: date) -> List[Dict]:
        employees = self.session.query(User).filter(User.role.in_(DISPATCH_ROLES))
        if self.organization_id:
            employees = employees.filter(User.org_id == self.organization_id)

        completed = defaultdict(int)
        for (user_id,) in self._scoped(Visit).with_entities(Visit.assigned_employee_id).filter(
                Visit.status == 'completed',
                Visit.start_time >= _day_start(start), Visit.start_time < _day_start(end + timedelta(days=1))):
            completed[user_id] += 1
        invoiced = defaultdict(float)
        for invoice in invoices:
            invoiced[invoice.user_id] += invoice.total_amount or 0.0

        performance = [{
            'employee_name': e.full_name or e.email,
            'completed_visits': completed.get(e.id, 0),
            'invoiced': round_money(invoiced.get(e.id, 0.0)),
        } for e in employees.all()]
        return sorted(performance, key=lambda entry: (entry['invoiced'], entry['completed_visits']), reverse=True)
