"""
Tests for HR: attendance hours, salary arithmetic, leave and payroll.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from django.test import TestCase
from django.utils import timezone

from erp_system.exceptions import ConflictError, ValidationFailed, WorkflowError
from erp_system.models import Attendance, Branch
from erp_system.services.hr_service import HRService, calculate_salary, professional_tax, split_working_hours


def _at(day, hour, minute=0):
    return timezone.make_aware(datetime(day.year, day.month, day.day, hour, minute))


@pytest.fixture
def employee(pune):
    return HRService.create_employee(
        pune, 'Sunil', 'production', date(2024, 4, 1),
        last_name='Patil', basic_salary=Decimal('20000'), phone='9876543210',
    )


def test_split_working_hours():
    day = date(2026, 3, 2)
    assert split_working_hours(_at(day, 9), _at(day, 19)) == (Decimal('8.00'), Decimal('2.00'))
    assert split_working_hours(_at(day, 9), _at(day, 13, 30)) == (Decimal('4.50'), Decimal('0.00'))
    with pytest.raises(ValidationFailed):
        split_working_hours(_at(day, 19), _at(day, 9))


@pytest.mark.parametrize('gross, tax', [
    (Decimal('15000'), Decimal('0')),
    (Decimal('18000'), Decimal('150')),
    (Decimal('25000'), Decimal('200')),
])
def test_professional_tax_slabs(gross, tax):
    assert professional_tax(gross) == tax


def test_salary_without_overtime():
    figures = calculate_salary(Decimal('20000'))
    assert figures['gross_salary'] == Decimal('20000.00')
    assert figures['pf_deduction'] == Decimal('2400.00')
    assert figures['esi_deduction'] == Decimal('150.00')
    assert figures['professional_tax'] == Decimal('150.00')
    assert figures['total_deductions'] == Decimal('2700.00')
    assert figures['net_salary'] == Decimal('17300.00')


def test_salary_overtime_and_esi_ceiling():
    # hourly 20800 / 208 = 100, 10 hours at double rate
    figures = calculate_salary(Decimal('20800'), allowances=Decimal('1000'), overtime_hours=Decimal('10'))
    assert figures['overtime_pay'] == Decimal('2000.00')
    assert figures['gross_salary'] == Decimal('23800.00')
    assert figures['esi_deduction'] == Decimal('0.00')
    assert figures['professional_tax'] == Decimal('200.00')


def test_employee_code_and_department(employee):
    assert employee.employee_code.startswith('EMPPUNE')
    assert employee.department == 'PRODUCTION'


def test_attendance_is_upserted_per_day(employee):
    day = date(2026, 3, 2)
    HRService.record_attendance(employee, day, check_in=_at(day, 9))
    attendance = HRService.record_attendance(employee, day, check_out=_at(day, 19, 30))
    assert Attendance.objects.filter(employee=employee, date=day).count() == 1
    assert attendance.working_hours == Decimal('8.00')
    assert attendance.overtime_hours == Decimal('2.50')


def test_attendance_summary(employee):
    HRService.record_attendance(employee, date(2026, 3, 2), check_in=_at(date(2026, 3, 2), 9),
                                check_out=_at(date(2026, 3, 2), 19))
    HRService.record_attendance(employee, date(2026, 3, 3), check_in=_at(date(2026, 3, 3), 9),
                                check_out=_at(date(2026, 3, 3), 17, 30))
    HRService.record_attendance(employee, date(2026, 3, 4), check_in=_at(date(2026, 3, 4), 9),
                                check_out=_at(date(2026, 3, 4), 13), status='HALF_DAY')
    HRService.record_attendance(employee, date(2026, 3, 5), status='ABSENT')
    HRService.record_attendance(employee, date(2026, 4, 1), check_in=_at(date(2026, 4, 1), 9),
                                check_out=_at(date(2026, 4, 1), 18))
    leave = HRService.submit_leave_request(employee, 'SICK', date(2026, 3, 9), date(2026, 3, 10))
    HRService.decide_leave_request(leave, True, decided_by='hr@pune.com')

    summary = HRService.get_attendance_summary(employee, 3, 2026)
    assert summary['employee_code'] == employee.employee_code
    assert (summary['present_days'], summary['half_days'], summary['absent_days'], summary['leave_days']) == (2, 1, 1, 2)
    # 8 + 2 overtime, 8 + 0.5 overtime, 4
    assert summary['total_working_hours'] == Decimal('20.00')
    assert summary['total_overtime_hours'] == Decimal('2.50')

    with pytest.raises(ValidationFailed):
        HRService.get_attendance_summary(employee, 13, 2026)


def test_leave_balance_and_overlap(employee):
    leave = HRService.submit_leave_request(employee, 'CASUAL', date(2026, 3, 9), date(2026, 3, 11))
    assert leave.days == 3
    HRService.decide_leave_request(leave, True, decided_by='hr@pune.com')

    balance = HRService.get_leave_balance(employee, 2026)['CASUAL']
    assert balance == {'allocated': 12, 'used': 3, 'pending': 0, 'balance': 9, 'available': 9}
    assert Attendance.objects.filter(employee=employee, status='LEAVE').count() == 3

    with pytest.raises(ConflictError):
        HRService.submit_leave_request(employee, 'SICK', date(2026, 3, 11), date(2026, 3, 12))
    with pytest.raises(ValidationFailed):
        HRService.submit_leave_request(employee, 'CASUAL', date(2026, 4, 1), date(2026, 4, 10))


def test_pending_leave_counts_against_balance(employee):
    HRService.submit_leave_request(employee, 'CASUAL', date(2026, 3, 2), date(2026, 3, 11))
    balance = HRService.get_leave_balance(employee, 2026)['CASUAL']
    assert balance['pending'] == 10
    assert balance['available'] == 2

    with pytest.raises(ValidationFailed):
        HRService.submit_leave_request(employee, 'CASUAL', date(2026, 4, 1), date(2026, 4, 10))
    assert employee.leave_requests.count() == 1


def test_approval_rechecks_balance(employee):
    first = HRService.submit_leave_request(employee, 'CASUAL', date(2026, 3, 2), date(2026, 3, 11))
    HRService.decide_leave_request(first, False, decided_by='hr@pune.com')
    second = HRService.submit_leave_request(employee, 'CASUAL', date(2026, 4, 1), date(2026, 4, 10))
    HRService.decide_leave_request(second, True, decided_by='hr@pune.com')

    # a request that slipped past submission cannot push the balance negative
    third = employee.leave_requests.create(
        leave_type='CASUAL', start_date=date(2026, 5, 4), end_date=date(2026, 5, 8), days=5,
    )
    with pytest.raises(ValidationFailed):
        HRService.decide_leave_request(third, True, decided_by='hr@pune.com')
    third.refresh_from_db()
    assert third.status == 'PENDING'
    assert HRService.get_leave_balance(employee, 2026)['CASUAL']['balance'] == 2


def test_payroll_uses_attendance_overtime_and_locks(employee):
    day = date(2026, 3, 2)
    HRService.record_attendance(employee, day, check_in=_at(day, 9), check_out=_at(day, 19))

    record = HRService.calculate_payroll(employee, 3, 2026)
    assert record.overtime_hours == Decimal('2.00')
    assert record.overtime_pay == Decimal('384.62')
    assert record.status == 'DRAFT'

    HRService.process_payroll(record, processed_by='hr@pune.com')
    with pytest.raises(WorkflowError):
        HRService.calculate_payroll(employee, 3, 2026)
    with pytest.raises(WorkflowError):
        HRService.process_payroll(record)


def test_form_encoded_false_rejects_leave(make_user, client_for, pune, employee):
    leave = HRService.submit_leave_request(employee, 'CASUAL', date(2026, 3, 9), date(2026, 3, 10))
    client = client_for(make_user('hr@pune.com', 'HR_MANAGER', pune))

    response = client.post(f'/api/leave-requests/{leave.id}/decide/', {'approve': 'false'})
    assert response.status_code == 200
    assert response.json()['status'] == 'REJECTED'
    assert not Attendance.objects.filter(employee=employee, status='LEAVE').exists()


class EmployeePortalTests(TestCase):
    """Employees see only their own records through /api/me/."""

    def setUp(self):
        from io import StringIO
        from django.contrib.auth.models import User
        from django.core.management import call_command
        from rest_framework.test import APIClient
        from erp_system.models import Role, UserRole

        call_command('init_roles', stdout=StringIO())
        self.branch = Branch.objects.create(code='PUNE', name='Pune Works')
        self.user = User.objects.create_user(username='sunil', email='sunil@pune.com', password='testpass123')
        UserRole.objects.create(user=self.user, role=Role.objects.get(name='EMPLOYEE'), branch=self.branch)
        self.employee = HRService.create_employee(
            self.branch, 'Sunil', 'PRODUCTION', date(2024, 4, 1), user=self.user, basic_salary=Decimal('20000')
        )
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_profile(self):
        response = self.client.get('/api/me/profile/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['employee_code'], self.employee.employee_code)

    def test_submit_own_leave(self):
        response = self.client.post('/api/me/leave-requests/', {
            'leave_type': 'SICK', 'start_date': '2026-05-04', 'end_date': '2026-05-05', 'reason': 'Fever',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.employee.leave_requests.get().days, 2)

    def test_draft_payslips_hidden(self):
        HRService.calculate_payroll(self.employee, 3, 2026)
        response = self.client.get('/api/me/payslips/')
        self.assertEqual(response.json(), [])

    def test_employee_cannot_use_hr_endpoints(self):
        response = self.client.get('/api/employees/')
        self.assertEqual(response.status_code, 403)
