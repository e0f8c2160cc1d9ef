"""
HR Service.

Employees, daily attendance, leave and monthly payroll. Payroll pulls
overtime from the month's attendance rows and applies the statutory
deductions (PF, ESI, professional tax).
"""
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone
import logging

from ..exceptions import ConflictError, ValidationFailed, WorkflowError
from ..models import DocumentCounter
from ..utils import money

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
STANDARD_HOURS = Decimal('8')
WORKING_DAYS_PER_MONTH = 26
OVERTIME_MULTIPLIER = 2

LEAVE_ALLOCATIONS = {
    'CASUAL': 12,
    'SICK': 12,
    'EARNED': 21,
    'MATERNITY': 180,
    'PATERNITY': 15,
}

PF_RATE = Decimal('0.12')
ESI_RATE = Decimal('0.0075')
ESI_GROSS_CEILING = Decimal('21000')


def _rupees(value):
    return Decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP)


def split_working_hours(check_in, check_out):
    """
    Split a shift into (regular, overtime) hours, regular capped at 8.

    09:00 to 19:00 gives (8.00, 2.00).
    """
    if check_out < check_in:
        raise ValidationFailed('check_out cannot be before check_in')
    total = Decimal(str((check_out - check_in).total_seconds())) / Decimal('3600')
    regular = min(total, STANDARD_HOURS)
    overtime = max(total - STANDARD_HOURS, ZERO)
    return money(regular), money(overtime)


def professional_tax(gross):
    if gross <= Decimal('15000'):
        return Decimal('0')
    if gross <= Decimal('20000'):
        return Decimal('150')
    return Decimal('200')


def calculate_salary(basic_salary, allowances=0, overtime_hours=0, other_deductions=0):
    """
    Monthly salary arithmetic.

    Overtime is paid at twice the hourly rate, where the hourly rate is
    basic / (26 days x 8 hours). PF is 12% of basic and ESI 0.75% of gross
    (only when gross <= 21000), both rounded to the rupee.
    """
    basic = Decimal(str(basic_salary))
    allowances = Decimal(str(allowances or 0))
    overtime_hours = Decimal(str(overtime_hours or 0))
    other = Decimal(str(other_deductions or 0))
    if basic < 0 or allowances < 0 or other < 0:
        raise ValidationFailed('Salary components cannot be negative')

    hourly_rate = basic / (WORKING_DAYS_PER_MONTH * STANDARD_HOURS)
    overtime_pay = money(overtime_hours * hourly_rate * OVERTIME_MULTIPLIER)
    gross = money(basic + allowances + overtime_pay)

    pf = _rupees(basic * PF_RATE)
    esi = _rupees(gross * ESI_RATE) if gross <= ESI_GROSS_CEILING else ZERO
    pt = professional_tax(gross)
    total_deductions = money(pf + esi + pt + other)

    return {
        'basic_salary': money(basic),
        'allowances': money(allowances),
        'overtime_hours': money(overtime_hours),
        'overtime_pay': overtime_pay,
        'gross_salary': gross,
        'pf_deduction': money(pf),
        'esi_deduction': money(esi),
        'professional_tax': money(pt),
        'other_deductions': money(other),
        'total_deductions': total_deductions,
        'net_salary': money(gross - total_deductions),
    }


class HRService:

    @staticmethod
    def create_employee(branch, first_name, department, date_of_joining, manager=None, updated_by='system', **fields):
        from ..models import Employee

        if not (first_name or '').strip() or not (department or '').strip():
            raise ValidationFailed('first_name and department are required')
        if not branch.is_active:
            raise ValidationFailed(f"Branch {branch.code} is inactive")
        if manager is not None and not manager.is_active:
            raise ValidationFailed('Manager is not an active employee')
        if Decimal(str(fields.get('basic_salary') or 0)) < 0:
            raise ValidationFailed('basic_salary cannot be negative')

        employee = Employee.objects.create(
            branch=branch,
            employee_code=fields.pop('employee_code', None) or DocumentCounter.next_number('EMP', branch.code, 4),
            first_name=first_name.strip(),
            department=department.strip().upper(),
            date_of_joining=date_of_joining,
            manager=manager,
            updated_by=updated_by,
            **fields,
        )
        logger.info(f"Employee created: {employee.employee_code} {employee.full_name} ({branch.code})")
        return employee

    # --- Attendance -------------------------------------------------------

    @staticmethod
    def record_attendance(employee, date, check_in=None, check_out=None, status='PRESENT', updated_by='system'):
        """
        Create or update the employee's attendance row for the day.

        A later call for the same day (e.g. the check-out punch) updates
        the existing row.
        """
        from ..models import Attendance

        valid = [c[0] for c in Attendance.STATUS_CHOICES]
        if status not in valid:
            raise ValidationFailed(f"status must be one of {', '.join(valid)}")

        attendance, created = Attendance.objects.get_or_create(
            employee=employee, date=date, defaults={'status': status, 'updated_by': updated_by}
        )
        if check_in is not None:
            attendance.check_in = check_in
        if check_out is not None:
            attendance.check_out = check_out
        attendance.status = status

        if attendance.check_in and attendance.check_out:
            attendance.working_hours, attendance.overtime_hours = split_working_hours(
                attendance.check_in, attendance.check_out
            )
        else:
            attendance.working_hours = ZERO
            attendance.overtime_hours = ZERO
        attendance.updated_by = updated_by
        attendance.save()
        return attendance

    @staticmethod
    def get_attendance_summary(employee, month, year):
        _validate_period(month, year)
        rows = employee.attendance.filter(date__year=year, date__month=month)
        counts = {row['status']: row['n'] for row in rows.values('status').annotate(n=Count('id'))}
        totals = rows.aggregate(hours=Sum('working_hours'), overtime=Sum('overtime_hours'))
        return {
            'employee_id': employee.id,
            'employee_code': employee.employee_code,
            'month': month,
            'year': year,
            'present_days': counts.get('PRESENT', 0),
            'absent_days': counts.get('ABSENT', 0),
            'half_days': counts.get('HALF_DAY', 0),
            'leave_days': counts.get('LEAVE', 0),
            'total_working_hours': money(totals['hours'] or ZERO),
            'total_overtime_hours': money(totals['overtime'] or ZERO),
        }

    # --- Leave ------------------------------------------------------------

    @staticmethod
    def get_leave_balance(employee, year):
        """
        Allocation minus approved days per leave type for the year.

        'available' also deducts PENDING requests; new requests are checked
        against it.
        """
        booked = {}
        for row in (employee.leave_requests.filter(status__in=['PENDING', 'APPROVED'], start_date__year=year)
                    .values('leave_type', 'status').annotate(days=Sum('days'))):
            booked[(row['leave_type'], row['status'])] = row['days']

        balances = {}
        for leave_type, allocated in LEAVE_ALLOCATIONS.items():
            used = booked.get((leave_type, 'APPROVED'), 0)
            pending = booked.get((leave_type, 'PENDING'), 0)
            balances[leave_type] = {
                'allocated': allocated,
                'used': used,
                'pending': pending,
                'balance': allocated - used,
                'available': allocated - used - pending,
            }
        return balances

    @staticmethod
    @transaction.atomic
    def submit_leave_request(employee, leave_type, start_date, end_date, reason='', updated_by='system'):
        from ..models import Employee, LeaveRequest

        if leave_type not in LEAVE_ALLOCATIONS:
            raise ValidationFailed(f"leave_type must be one of {', '.join(LEAVE_ALLOCATIONS)}")
        if end_date < start_date:
            raise ValidationFailed('end_date cannot be before start_date')

        # serialises balance checks per employee
        employee = Employee.objects.select_for_update().get(pk=employee.pk)
        days = (end_date - start_date).days + 1
        overlapping = employee.leave_requests.filter(
            status__in=['PENDING', 'APPROVED'],
            start_date__lte=end_date,
            end_date__gte=start_date,
        )
        if overlapping.exists():
            raise ConflictError('Leave request overlaps an existing pending or approved leave')

        balance = HRService.get_leave_balance(employee, start_date.year)[leave_type]['available']
        if days > balance:
            raise ValidationFailed(
                f"Insufficient {leave_type} leave balance. Available: {balance}, Requested: {days}",
                detail={'available': balance, 'requested': days},
            )

        leave = LeaveRequest.objects.create(
            employee=employee,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            days=days,
            reason=reason,
            updated_by=updated_by,
        )
        logger.info(f"Leave request {leave.id}: {employee.employee_code} {leave_type} {days} day(s)")
        return leave

    @staticmethod
    @transaction.atomic
    def decide_leave_request(leave, approve, decided_by='system', comments=''):
        """Approve or reject a PENDING request; approval books LEAVE attendance for each day."""
        from ..models import Attendance, Employee, LeaveRequest

        Employee.objects.select_for_update().get(pk=leave.employee_id)
        leave = LeaveRequest.objects.select_for_update().select_related('employee').get(pk=leave.pk)
        if leave.status != 'PENDING':
            raise WorkflowError(f"Leave request is already {leave.status}", leave.status)

        if approve:
            balance = HRService.get_leave_balance(leave.employee, leave.start_date.year)[leave.leave_type]['balance']
            if leave.days > balance:
                raise ValidationFailed(
                    f"Insufficient {leave.leave_type} leave balance. Available: {balance}, Requested: {leave.days}",
                    detail={'available': balance, 'requested': leave.days},
                )

        leave.status = 'APPROVED' if approve else 'REJECTED'
        leave.approved_by = decided_by
        leave.decided_at = timezone.now()
        leave.comments = comments or ''
        leave.updated_by = decided_by
        leave.save()

        if approve:
            day = leave.start_date
            while day <= leave.end_date:
                Attendance.objects.update_or_create(
                    employee=leave.employee,
                    date=day,
                    defaults={
                        'status': 'LEAVE',
                        'check_in': None,
                        'check_out': None,
                        'working_hours': ZERO,
                        'overtime_hours': ZERO,
                        'updated_by': decided_by,
                    },
                )
                day += timedelta(days=1)

        logger.info(f"Leave request {leave.id} {leave.status} by {decided_by}")
        return leave

    # --- Payroll ----------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def calculate_payroll(employee, month, year, allowances=0, other_deductions=0, updated_by='system'):
        """
        Create or recalculate the DRAFT payroll record for a month.

        Raises:
            WorkflowError: the month is already PROCESSED or PAID
        """
        from ..models import PayrollRecord

        _validate_period(month, year)
        record = PayrollRecord.objects.select_for_update().filter(employee=employee, month=month, year=year).first()
        if record is not None and record.status != 'DRAFT':
            raise WorkflowError(f"Payroll for {year}-{month:02d} is already {record.status}", record.status)

        overtime = employee.attendance.filter(date__year=year, date__month=month).aggregate(
            v=Sum('overtime_hours')
        )['v'] or ZERO
        figures = calculate_salary(employee.basic_salary, allowances, overtime, other_deductions)

        if record is None:
            record = PayrollRecord(employee=employee, month=month, year=year)
        for field, value in figures.items():
            setattr(record, field, value)
        record.updated_by = updated_by
        record.save()

        logger.info(
            f"Payroll calculated: {employee.employee_code} {year}-{month:02d} "
            f"gross={record.gross_salary} net={record.net_salary}"
        )
        return record

    @staticmethod
    @transaction.atomic
    def process_payroll(record, processed_by='system'):
        from ..models import PayrollRecord

        record = PayrollRecord.objects.select_for_update().get(pk=record.pk)
        if record.status != 'DRAFT':
            raise WorkflowError(f"Payroll is already {record.status}", record.status)
        record.status = 'PROCESSED'
        record.processed_at = timezone.now()
        record.updated_by = processed_by
        record.save()
        logger.info(f"Payroll processed: {record}")
        return record


def _validate_period(month, year):
    if not (1 <= int(month) <= 12):
        raise ValidationFailed('month must be between 1 and 12')
    if not (2000 <= int(year) <= 2100):
        raise ValidationFailed('year is out of range')
