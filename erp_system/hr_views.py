"""
HR API: employees, attendance, leave and payroll, plus the employee
self-service portal (own profile, attendance, leave and payslips).
"""
from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
import logging

from .exceptions import ERPError, RecordNotFound, ValidationFailed
from .models import Employee, LeaveRequest, PayrollRecord
from .permissions import permission_required, permission_required_for_writes
from .security import get_branch_filter, resolve_write_branch
from .serializers import AttendanceSerializer, EmployeeSerializer, LeaveRequestSerializer, PayrollRecordSerializer
from .services.hr_service import HRService
from .utils import (
    audit,
    clamp_limit,
    duplicate_response,
    error_response,
    parse_date_field,
    parse_datetime_field,
    to_bool,
    to_decimal,
    username_of,
)

logger = logging.getLogger(__name__)

EMPLOYEE_TEXT_FIELDS = ('last_name', 'email', 'phone', 'designation')
PROFILE_FIELDS = ('email', 'phone')


def _data(request):
    return request.data if isinstance(request.data, dict) else {}


def _not_found(label):
    return Response({'error': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)


def _server_error(name, e, message):
    logger.error(f"{name} error: {e}", exc_info=True)
    return Response({'error': message, 'detail': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _period(source):
    """(month, year) from a query dict or request body; defaults to the current month."""
    today = timezone.localdate()
    try:
        month = int(source.get('month') or today.month)
        year = int(source.get('year') or today.year)
    except (TypeError, ValueError):
        raise ValidationFailed('month and year must be numbers')
    return month, year


def _employee(request, employee_id):
    return Employee.objects.get(id=employee_id, **get_branch_filter(request))


def _own_employee(request):
    employee = Employee.objects.filter(user=request.user, is_active=True).first()
    if employee is None:
        raise RecordNotFound('No employee profile is linked to this user')
    return employee


# Employees
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('HR', 'EMPLOYEE')
def employee_list(request):
    """
    GET filters: department, active, search.
    POST: {first_name, last_name, department, designation, date_of_joining,
    basic_salary, manager_id?, user_id?, email, phone, branch_id?}
    """
    try:
        if request.method == 'GET':
            employees = Employee.objects.filter(**get_branch_filter(request)).select_related('manager')
            if request.GET.get('department'):
                employees = employees.filter(department=request.GET['department'].upper())
            if request.GET.get('active') != 'false':
                employees = employees.filter(is_active=True)
            search = (request.GET.get('search') or '').strip()
            if search:
                employees = employees.filter(
                    Q(employee_code__icontains=search) | Q(first_name__icontains=search)
                    | Q(last_name__icontains=search)
                )
            return Response(EmployeeSerializer(employees[:clamp_limit(request)], many=True).data)

        data = _data(request)
        branch = resolve_write_branch(request, data.get('branch_id'))
        manager = None
        if data.get('manager_id'):
            manager = Employee.objects.get(id=data['manager_id'], branch=branch)
        fields = {f: (data.get(f) or '').strip() for f in EMPLOYEE_TEXT_FIELDS if data.get(f)}
        fields['basic_salary'] = to_decimal(data.get('basic_salary'), 'basic_salary', default=0)
        if data.get('user_id'):
            fields['user'] = get_user_model().objects.get(id=data['user_id'])

        employee = HRService.create_employee(
            branch,
            data.get('first_name'),
            data.get('department'),
            parse_date_field(data.get('date_of_joining'), 'date_of_joining'),
            manager=manager,
            updated_by=username_of(request),
            **fields,
        )
        audit(request, 'EMPLOYEE_CREATED', employee, f"Employee created: {employee}")
        return Response(EmployeeSerializer(employee).data, status=status.HTTP_201_CREATED)
    except Employee.DoesNotExist:
        return _not_found('Manager')
    except get_user_model().DoesNotExist:
        return _not_found('User')
    except ERPError as e:
        return error_response(e)
    except IntegrityError as e:
        return duplicate_response(e)
    except Exception as e:
        return _server_error('employee_list', e, 'Failed to process employees')


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('HR', 'EMPLOYEE')
def employee_detail(request, employee_id: int):
    try:
        employee = _employee(request, employee_id)
        if request.method == 'GET':
            return Response(EmployeeSerializer(employee).data)

        data = _data(request)
        for field in ('first_name',) + EMPLOYEE_TEXT_FIELDS:
            if field in data:
                setattr(employee, field, (data.get(field) or '').strip())
        if 'department' in data:
            employee.department = (data.get('department') or '').strip().upper()
        if not employee.first_name or not employee.department:
            raise ValidationFailed('first_name and department cannot be blank')
        if 'basic_salary' in data:
            salary = to_decimal(data.get('basic_salary'), 'basic_salary')
            if salary < 0:
                raise ValidationFailed('basic_salary cannot be negative')
            employee.basic_salary = salary
        if 'manager_id' in data:
            manager_id = data.get('manager_id')
            if manager_id and int(manager_id) == employee.id:
                raise ValidationFailed('An employee cannot manage themselves')
            employee.manager = Employee.objects.get(id=manager_id, branch=employee.branch) if manager_id else None
        if 'is_active' in data:
            employee.is_active = to_bool(data.get('is_active'), 'is_active')
        employee.updated_by = username_of(request)
        employee.save()
        audit(request, 'EMPLOYEE_UPDATED', employee, f"Employee updated: {employee.employee_code}",
              extra={'fields': sorted(data.keys())}, branch=employee.branch)
        return Response(EmployeeSerializer(employee).data)
    except Employee.DoesNotExist:
        return _not_found('Employee')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('employee_detail', e, 'Failed to process employee')


# Attendance
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('HR', 'ATTENDANCE')
def attendance_list(request, employee_id: int):
    """
    GET ?month=&year=: the month's rows.
    POST: {date, check_in?, check_out?, status?} creates or updates the day.
    """
    try:
        employee = _employee(request, employee_id)
        if request.method == 'GET':
            month, year = _period(request.GET)
            rows = employee.attendance.filter(date__year=year, date__month=month).order_by('date')
            return Response(AttendanceSerializer(rows, many=True).data)

        data = _data(request)
        attendance = HRService.record_attendance(
            employee,
            parse_date_field(data.get('date'), 'date'),
            check_in=parse_datetime_field(data.get('check_in'), 'check_in'),
            check_out=parse_datetime_field(data.get('check_out'), 'check_out'),
            status=(data.get('status') or 'PRESENT').upper(),
            updated_by=username_of(request),
        )
        audit(request, 'ATTENDANCE_RECORDED', attendance,
              f"{employee.employee_code} {attendance.date}: {attendance.status} {attendance.working_hours}h",
              branch=employee.branch)
        return Response(AttendanceSerializer(attendance).data, status=status.HTTP_201_CREATED)
    except Employee.DoesNotExist:
        return _not_found('Employee')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('attendance_list', e, 'Failed to process attendance')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('HR', 'READ', 'ATTENDANCE')
def attendance_summary(request, employee_id: int):
    try:
        employee = _employee(request, employee_id)
        month, year = _period(request.GET)
        return Response(HRService.get_attendance_summary(employee, month, year))
    except Employee.DoesNotExist:
        return _not_found('Employee')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('attendance_summary', e, 'Failed to summarise attendance')


# Leave
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('HR', 'LEAVE_REQUEST')
def leave_request_list(request):
    """
    GET filters: status (default PENDING), employee_id.
    POST: {employee_id, leave_type, start_date, end_date, reason}
    """
    try:
        if request.method == 'GET':
            leaves = LeaveRequest.objects.filter(**get_branch_filter(request, 'employee__')).select_related('employee')
            leaves = leaves.filter(status=(request.GET.get('status') or 'PENDING').upper())
            if request.GET.get('employee_id'):
                leaves = leaves.filter(employee_id=request.GET['employee_id'])
            return Response(LeaveRequestSerializer(leaves.order_by('start_date')[:clamp_limit(request)],
                                                   many=True).data)

        data = _data(request)
        employee = _employee(request, data.get('employee_id'))
        leave = _submit_leave(request, employee, data)
        return Response(LeaveRequestSerializer(leave).data, status=status.HTTP_201_CREATED)
    except Employee.DoesNotExist:
        return _not_found('Employee')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('leave_request_list', e, 'Failed to process leave requests')


def _submit_leave(request, employee, data):
    leave = HRService.submit_leave_request(
        employee,
        (data.get('leave_type') or '').upper(),
        parse_date_field(data.get('start_date'), 'start_date'),
        parse_date_field(data.get('end_date'), 'end_date'),
        reason=data.get('reason') or '',
        updated_by=username_of(request),
    )
    audit(request, 'LEAVE_REQUESTED', leave,
          f"{employee.employee_code} {leave.leave_type} {leave.start_date}..{leave.end_date} ({leave.days}d)",
          branch=employee.branch)
    return leave


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('HR', 'APPROVE', 'LEAVE_REQUEST')
def leave_request_decide(request, leave_id: int):
    """{approve: true|false, comments}"""
    try:
        data = _data(request)
        if 'approve' not in data:
            raise ValidationFailed('approve is required')
        leave = LeaveRequest.objects.select_related('employee').get(
            id=leave_id, **get_branch_filter(request, 'employee__')
        )
        leave = HRService.decide_leave_request(
            leave, to_bool(data.get('approve'), 'approve'), decided_by=username_of(request), comments=data.get('comments') or ''
        )
        audit(request, f"LEAVE_{leave.status}", leave,
              f"Leave {leave.id} for {leave.employee.employee_code} {leave.status}", branch=leave.employee.branch)
        return Response(LeaveRequestSerializer(leave).data)
    except LeaveRequest.DoesNotExist:
        return _not_found('Leave request')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('leave_request_decide', e, 'Failed to decide leave request')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('HR', 'READ', 'LEAVE_REQUEST')
def leave_balance(request, employee_id: int):
    """?year=YYYY"""
    try:
        employee = _employee(request, employee_id)
        _, year = _period(request.GET)
        return Response({'employee_id': employee.id, 'year': year,
                         'balances': HRService.get_leave_balance(employee, year)})
    except Employee.DoesNotExist:
        return _not_found('Employee')
    except ERPError as e:
        return error_response(e)


# Payroll
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('HR', 'READ', 'PAYROLL')
def payroll_list(request):
    """?month=&year=&status="""
    try:
        records = PayrollRecord.objects.filter(**get_branch_filter(request, 'employee__')).select_related('employee')
        if request.GET.get('month') or request.GET.get('year'):
            month, year = _period(request.GET)
            records = records.filter(month=month, year=year)
        if request.GET.get('status'):
            records = records.filter(status=request.GET['status'].upper())
        records = records.order_by('-year', '-month', 'employee__employee_code')
        return Response(PayrollRecordSerializer(records[:clamp_limit(request)], many=True).data)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('payroll_list', e, 'Failed to load payroll')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('HR', 'CREATE', 'PAYROLL')
def payroll_calculate(request):
    """{employee_id, month, year, allowances?, other_deductions?} creates or recalculates the DRAFT."""
    try:
        data = _data(request)
        employee = _employee(request, data.get('employee_id'))
        month, year = _period(data)
        record = HRService.calculate_payroll(
            employee, month, year,
            allowances=to_decimal(data.get('allowances'), 'allowances', default=0),
            other_deductions=to_decimal(data.get('other_deductions'), 'other_deductions', default=0),
            updated_by=username_of(request),
        )
        audit(request, 'PAYROLL_CALCULATED', record,
              f"{employee.employee_code} {year}-{month:02d}: net {record.net_salary}", branch=employee.branch)
        return Response(PayrollRecordSerializer(record).data)
    except Employee.DoesNotExist:
        return _not_found('Employee')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('payroll_calculate', e, 'Failed to calculate payroll')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@permission_required('HR', 'APPROVE', 'PAYROLL')
def payroll_process(request, record_id: int):
    try:
        record = PayrollRecord.objects.select_related('employee').get(
            id=record_id, **get_branch_filter(request, 'employee__')
        )
        record = HRService.process_payroll(record, processed_by=username_of(request))
        audit(request, 'PAYROLL_PROCESSED', record,
              f"{record.employee.employee_code} {record.year}-{record.month:02d} processed",
              branch=record.employee.branch)
        return Response(PayrollRecordSerializer(record).data)
    except PayrollRecord.DoesNotExist:
        return _not_found('Payroll record')
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('payroll_process', e, 'Failed to process payroll')


# Employee portal
@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
@permission_required_for_writes('EMPLOYEE_PORTAL', 'PROFILE')
def my_profile(request):
    """The caller's own employee record; PATCH may change email and phone only."""
    try:
        employee = _own_employee(request)
        if request.method == 'PATCH':
            data = _data(request)
            for field in PROFILE_FIELDS:
                if field in data:
                    setattr(employee, field, (data.get(field) or '').strip())
            employee.updated_by = username_of(request)
            employee.save()
        return Response(EmployeeSerializer(employee).data)
    except ERPError as e:
        return error_response(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('EMPLOYEE_PORTAL', 'READ', 'ATTENDANCE')
def my_attendance(request):
    try:
        employee = _own_employee(request)
        month, year = _period(request.GET)
        return Response({
            'summary': HRService.get_attendance_summary(employee, month, year),
            'days': AttendanceSerializer(
                employee.attendance.filter(date__year=year, date__month=month).order_by('date'), many=True
            ).data,
        })
    except ERPError as e:
        return error_response(e)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@permission_required('EMPLOYEE_PORTAL', 'CREATE', 'LEAVE_REQUEST')
def my_leave_requests(request):
    """GET: own requests and balances. POST: {leave_type, start_date, end_date, reason}"""
    try:
        employee = _own_employee(request)
        if request.method == 'GET':
            year = timezone.localdate().year
            return Response({
                'balances': HRService.get_leave_balance(employee, year),
                'requests': LeaveRequestSerializer(employee.leave_requests.order_by('-start_date')[:50],
                                                   many=True).data,
            })
        leave = _submit_leave(request, employee, _data(request))
        return Response(LeaveRequestSerializer(leave).data, status=status.HTTP_201_CREATED)
    except ERPError as e:
        return error_response(e)
    except Exception as e:
        return _server_error('my_leave_requests', e, 'Failed to process leave request')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@permission_required('EMPLOYEE_PORTAL', 'READ', 'PAYROLL')
def my_payslips(request):
    """Processed and paid payroll records only; drafts stay with HR."""
    try:
        employee = _own_employee(request)
        records = employee.payroll_records.exclude(status='DRAFT').order_by('-year', '-month')
        return Response(PayrollRecordSerializer(records, many=True).data)
    except ERPError as e:
        return error_response(e)
