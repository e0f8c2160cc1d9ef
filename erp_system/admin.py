from django.contrib import admin
from .models import (
    Branch, Role, UserRole, UserSession, DocumentCounter, AuditLog,
    Customer, Lead, SiteMeasurement, Estimate, EstimateItem, DiscountApproval,
    Warehouse, InventoryItem, StockTransaction, StockTransfer, StockTransferItem,
    Supplier, PurchaseRequisition, PurchaseRequisitionItem, PurchaseOrder, PurchaseOrderItem,
    GoodsReceipt, GoodsReceiptItem,
    Product, BillOfMaterial, BOMItem, SalesOrder, SalesOrderItem, ProductionOrder,
    Employee, Attendance, LeaveRequest, PayrollRecord,
    AMCContract, ServiceRequest, ServicePart,
    Invoice, InvoiceLineItem, Payment,
    SLAConfiguration, Alert, AlertNotification,
)
from .security import get_accessible_branch_ids


# =============================================================================
# Branch Admin Mixin for data isolation in Django Admin
# =============================================================================
class BranchAdminMixin:
    """
    Mixin for admin classes to filter by branch.

    For superusers and global roles: shows all data with a branch column
    For staff users: only rows of the branches they hold a role in
    """
    branch_field = 'branch'

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if request.user.is_superuser:
            return qs
        branch_ids = get_accessible_branch_ids(request.user)
        if branch_ids is None:
            return qs
        return qs.filter(**{f'{self.branch_field}__in': branch_ids})

    def get_list_display(self, request):
        list_display = list(super().get_list_display(request))
        if request.user.is_superuser and self.branch_field not in list_display:
            list_display.insert(0, self.branch_field)
        return list_display

    def get_list_filter(self, request):
        list_filter = list(super().get_list_filter(request))
        if request.user.is_superuser and self.branch_field not in list_filter:
            list_filter.insert(0, self.branch_field)
        return list_filter


# Administration
@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'city', 'state', 'is_active', 'created_at']
    list_filter = ['is_active', 'state']
    search_fields = ['code', 'name', 'city']


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'description', 'permission_count', 'updated_at']
    search_fields = ['name']

    def permission_count(self, obj):
        return len(obj.permissions or [])
    permission_count.short_description = "Permissions"


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'branch', 'is_active', 'updated_at']
    list_filter = ['role', 'branch', 'is_active']
    search_fields = ['user__username', 'user__email']


@admin.register(UserSession)
class UserSessionAdmin(admin.ModelAdmin):
    list_display = ['user', 'jti', 'expires_at', 'revoked_at', 'last_used_at', 'ip']
    list_filter = ['revoked_at']
    search_fields = ['user__username', 'jti']
    readonly_fields = ['jti', 'created_at']


@admin.register(DocumentCounter)
class DocumentCounterAdmin(admin.ModelAdmin):
    list_display = ['prefix', 'period', 'sequence']
    search_fields = ['prefix', 'period']


@admin.register(AuditLog)
class AuditLogAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['created_at', 'action', 'object_type', 'object_id', 'user_email', 'ip']
    list_filter = ['action', 'created_at']
    search_fields = ['message', 'user_email', 'object_id']
    readonly_fields = ['created_at']


# Sales
@admin.register(Customer)
class CustomerAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['customer_code', 'name', 'phone', 'city', 'is_active']
    list_filter = ['is_active', 'state']
    search_fields = ['customer_code', 'name', 'phone', 'gst_number']


class SiteMeasurementInline(admin.TabularInline):
    model = SiteMeasurement
    extra = 0


@admin.register(Lead)
class LeadAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['lead_number', 'contact_name', 'contact_phone', 'source', 'status', 'priority', 'created_at']
    list_filter = ['status', 'source', 'priority']
    search_fields = ['lead_number', 'contact_name', 'contact_phone']
    readonly_fields = ['lead_number']
    inlines = [SiteMeasurementInline]


class EstimateItemInline(admin.TabularInline):
    model = EstimateItem
    extra = 0


class DiscountApprovalInline(admin.TabularInline):
    model = DiscountApproval
    extra = 0
    fk_name = 'estimate'


@admin.register(Estimate)
class EstimateAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['estimate_number', 'version', 'lead', 'status', 'approval_status', 'final_amount', 'valid_until']
    list_filter = ['status', 'approval_status']
    search_fields = ['estimate_number', 'lead__lead_number']
    readonly_fields = ['estimate_number']
    inlines = [EstimateItemInline, DiscountApprovalInline]


@admin.register(DiscountApproval)
class DiscountApprovalAdmin(admin.ModelAdmin):
    list_display = ['estimate', 'discount_percentage', 'approval_level', 'status', 'created_at']
    list_filter = ['status', 'approval_level']


class BOMItemInline(admin.TabularInline):
    model = BOMItem
    extra = 0


@admin.register(Product)
class ProductAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['code', 'name', 'category', 'base_price', 'is_active']
    list_filter = ['is_active', 'category']
    search_fields = ['code', 'name']


@admin.register(BillOfMaterial)
class BillOfMaterialAdmin(admin.ModelAdmin):
    list_display = ['product', 'version', 'status', 'updated_at']
    list_filter = ['status']
    search_fields = ['product__code', 'product__name']
    inlines = [BOMItemInline]


class SalesOrderItemInline(admin.TabularInline):
    model = SalesOrderItem
    extra = 0


@admin.register(SalesOrder)
class SalesOrderAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['order_number', 'customer', 'order_date', 'status', 'final_amount']
    list_filter = ['status', 'order_date']
    search_fields = ['order_number', 'customer__name']
    readonly_fields = ['order_number']
    inlines = [SalesOrderItemInline]


@admin.register(ProductionOrder)
class ProductionOrderAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['order_number', 'sales_order', 'product', 'quantity', 'start_date', 'end_date', 'status']
    list_filter = ['status']
    search_fields = ['order_number', 'sales_order__order_number']


# Inventory
@admin.register(Warehouse)
class WarehouseAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['code', 'name', 'location', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']


@admin.register(InventoryItem)
class InventoryItemAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['item_code', 'name', 'warehouse', 'current_stock', 'available_stock', 'reserved_stock',
                    'reorder_level', 'is_active']
    list_filter = ['category', 'is_active', 'warehouse']
    search_fields = ['item_code', 'name', 'barcode']
    readonly_fields = ['barcode', 'current_stock', 'available_stock', 'reserved_stock']


@admin.register(StockTransaction)
class StockTransactionAdmin(BranchAdminMixin, admin.ModelAdmin):
    branch_field = 'inventory_item__branch'
    list_display = ['transaction_date', 'inventory_item', 'transaction_type', 'quantity', 'unit_cost',
                    'reference_type', 'reference_id', 'created_by']
    list_filter = ['transaction_type', 'reference_type']
    search_fields = ['inventory_item__item_code', 'reference_id', 'batch_number']

    def get_list_display(self, request):
        return self.list_display

    def get_list_filter(self, request):
        return self.list_filter


class StockTransferItemInline(admin.TabularInline):
    model = StockTransferItem
    fk_name = 'transfer'
    extra = 0


@admin.register(StockTransfer)
class StockTransferAdmin(admin.ModelAdmin):
    list_display = ['transfer_number', 'from_warehouse', 'to_warehouse', 'status', 'shipped_at', 'received_at']
    list_filter = ['status', 'from_branch', 'to_branch']
    search_fields = ['transfer_number']
    inlines = [StockTransferItemInline]


# Procurement
@admin.register(Supplier)
class SupplierAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['supplier_code', 'name', 'contact_person', 'phone', 'payment_terms_days', 'is_active']
    list_filter = ['is_active']
    search_fields = ['supplier_code', 'name', 'gst_number']


class PurchaseRequisitionItemInline(admin.TabularInline):
    model = PurchaseRequisitionItem
    extra = 0


@admin.register(PurchaseRequisition)
class PurchaseRequisitionAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['requisition_number', 'department', 'priority', 'status', 'required_date', 'requested_by']
    list_filter = ['status', 'priority']
    search_fields = ['requisition_number', 'requested_by']
    inlines = [PurchaseRequisitionItemInline]


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0
    readonly_fields = ['received_quantity']


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['po_number', 'supplier', 'order_date', 'delivery_date', 'status', 'final_amount']
    list_filter = ['status', 'order_date']
    search_fields = ['po_number', 'supplier__name']
    readonly_fields = ['po_number']
    inlines = [PurchaseOrderItemInline]


class GoodsReceiptItemInline(admin.TabularInline):
    model = GoodsReceiptItem
    extra = 0


@admin.register(GoodsReceipt)
class GoodsReceiptAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['grn_number', 'purchase_order', 'received_by', 'received_at']
    search_fields = ['grn_number', 'purchase_order__po_number']
    inlines = [GoodsReceiptItemInline]


# HR
@admin.register(Employee)
class EmployeeAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['employee_code', 'first_name', 'last_name', 'department', 'designation', 'is_active']
    list_filter = ['department', 'is_active']
    search_fields = ['employee_code', 'first_name', 'last_name', 'email']


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = ['employee', 'date', 'status', 'working_hours', 'overtime_hours']
    list_filter = ['status', 'date']
    search_fields = ['employee__employee_code']


@admin.register(LeaveRequest)
class LeaveRequestAdmin(admin.ModelAdmin):
    list_display = ['employee', 'leave_type', 'start_date', 'end_date', 'days', 'status', 'approved_by']
    list_filter = ['status', 'leave_type']
    search_fields = ['employee__employee_code']


@admin.register(PayrollRecord)
class PayrollRecordAdmin(admin.ModelAdmin):
    list_display = ['employee', 'year', 'month', 'gross_salary', 'total_deductions', 'net_salary', 'status']
    list_filter = ['status', 'year', 'month']
    search_fields = ['employee__employee_code']


# Service
class ServicePartInline(admin.TabularInline):
    model = ServicePart
    extra = 0


@admin.register(ServiceRequest)
class ServiceRequestAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['service_number', 'customer', 'service_type', 'priority', 'status', 'assigned_to',
                    'total_cost']
    list_filter = ['status', 'service_type', 'priority']
    search_fields = ['service_number', 'customer__name', 'warranty_number']
    readonly_fields = ['service_number']
    inlines = [ServicePartInline]


@admin.register(AMCContract)
class AMCContractAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['contract_number', 'customer', 'start_date', 'end_date', 'amount', 'status']
    list_filter = ['status']
    search_fields = ['contract_number', 'customer__name']


# Finance
class InvoiceLineItemInline(admin.TabularInline):
    model = InvoiceLineItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ['payment_number']


@admin.register(Invoice)
class InvoiceAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['invoice_number', 'customer', 'invoice_date', 'due_date', 'total_amount', 'balance_amount',
                    'status']
    list_filter = ['status', 'invoice_date']
    search_fields = ['invoice_number', 'customer__name']
    readonly_fields = ['invoice_number', 'pdf_path']
    inlines = [InvoiceLineItemInline, PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_number', 'invoice', 'amount', 'payment_method', 'payment_date']
    list_filter = ['payment_method', 'payment_date']
    search_fields = ['payment_number', 'invoice__invoice_number', 'reference']


# Alerts
@admin.register(SLAConfiguration)
class SLAConfigurationAdmin(admin.ModelAdmin):
    list_display = ['module', 'process', 'sla_hours', 'is_active', 'updated_at']
    list_filter = ['module', 'is_active']


class AlertNotificationInline(admin.TabularInline):
    model = AlertNotification
    extra = 0
    readonly_fields = ['channel', 'notification_type', 'recipient', 'status', 'sent_at', 'error']


@admin.register(Alert)
class AlertAdmin(BranchAdminMixin, admin.ModelAdmin):
    list_display = ['title', 'module', 'alert_type', 'priority', 'status', 'due_date', 'escalation_level']
    list_filter = ['status', 'priority', 'module']
    search_fields = ['title', 'reference_id']
    inlines = [AlertNotificationInline]
