from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import (
    Alert,
    AlertNotification,
    AMCContract,
    Attendance,
    AuditLog,
    BillOfMaterial,
    BOMItem,
    Branch,
    Customer,
    DiscountApproval,
    Employee,
    Estimate,
    EstimateItem,
    GoodsReceipt,
    GoodsReceiptItem,
    InventoryItem,
    Invoice,
    InvoiceLineItem,
    Lead,
    LeaveRequest,
    Payment,
    PayrollRecord,
    Product,
    ProductionOrder,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseRequisition,
    PurchaseRequisitionItem,
    Role,
    SalesOrder,
    SalesOrderItem,
    ServicePart,
    ServiceRequest,
    SiteMeasurement,
    SLAConfiguration,
    StockTransaction,
    StockTransfer,
    StockTransferItem,
    Supplier,
    UserRole,
    Warehouse,
)


class BranchSerializer(serializers.ModelSerializer):
    class Meta:
        model = Branch
        fields = ['id', 'code', 'name', 'address', 'city', 'state', 'phone', 'email', 'is_active', 'created_at']


class RoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Role
        fields = ['id', 'name', 'description', 'permissions', 'is_system']


class UserRoleSerializer(serializers.ModelSerializer):
    role = serializers.CharField(source='role.name', read_only=True)
    branch_code = serializers.SerializerMethodField()
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = UserRole
        fields = ['id', 'user', 'username', 'role', 'branch', 'branch_code', 'is_active', 'created_at']

    def get_branch_code(self, obj):
        return obj.branch.code if obj.branch else None


class UserSerializer(serializers.ModelSerializer):
    roles = serializers.SerializerMethodField()

    class Meta:
        model = get_user_model()
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'is_active', 'roles']

    def get_roles(self, obj):
        return UserRoleSerializer(obj.erp_roles.filter(is_active=True).select_related('role', 'branch'), many=True).data


class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = ['id', 'branch', 'action', 'object_type', 'object_id', 'message', 'user_email', 'ip',
                  'method', 'path', 'user_agent', 'extra', 'created_at']


# --- Sales ---

class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ['id', 'branch', 'customer_code', 'name', 'email', 'phone', 'address', 'city', 'state',
                  'gst_number', 'is_active', 'created_at']


class SiteMeasurementSerializer(serializers.ModelSerializer):
    class Meta:
        model = SiteMeasurement
        fields = ['id', 'lead', 'measured_by', 'measured_at', 'location', 'measurements', 'notes']


class LeadSerializer(serializers.ModelSerializer):
    customer_name = serializers.SerializerMethodField()

    class Meta:
        model = Lead
        fields = ['id', 'branch', 'lead_number', 'customer', 'customer_name', 'contact_name', 'contact_phone',
                  'contact_email', 'source', 'requirements', 'estimated_value', 'priority', 'status',
                  'assigned_to', 'notes', 'created_at', 'updated_at']

    def get_customer_name(self, obj):
        return obj.customer.name if obj.customer else None


class LeadDetailSerializer(LeadSerializer):
    measurements = SiteMeasurementSerializer(many=True, read_only=True)
    estimates = serializers.SerializerMethodField()

    class Meta(LeadSerializer.Meta):
        fields = LeadSerializer.Meta.fields + ['measurements', 'estimates']

    def get_estimates(self, obj):
        return list(obj.estimates.values('id', 'estimate_number', 'version', 'status', 'final_amount'))


class EstimateItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = EstimateItem
        exclude = ['estimate']


class DiscountApprovalSerializer(serializers.ModelSerializer):
    estimate_number = serializers.CharField(source='estimate.estimate_number', read_only=True)

    class Meta:
        model = DiscountApproval
        fields = ['id', 'estimate', 'estimate_number', 'requested_by', 'discount_percentage', 'discount_amount',
                  'approval_level', 'approver_role', 'status', 'reason', 'decided_by', 'decided_at', 'comments',
                  'created_at']


class EstimateSerializer(serializers.ModelSerializer):
    items = EstimateItemSerializer(many=True, read_only=True)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Estimate
        fields = ['id', 'branch', 'estimate_number', 'lead', 'customer', 'version', 'status', 'total_amount',
                  'discount_percentage', 'discount_amount', 'tax_amount', 'final_amount', 'valid_until',
                  'is_expired', 'approval_status', 'cost_breakdown', 'items', 'created_at']


class BOMItemSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='inventory_item.item_code', read_only=True)

    class Meta:
        model = BOMItem
        fields = ['id', 'inventory_item', 'item_code', 'quantity', 'scrap_percentage']


class BillOfMaterialSerializer(serializers.ModelSerializer):
    items = BOMItemSerializer(many=True, read_only=True)

    class Meta:
        model = BillOfMaterial
        fields = ['id', 'product', 'version', 'status', 'approved_at', 'items']


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ['id', 'branch', 'code', 'name', 'category', 'unit', 'base_price', 'is_active']


class SalesOrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = SalesOrderItem
        fields = ['id', 'product', 'description', 'quantity', 'unit_price', 'total_price']


class ProductionOrderSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductionOrder
        fields = ['id', 'order_number', 'sales_order', 'product', 'bom', 'quantity', 'priority',
                  'start_date', 'end_date', 'buffer_days', 'status']


class SalesOrderSerializer(serializers.ModelSerializer):
    items = SalesOrderItemSerializer(many=True, read_only=True)
    production_orders = ProductionOrderSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)

    class Meta:
        model = SalesOrder
        fields = ['id', 'branch', 'order_number', 'customer', 'customer_name', 'estimate', 'order_date',
                  'delivery_date', 'status', 'total_amount', 'discount_amount', 'tax_amount', 'final_amount',
                  'notes', 'items', 'production_orders', 'created_at']


# --- Inventory ---

class WarehouseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Warehouse
        fields = ['id', 'branch', 'code', 'name', 'location', 'is_active']


class InventoryItemSerializer(serializers.ModelSerializer):
    warehouse_code = serializers.CharField(source='warehouse.code', read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = InventoryItem
        fields = ['id', 'branch', 'warehouse', 'warehouse_code', 'item_code', 'name', 'description', 'category',
                  'unit', 'barcode', 'standard_cost', 'current_stock', 'available_stock', 'reserved_stock',
                  'reorder_level', 'safety_stock', 'lead_time_days', 'is_active', 'is_low_stock']


class StockTransactionSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='inventory_item.item_code', read_only=True)

    class Meta:
        model = StockTransaction
        fields = ['id', 'inventory_item', 'item_code', 'warehouse', 'transaction_type', 'quantity', 'unit_cost',
                  'total_value', 'reference_type', 'reference_id', 'batch_number', 'expiry_date',
                  'transaction_date', 'remarks', 'created_by']


class StockTransferItemSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='source_item.item_code', read_only=True)

    class Meta:
        model = StockTransferItem
        fields = ['id', 'source_item', 'item_code', 'destination_item', 'quantity', 'unit_cost']


class StockTransferSerializer(serializers.ModelSerializer):
    items = StockTransferItemSerializer(many=True, read_only=True)

    class Meta:
        model = StockTransfer
        fields = ['id', 'transfer_number', 'from_branch', 'to_branch', 'from_warehouse', 'to_warehouse',
                  'status', 'requested_by', 'received_by', 'shipped_at', 'received_at', 'notes', 'items']


# --- Procurement ---

class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = ['id', 'branch', 'supplier_code', 'name', 'contact_person', 'email', 'phone', 'address',
                  'gst_number', 'payment_terms_days', 'is_active']


class PurchaseRequisitionItemSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='inventory_item.item_code', read_only=True)

    class Meta:
        model = PurchaseRequisitionItem
        fields = ['id', 'inventory_item', 'item_code', 'quantity', 'estimated_cost', 'justification']


class PurchaseRequisitionSerializer(serializers.ModelSerializer):
    items = PurchaseRequisitionItemSerializer(many=True, read_only=True)

    class Meta:
        model = PurchaseRequisition
        fields = ['id', 'branch', 'requisition_number', 'requested_by', 'department', 'priority', 'status',
                  'required_date', 'remarks', 'decided_by', 'decided_at', 'created_at', 'items']


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='inventory_item.item_code', read_only=True)
    pending_quantity = serializers.DecimalField(max_digits=14, decimal_places=3, read_only=True)

    class Meta:
        model = PurchaseOrderItem
        fields = ['id', 'inventory_item', 'item_code', 'quantity', 'unit_price', 'total_price',
                  'received_quantity', 'pending_quantity']


class PurchaseOrderSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    items = PurchaseOrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = ['id', 'branch', 'po_number', 'supplier', 'supplier_name', 'requisition', 'order_date',
                  'delivery_date', 'status', 'total_amount', 'tax_amount', 'final_amount', 'terms',
                  'approved_by', 'approved_at', 'items']


class GoodsReceiptItemSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='order_item.inventory_item.item_code', read_only=True)

    class Meta:
        model = GoodsReceiptItem
        fields = ['id', 'order_item', 'item_code', 'received_quantity', 'accepted_quantity',
                  'rejected_quantity', 'batch_number', 'expiry_date', 'stock_transaction']


class GoodsReceiptSerializer(serializers.ModelSerializer):
    po_number = serializers.CharField(source='purchase_order.po_number', read_only=True)
    items = GoodsReceiptItemSerializer(many=True, read_only=True)

    class Meta:
        model = GoodsReceipt
        fields = ['id', 'branch', 'grn_number', 'purchase_order', 'po_number', 'received_by', 'received_at',
                  'remarks', 'items']


# --- HR ---

class EmployeeSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Employee
        fields = ['id', 'branch', 'employee_code', 'user', 'first_name', 'last_name', 'full_name', 'email',
                  'phone', 'department', 'designation', 'date_of_joining', 'manager', 'basic_salary', 'is_active']


class AttendanceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Attendance
        fields = ['id', 'employee', 'date', 'check_in', 'check_out', 'status', 'working_hours', 'overtime_hours']


class LeaveRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = LeaveRequest
        fields = ['id', 'employee', 'leave_type', 'start_date', 'end_date', 'days', 'reason', 'status',
                  'approved_by', 'decided_at', 'comments', 'created_at']


class PayrollRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayrollRecord
        exclude = ['updated_by']


# --- Service ---

class ServicePartSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='inventory_item.item_code', read_only=True)

    class Meta:
        model = ServicePart
        fields = ['id', 'inventory_item', 'item_code', 'quantity', 'unit_cost', 'total_cost']


class ServiceRequestSerializer(serializers.ModelSerializer):
    parts = ServicePartSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)

    class Meta:
        model = ServiceRequest
        fields = ['id', 'branch', 'service_number', 'customer', 'customer_name', 'sales_order', 'amc_contract',
                  'service_type', 'priority', 'description', 'location', 'scheduled_date', 'status',
                  'assigned_to', 'assigned_at', 'completion_date', 'labor_hours', 'parts_cost', 'labor_cost',
                  'total_cost', 'customer_rating', 'feedback', 'warranty_number', 'warranty_end_date', 'parts',
                  'created_at']


class AMCContractSerializer(serializers.ModelSerializer):
    class Meta:
        model = AMCContract
        fields = ['id', 'branch', 'contract_number', 'customer', 'start_date', 'end_date', 'amount',
                  'visits_per_year', 'terms', 'status']


# --- Finance ---

class InvoiceLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLineItem
        fields = ['id', 'description', 'quantity', 'unit_price', 'total']


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['id', 'payment_number', 'invoice', 'amount', 'payment_method', 'reference', 'payment_date']


class InvoiceSerializer(serializers.ModelSerializer):
    lines = InvoiceLineItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    pdf_url = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = ['id', 'branch', 'invoice_number', 'customer', 'customer_name', 'sales_order', 'service_request',
                  'invoice_date', 'due_date', 'subtotal', 'discount_amount', 'tax_amount', 'total_amount',
                  'paid_amount', 'balance_amount', 'status', 'notes', 'pdf_url', 'lines', 'payments']

    def get_pdf_url(self, obj):
        if not obj.pdf_path:
            return None
        from django.core.files.storage import default_storage
        return default_storage.url(obj.pdf_path)


# --- Alerts ---

class SLAConfigurationSerializer(serializers.ModelSerializer):
    class Meta:
        model = SLAConfiguration
        fields = ['id', 'module', 'process', 'sla_hours', 'escalation_levels', 'is_active']

    def validate_escalation_levels(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError('escalation_levels must be a list')
        for level in value:
            if not isinstance(level, dict) or 'level' not in level or 'hours_after' not in level:
                raise serializers.ValidationError('each escalation level needs level and hours_after')
            if level.get('channel', 'EMAIL') not in ('EMAIL', 'SMS', 'WHATSAPP', 'APP'):
                raise serializers.ValidationError(f"unknown channel {level.get('channel')}")
        return value


class AlertNotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = AlertNotification
        fields = ['id', 'channel', 'notification_type', 'recipient', 'message', 'status', 'sent_at', 'error',
                  'created_at']


class AlertSerializer(serializers.ModelSerializer):
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Alert
        fields = ['id', 'branch', 'alert_type', 'module', 'process', 'reference_type', 'reference_id', 'title',
                  'message', 'priority', 'status', 'assigned_to', 'due_date', 'escalation_level', 'escalated_at',
                  'acknowledged_at', 'resolved_at', 'is_overdue', 'created_at']


class AlertDetailSerializer(AlertSerializer):
    notifications = AlertNotificationSerializer(many=True, read_only=True)

    class Meta(AlertSerializer.Meta):
        fields = AlertSerializer.Meta.fields + ['notifications']
