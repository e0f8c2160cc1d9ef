from datetime import date
from decimal import Decimal

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone
import logging

logger = logging.getLogger(__name__)


class Branch(models.Model):
    """
    A plant or sales office.

    Branch is the data isolation boundary: every operational record carries a
    ForeignKey to the branch that owns it.
    """
    code = models.CharField(max_length=20, unique=True, help_text="Short code (e.g., 'PUNE')")
    name = models.CharField(max_length=100, help_text="Full branch name (e.g., 'Pune Works')")
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class TimestampedModel(models.Model):
    """Base model with common timestamp fields"""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.CharField(max_length=200, blank=True, default='system')

    class Meta:
        abstract = True


# =============================================================================
# Access control
# =============================================================================

class Role(TimestampedModel):
    """
    Named bundle of permission strings.

    Permission strings have the form MODULE:ACTION:RESOURCE and any segment
    may be '*'. 'SALES:*:*' grants every action on every sales resource.
    """
    name = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True)
    permissions = models.JSONField(default=list, blank=True)
    is_system = models.BooleanField(default=False, help_text="Seeded by init_roles")

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class UserRole(TimestampedModel):
    """Assignment of a role to a user, optionally scoped to one branch."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='erp_roles')
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='assignments')
    branch = models.ForeignKey(
        Branch, on_delete=models.CASCADE, null=True, blank=True,
        related_name='role_assignments', help_text='Empty = all branches'
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['role__name']
        unique_together = [['user', 'role', 'branch']]

    def __str__(self):
        scope = self.branch.code if self.branch else 'ALL'
        return f"{self.user} -> {self.role.name} @ {scope}"


class UserSession(models.Model):
    """Issued API token pair. Revoking the row invalidates both tokens."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='erp_sessions')
    jti = models.CharField(max_length=64, unique=True)
    expires_at = models.DateTimeField()
    revoked_at = models.DateTimeField(null=True, blank=True)
    last_used_at = models.DateTimeField(null=True, blank=True)
    ip = models.CharField(max_length=45, blank=True)
    user_agent = models.CharField(max_length=300, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user} session {self.jti[:8]}"

    @property
    def is_active(self):
        return self.revoked_at is None and self.expires_at > timezone.now()


class DocumentCounter(models.Model):
    """Sequential document numbers per prefix and period (e.g. LD + 202601)."""
    prefix = models.CharField(max_length=20)
    period = models.CharField(max_length=10, blank=True)
    sequence = models.IntegerField(default=0)

    class Meta:
        unique_together = [['prefix', 'period']]

    def __str__(self):
        return f"{self.prefix}{self.period}: {self.sequence}"

    @classmethod
    def next_number(cls, prefix, period='', width=4):
        with transaction.atomic():
            counter, created = cls.objects.select_for_update().get_or_create(
                prefix=prefix,
                period=period,
                defaults={'sequence': 0}
            )
            counter.sequence += 1
            counter.save()
            return f"{prefix}{period}{counter.sequence:0{width}d}"


class AuditLog(TimestampedModel):
    branch = models.ForeignKey(
        Branch, on_delete=models.CASCADE, null=True, blank=True,
        related_name='audit_logs', help_text='Branch this audit log belongs to'
    )
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True)
    object_id = models.CharField(max_length=64, blank=True)
    message = models.TextField(blank=True)
    user_email = models.CharField(max_length=200, blank=True)
    ip = models.CharField(max_length=45, blank=True)
    method = models.CharField(max_length=10, blank=True)
    path = models.CharField(max_length=300, blank=True)
    user_agent = models.CharField(max_length=300, blank=True)
    extra = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.action} {self.object_type} {self.object_id} by {self.user_email}"


# =============================================================================
# Sales
# =============================================================================

class Customer(TimestampedModel):
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='customers')
    customer_code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    gst_number = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.customer_code} {self.name}"


class Lead(TimestampedModel):
    SOURCE_CHOICES = (
        ("META", "Meta"),
        ("GOOGLE", "Google"),
        ("REFERRAL", "Referral"),
        ("DIRECT", "Direct"),
    )
    PRIORITY_CHOICES = (
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("URGENT", "Urgent"),
    )
    STATUS_CHOICES = (
        ("NEW", "New"),
        ("CONTACTED", "Contacted"),
        ("QUALIFIED", "Qualified"),
        ("ESTIMATED", "Estimated"),
        ("CONVERTED", "Converted"),
        ("LOST", "Lost"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='leads')
    lead_number = models.CharField(max_length=20, unique=True)
    customer = models.ForeignKey(
        Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='leads'
    )
    contact_name = models.CharField(max_length=200)
    contact_phone = models.CharField(max_length=20)
    contact_email = models.EmailField(blank=True)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES)
    requirements = models.TextField(blank=True)
    estimated_value = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="MEDIUM")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="NEW")
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='assigned_leads'
    )
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.lead_number} {self.contact_name}"


class SiteMeasurement(TimestampedModel):
    lead = models.ForeignKey(Lead, on_delete=models.CASCADE, related_name='measurements')
    measured_by = models.CharField(max_length=200, blank=True)
    measured_at = models.DateTimeField(default=timezone.now)
    location = models.CharField(max_length=255, blank=True)
    measurements = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-measured_at']

    def __str__(self):
        return f"Measurement for {self.lead.lead_number}"


class Estimate(TimestampedModel):
    STATUS_CHOICES = (
        ("DRAFT", "Draft"),
        ("SENT", "Sent"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
        ("EXPIRED", "Expired"),
    )
    APPROVAL_CHOICES = (
        ("NOT_REQUIRED", "Not required"),
        ("PENDING", "Pending"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='estimates')
    estimate_number = models.CharField(max_length=20, unique=True)
    lead = models.ForeignKey(Lead, on_delete=models.PROTECT, related_name='estimates')
    customer = models.ForeignKey(
        Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='estimates'
    )
    version = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="DRAFT")
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    final_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    valid_until = models.DateField()
    approval_status = models.CharField(max_length=20, choices=APPROVAL_CHOICES, default="NOT_REQUIRED")
    cost_breakdown = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.estimate_number

    @property
    def is_expired(self):
        return self.valid_until < timezone.localdate()


class EstimateItem(models.Model):
    estimate = models.ForeignKey(Estimate, on_delete=models.CASCADE, related_name='items')
    description = models.CharField(max_length=255, blank=True)
    width = models.DecimalField(max_digits=8, decimal_places=3)
    height = models.DecimalField(max_digits=8, decimal_places=3)
    quantity = models.PositiveIntegerField(default=1)
    frame_type = models.CharField(max_length=20, default='STANDARD')
    coating_type = models.CharField(max_length=30, default='POWDER_COATING')
    specifications = models.JSONField(default=dict, blank=True)
    material_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    coating_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    hardware_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    labor_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    overhead_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    profit_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.estimate.estimate_number}: {self.width} x {self.height} x {self.quantity}"


class DiscountApproval(TimestampedModel):
    STATUS_CHOICES = (
        ("PENDING", "Pending"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
    )

    estimate = models.ForeignKey(Estimate, on_delete=models.CASCADE, related_name='discount_approvals')
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='requested_discount_approvals'
    )
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    approval_level = models.PositiveSmallIntegerField()
    approver_role = models.CharField(max_length=50)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    reason = models.TextField(blank=True)
    decided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='decided_discount_approvals'
    )
    decided_at = models.DateTimeField(null=True, blank=True)
    comments = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.estimate.estimate_number} {self.discount_percentage}% L{self.approval_level} {self.status}"


# =============================================================================
# Inventory
# =============================================================================

class Warehouse(TimestampedModel):
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='warehouses')
    code = models.CharField(max_length=20)
    name = models.CharField(max_length=100)
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['code']
        unique_together = [['branch', 'code']]

    def __str__(self):
        return f"{self.code} {self.name}"


class InventoryItem(TimestampedModel):
    CATEGORY_CHOICES = (
        ("RAW_MATERIAL", "Raw material"),
        ("SEMI_FINISHED", "Semi-finished"),
        ("FINISHED_GOOD", "Finished good"),
        ("CONSUMABLE", "Consumable"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='inventory_items')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='items')
    item_code = models.CharField(max_length=50)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    unit = models.CharField(max_length=20, default='NOS')
    barcode = models.CharField(max_length=100, unique=True)
    standard_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    current_stock = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    available_stock = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    reserved_stock = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    reorder_level = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    safety_stock = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    lead_time_days = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['item_code']
        unique_together = [['warehouse', 'item_code']]

    def __str__(self):
        return f"{self.item_code} {self.name}"

    @property
    def is_low_stock(self):
        return self.current_stock <= self.reorder_level


class StockTransaction(models.Model):
    TYPE_CHOICES = (
        ("IN", "Stock in"),
        ("OUT", "Stock out"),
        ("TRANSFER", "Transfer"),
        ("ADJUSTMENT", "Adjustment"),
        ("RESERVATION", "Reservation"),
        ("RELEASE", "Release"),
    )

    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='transactions')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='transactions')
    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_value = models.DecimalField(max_digits=16, decimal_places=2, default=0)
    reference_type = models.CharField(max_length=30, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    batch_number = models.CharField(max_length=50, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    transaction_date = models.DateTimeField(default=timezone.now)
    remarks = models.CharField(max_length=255, blank=True)
    created_by = models.CharField(max_length=200, blank=True)

    class Meta:
        ordering = ['-transaction_date', '-id']

    def __str__(self):
        return f"{self.transaction_type} {self.quantity} {self.inventory_item.item_code}"

    def save(self, *args, **kwargs):
        self.total_value = (Decimal(self.quantity) * Decimal(self.unit_cost or 0)).quantize(Decimal('0.01'))
        super().save(*args, **kwargs)


class StockTransfer(TimestampedModel):
    STATUS_CHOICES = (
        ("IN_TRANSIT", "In transit"),
        ("RECEIVED", "Received"),
        ("CANCELLED", "Cancelled"),
    )

    transfer_number = models.CharField(max_length=20, unique=True)
    from_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='outgoing_transfers')
    to_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='incoming_transfers')
    from_warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='outgoing_transfers')
    to_warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='incoming_transfers')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="IN_TRANSIT")
    requested_by = models.CharField(max_length=200, blank=True)
    received_by = models.CharField(max_length=200, blank=True)
    shipped_at = models.DateTimeField(default=timezone.now)
    received_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.transfer_number} {self.from_branch.code} -> {self.to_branch.code}"


class StockTransferItem(models.Model):
    transfer = models.ForeignKey(StockTransfer, on_delete=models.CASCADE, related_name='items')
    source_item = models.ForeignKey(
        InventoryItem, on_delete=models.PROTECT, related_name='outgoing_transfer_lines'
    )
    destination_item = models.ForeignKey(
        InventoryItem, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='incoming_transfer_lines'
    )
    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    def __str__(self):
        return f"{self.transfer.transfer_number}: {self.quantity} {self.source_item.item_code}"


# =============================================================================
# Procurement
# =============================================================================

class Supplier(TimestampedModel):
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='suppliers')
    supplier_code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    contact_person = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.CharField(max_length=255, blank=True)
    gst_number = models.CharField(max_length=20, blank=True)
    payment_terms_days = models.PositiveIntegerField(default=30)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.supplier_code} {self.name}"


class PurchaseRequisition(TimestampedModel):
    PRIORITY_CHOICES = (
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("URGENT", "Urgent"),
    )
    STATUS_CHOICES = (
        ("PENDING", "Pending"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
        ("CONVERTED", "Converted to PO"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='purchase_requisitions')
    requisition_number = models.CharField(max_length=20, unique=True)
    requested_by = models.CharField(max_length=200, blank=True)
    department = models.CharField(max_length=50, blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="MEDIUM")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    required_date = models.DateField(null=True, blank=True)
    remarks = models.TextField(blank=True)
    decided_by = models.CharField(max_length=200, blank=True)
    decided_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.requisition_number} {self.status}"


class PurchaseRequisitionItem(models.Model):
    requisition = models.ForeignKey(PurchaseRequisition, on_delete=models.CASCADE, related_name='items')
    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name='requisition_lines')
    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    estimated_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    justification = models.CharField(max_length=255, blank=True)

    def __str__(self):
        return f"{self.requisition.requisition_number}: {self.quantity} x {self.inventory_item.item_code}"


class PurchaseOrder(TimestampedModel):
    STATUS_CHOICES = (
        ("PENDING", "Pending approval"),
        ("APPROVED", "Approved"),
        ("SENT", "Sent to supplier"),
        ("PARTIALLY_RECEIVED", "Partially received"),
        ("RECEIVED", "Received"),
        ("CANCELLED", "Cancelled"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='purchase_orders')
    po_number = models.CharField(max_length=20, unique=True)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchase_orders')
    requisition = models.ForeignKey(
        PurchaseRequisition, on_delete=models.SET_NULL, null=True, blank=True, related_name='purchase_orders'
    )
    order_date = models.DateField(default=date.today)
    delivery_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    final_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    terms = models.TextField(blank=True)
    approved_by = models.CharField(max_length=200, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.po_number} {self.supplier.name}"


class PurchaseOrderItem(models.Model):
    order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name='purchase_lines')
    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    received_quantity = models.DecimalField(max_digits=14, decimal_places=3, default=0)

    def __str__(self):
        return f"{self.order.po_number}: {self.quantity} x {self.inventory_item.item_code}"

    @property
    def pending_quantity(self):
        return self.quantity - self.received_quantity


class GoodsReceipt(TimestampedModel):
    """Goods receipt note (GRN) against a purchase order."""
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='goods_receipts')
    grn_number = models.CharField(max_length=20, unique=True)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name='receipts')
    received_by = models.CharField(max_length=200, blank=True)
    received_at = models.DateTimeField(default=timezone.now)
    remarks = models.TextField(blank=True)

    class Meta:
        ordering = ['-received_at', '-id']

    def __str__(self):
        return f"{self.grn_number} ({self.purchase_order.po_number})"


class GoodsReceiptItem(models.Model):
    receipt = models.ForeignKey(GoodsReceipt, on_delete=models.CASCADE, related_name='items')
    order_item = models.ForeignKey(PurchaseOrderItem, on_delete=models.PROTECT, related_name='receipt_lines')
    received_quantity = models.DecimalField(max_digits=14, decimal_places=3)
    accepted_quantity = models.DecimalField(max_digits=14, decimal_places=3)
    rejected_quantity = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    batch_number = models.CharField(max_length=50, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    stock_transaction = models.ForeignKey(
        StockTransaction, on_delete=models.SET_NULL, null=True, blank=True, related_name='receipt_lines'
    )

    def __str__(self):
        return f"{self.receipt.grn_number}: {self.accepted_quantity} x {self.order_item.inventory_item.item_code}"


# =============================================================================
# Products, orders and production
# =============================================================================

class Product(TimestampedModel):
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='products')
    code = models.CharField(max_length=50)
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=50, blank=True)
    unit = models.CharField(max_length=20, default='NOS')
    base_price = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']
        unique_together = [['branch', 'code']]

    def __str__(self):
        return self.name

    def approved_bom(self):
        """Latest APPROVED bill of materials, or None."""
        return self.boms.filter(status='APPROVED').order_by('-version').first()


class BillOfMaterial(TimestampedModel):
    STATUS_CHOICES = (
        ("DRAFT", "Draft"),
        ("APPROVED", "Approved"),
        ("OBSOLETE", "Obsolete"),
    )

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='boms')
    version = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="DRAFT")
    approved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['product_id', '-version']
        unique_together = [['product', 'version']]

    def __str__(self):
        return f"BOM {self.product.code} v{self.version}"


class BOMItem(models.Model):
    bom = models.ForeignKey(BillOfMaterial, on_delete=models.CASCADE, related_name='items')
    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name='bom_lines')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    scrap_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)

    def __str__(self):
        return f"{self.bom}: {self.quantity} {self.inventory_item.item_code}"


class SalesOrder(TimestampedModel):
    STATUS_CHOICES = (
        ("DRAFT", "Draft"),
        ("CONFIRMED", "Confirmed"),
        ("IN_PRODUCTION", "In production"),
        ("READY", "Ready"),
        ("DELIVERED", "Delivered"),
        ("CANCELLED", "Cancelled"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='sales_orders')
    order_number = models.CharField(max_length=20, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='sales_orders')
    estimate = models.ForeignKey(
        Estimate, on_delete=models.SET_NULL, null=True, blank=True, related_name='sales_orders'
    )
    order_date = models.DateField(default=date.today)
    delivery_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="DRAFT")
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    final_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.order_number


class SalesOrderItem(models.Model):
    order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, null=True, blank=True, related_name='order_lines'
    )
    description = models.CharField(max_length=255, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    def __str__(self):
        return f"{self.order.order_number}: {self.quantity} x {self.description or self.product}"


class ProductionOrder(TimestampedModel):
    STATUS_CHOICES = (
        ("PLANNED", "Planned"),
        ("RELEASED", "Released"),
        ("IN_PROGRESS", "In progress"),
        ("COMPLETED", "Completed"),
        ("CANCELLED", "Cancelled"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='production_orders')
    order_number = models.CharField(max_length=20, unique=True)
    sales_order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name='production_orders')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='production_orders')
    bom = models.ForeignKey(BillOfMaterial, on_delete=models.PROTECT, related_name='production_orders')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    priority = models.PositiveSmallIntegerField(default=5)
    start_date = models.DateField()
    end_date = models.DateField()
    buffer_days = models.PositiveSmallIntegerField(default=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PLANNED")

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.order_number


# =============================================================================
# HR
# =============================================================================

class Employee(TimestampedModel):
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='employees')
    employee_code = models.CharField(max_length=20, unique=True)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='employee_profile'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    department = models.CharField(max_length=50)
    designation = models.CharField(max_length=100, blank=True)
    date_of_joining = models.DateField()
    manager = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='reports')
    basic_salary = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['employee_code']

    def __str__(self):
        return f"{self.employee_code} {self.full_name}"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class Attendance(TimestampedModel):
    STATUS_CHOICES = (
        ("PRESENT", "Present"),
        ("ABSENT", "Absent"),
        ("HALF_DAY", "Half day"),
        ("LEAVE", "Leave"),
    )

    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='attendance')
    date = models.DateField()
    check_in = models.DateTimeField(null=True, blank=True)
    check_out = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PRESENT")
    working_hours = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    overtime_hours = models.DecimalField(max_digits=5, decimal_places=2, default=0)

    class Meta:
        ordering = ['-date']
        unique_together = [['employee', 'date']]

    def __str__(self):
        return f"{self.employee.employee_code} {self.date} {self.status}"


class LeaveRequest(TimestampedModel):
    TYPE_CHOICES = (
        ("CASUAL", "Casual"),
        ("SICK", "Sick"),
        ("EARNED", "Earned"),
        ("MATERNITY", "Maternity"),
        ("PATERNITY", "Paternity"),
    )
    STATUS_CHOICES = (
        ("PENDING", "Pending"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
    )

    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='leave_requests')
    leave_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    start_date = models.DateField()
    end_date = models.DateField()
    days = models.PositiveIntegerField()
    reason = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    approved_by = models.CharField(max_length=200, blank=True)
    decided_at = models.DateTimeField(null=True, blank=True)
    comments = models.TextField(blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.employee.employee_code} {self.leave_type} {self.start_date}..{self.end_date}"


class PayrollRecord(TimestampedModel):
    STATUS_CHOICES = (
        ("DRAFT", "Draft"),
        ("PROCESSED", "Processed"),
        ("PAID", "Paid"),
    )

    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='payroll_records')
    month = models.PositiveSmallIntegerField()
    year = models.PositiveSmallIntegerField()
    basic_salary = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    allowances = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    overtime_hours = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    overtime_pay = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    gross_salary = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    pf_deduction = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    esi_deduction = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    professional_tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    other_deductions = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_deductions = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    net_salary = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="DRAFT")
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-year', '-month']
        unique_together = [['employee', 'month', 'year']]

    def __str__(self):
        return f"{self.employee.employee_code} {self.year}-{self.month:02d} {self.status}"


# =============================================================================
# Service
# =============================================================================

class AMCContract(TimestampedModel):
    STATUS_CHOICES = (
        ("ACTIVE", "Active"),
        ("EXPIRED", "Expired"),
        ("CANCELLED", "Cancelled"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='amc_contracts')
    contract_number = models.CharField(max_length=20, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='amc_contracts')
    start_date = models.DateField()
    end_date = models.DateField()
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    visits_per_year = models.PositiveSmallIntegerField(default=4)
    terms = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")

    class Meta:
        ordering = ['-start_date']

    def __str__(self):
        return self.contract_number


class ServiceRequest(TimestampedModel):
    TYPE_CHOICES = (
        ("INSTALLATION", "Installation"),
        ("MAINTENANCE", "Maintenance"),
        ("REPAIR", "Repair"),
        ("WARRANTY_CLAIM", "Warranty claim"),
    )
    PRIORITY_CHOICES = (
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("URGENT", "Urgent"),
    )
    STATUS_CHOICES = (
        ("SCHEDULED", "Scheduled"),
        ("IN_PROGRESS", "In progress"),
        ("COMPLETED", "Completed"),
        ("CANCELLED", "Cancelled"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='service_requests')
    service_number = models.CharField(max_length=20, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='service_requests')
    sales_order = models.ForeignKey(
        SalesOrder, on_delete=models.SET_NULL, null=True, blank=True, related_name='service_requests'
    )
    amc_contract = models.ForeignKey(
        AMCContract, on_delete=models.SET_NULL, null=True, blank=True, related_name='service_requests'
    )
    service_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="MEDIUM")
    description = models.TextField()
    location = models.CharField(max_length=255, blank=True)
    scheduled_date = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="SCHEDULED")
    assigned_to = models.ForeignKey(
        Employee, on_delete=models.SET_NULL, null=True, blank=True, related_name='service_assignments'
    )
    assigned_at = models.DateTimeField(null=True, blank=True)
    completion_date = models.DateTimeField(null=True, blank=True)
    labor_hours = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    parts_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    labor_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_cost = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    customer_rating = models.PositiveSmallIntegerField(null=True, blank=True)
    feedback = models.TextField(blank=True)
    warranty_number = models.CharField(max_length=50, blank=True)
    warranty_end_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.service_number


class ServicePart(models.Model):
    service_request = models.ForeignKey(ServiceRequest, on_delete=models.CASCADE, related_name='parts')
    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name='service_usages')
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_cost = models.DecimalField(max_digits=14, decimal_places=2)
    total_cost = models.DecimalField(max_digits=14, decimal_places=2)

    def __str__(self):
        return f"{self.service_request.service_number}: {self.quantity} {self.inventory_item.item_code}"


# =============================================================================
# Finance
# =============================================================================

class Invoice(TimestampedModel):
    STATUS_CHOICES = (
        ("PENDING", "Pending"),
        ("PARTIAL", "Partially paid"),
        ("PAID", "Paid"),
        ("CANCELLED", "Cancelled"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='invoices')
    invoice_number = models.CharField(max_length=20, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='invoices')
    sales_order = models.ForeignKey(
        SalesOrder, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices'
    )
    service_request = models.ForeignKey(
        ServiceRequest, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices'
    )
    invoice_date = models.DateField(default=date.today)
    due_date = models.DateField()
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    balance_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    pdf_path = models.CharField(max_length=500, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-invoice_date', '-id']

    def __str__(self):
        return self.invoice_number


class InvoiceLineItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='lines')
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    total = models.DecimalField(max_digits=14, decimal_places=2)

    def __str__(self):
        return f"{self.invoice.invoice_number}: {self.description}"


class Payment(TimestampedModel):
    METHOD_CHOICES = (
        ("CASH", "Cash"),
        ("BANK_TRANSFER", "Bank transfer"),
        ("CHEQUE", "Cheque"),
        ("UPI", "UPI"),
        ("CARD", "Card"),
    )

    payment_number = models.CharField(max_length=20, unique=True)
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    payment_method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    reference = models.CharField(max_length=100, blank=True)
    payment_date = models.DateField(default=date.today)

    class Meta:
        ordering = ['-payment_date', '-id']

    def __str__(self):
        return f"{self.payment_number} {self.amount} -> {self.invoice.invoice_number}"


# =============================================================================
# Alerts & SLA
# =============================================================================

class SLAConfiguration(TimestampedModel):
    """
    Hours allowed for a module process plus its escalation ladder.

    escalation_levels is a list of
    {"level": 1, "recipient": "<user id or email>", "channel": "EMAIL", "hours_after": 4}
    where hours_after counts from the alert's due date.
    """
    module = models.CharField(max_length=30)
    process = models.CharField(max_length=50)
    sla_hours = models.PositiveIntegerField()
    escalation_levels = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['module', 'process']
        unique_together = [['module', 'process']]

    def __str__(self):
        return f"{self.module}/{self.process}: {self.sla_hours}h"


class Alert(TimestampedModel):
    PRIORITY_CHOICES = (
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("CRITICAL", "Critical"),
    )
    STATUS_CHOICES = (
        ("ACTIVE", "Active"),
        ("ACKNOWLEDGED", "Acknowledged"),
        ("RESOLVED", "Resolved"),
    )

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, null=True, blank=True, related_name='alerts')
    alert_type = models.CharField(max_length=50)
    module = models.CharField(max_length=30)
    process = models.CharField(max_length=50, blank=True)
    reference_type = models.CharField(max_length=30, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    title = models.CharField(max_length=200)
    message = models.TextField()
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="MEDIUM")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='erp_alerts'
    )
    due_date = models.DateTimeField(null=True, blank=True)
    escalation_level = models.PositiveSmallIntegerField(default=0)
    escalated_at = models.DateTimeField(null=True, blank=True)
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"[{self.priority}] {self.title}"

    @property
    def is_overdue(self):
        return bool(self.due_date and self.status != 'RESOLVED' and self.due_date < timezone.now())


class AlertNotification(models.Model):
    CHANNEL_CHOICES = (
        ("EMAIL", "Email"),
        ("SMS", "SMS"),
        ("WHATSAPP", "WhatsApp"),
        ("APP", "In-app"),
    )
    TYPE_CHOICES = (
        ("ALERT", "Alert"),
        ("ESCALATION", "Escalation"),
        ("REMINDER", "Reminder"),
    )
    STATUS_CHOICES = (
        ("PENDING", "Pending"),
        ("SENT", "Sent"),
        ("FAILED", "Failed"),
    )

    alert = models.ForeignKey(Alert, on_delete=models.CASCADE, related_name='notifications')
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES)
    notification_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="ALERT")
    recipient = models.CharField(max_length=200)
    message = models.TextField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    sent_at = models.DateTimeField(null=True, blank=True)
    error = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.notification_type} {self.channel} -> {self.recipient} ({self.status})"
