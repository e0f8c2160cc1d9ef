from django.urls import path
from . import views
from . import sales_views
from . import inventory_views
from . import hr_views
from . import service_views
from . import finance_views
from . import alert_views
from . import bi_views
from . import procurement_views

urlpatterns = [
    path('health/', views.health_check, name='health_check'),

    # Administration
    path('branches/', views.branch_list, name='branches'),
    path('branches/<int:branch_id>/', views.branch_detail, name='branch_detail'),
    path('roles/', views.role_list, name='roles'),
    path('role-assignments/', views.role_assignments, name='role_assignments'),
    path('role-assignments/<int:assignment_id>/', views.role_assignment_revoke, name='role_assignment_revoke'),
    path('users/', views.user_list, name='users'),
    path('audit/', views.audit_logs, name='audit_logs'),

    # Sales
    path('customers/', sales_views.customer_list, name='customers'),
    path('customers/<int:customer_id>/', sales_views.customer_detail, name='customer_detail'),
    path('leads/', sales_views.lead_list, name='leads'),
    path('leads/<int:lead_id>/', sales_views.lead_detail, name='lead_detail'),
    path('leads/<int:lead_id>/status/', sales_views.lead_status, name='lead_status'),
    path('leads/<int:lead_id>/measurements/', sales_views.lead_measurements, name='lead_measurements'),
    path('estimates/', sales_views.estimate_list, name='estimates'),
    path('estimates/<int:estimate_id>/', sales_views.estimate_detail, name='estimate_detail'),
    path('estimates/<int:estimate_id>/status/', sales_views.estimate_status, name='estimate_status'),
    path('estimates/<int:estimate_id>/discount/', sales_views.estimate_discount, name='estimate_discount'),
    path('discount-approvals/', sales_views.discount_approval_list, name='discount_approvals'),
    path('discount-approvals/<int:approval_id>/decide/', sales_views.discount_approval_decide,
         name='discount_approval_decide'),
    path('products/', sales_views.product_list, name='products'),
    path('products/<int:product_id>/boms/', sales_views.product_boms, name='product_boms'),
    path('boms/<int:bom_id>/approve/', sales_views.bom_approve, name='bom_approve'),
    path('sales-orders/', sales_views.sales_order_list, name='sales_orders'),
    path('sales-orders/<int:order_id>/', sales_views.sales_order_detail, name='sales_order_detail'),
    path('sales-orders/<int:order_id>/status/', sales_views.sales_order_status, name='sales_order_status'),
    path('sales-orders/<int:order_id>/invoice/', finance_views.invoice_from_sales_order,
         name='sales_order_invoice'),
    path('sales/analytics/', sales_views.sales_analytics, name='sales_analytics'),

    # Inventory
    path('warehouses/', inventory_views.warehouse_list, name='warehouses'),
    path('inventory/items/', inventory_views.inventory_item_list, name='inventory_items'),
    path('inventory/items/<int:item_id>/', inventory_views.inventory_item_detail, name='inventory_item_detail'),
    path('inventory/items/<int:item_id>/cycle-count/', inventory_views.cycle_count, name='cycle_count'),
    path('inventory/items/<int:item_id>/adjust/', inventory_views.stock_adjustment, name='stock_adjustment'),
    path('inventory/transactions/', inventory_views.stock_transaction_list, name='stock_transactions'),
    path('inventory/reserve/', inventory_views.reserve_materials, name='reserve_materials'),
    path('inventory/release/', inventory_views.release_materials, name='release_materials'),
    path('inventory/allocate/', inventory_views.allocate_materials, name='allocate_materials'),
    path('inventory/valuation/', inventory_views.inventory_valuation, name='inventory_valuation'),
    path('inventory/valuation/pdf/', inventory_views.inventory_valuation_pdf, name='inventory_valuation_pdf'),
    path('inventory/aging/', inventory_views.stock_aging_report, name='stock_aging'),
    path('inventory/expiring/', inventory_views.expiring_batches, name='expiring_batches'),
    path('inventory/reorder-check/', inventory_views.reorder_check, name='reorder_check'),
    path('inventory/transfers/', inventory_views.stock_transfer_list, name='stock_transfers'),
    path('inventory/transfers/<int:transfer_id>/', inventory_views.stock_transfer_detail,
         name='stock_transfer_detail'),
    path('inventory/transfers/<int:transfer_id>/receive/', inventory_views.stock_transfer_receive,
         name='stock_transfer_receive'),
    path('inventory/transfers/<int:transfer_id>/cancel/', inventory_views.stock_transfer_cancel,
         name='stock_transfer_cancel'),

    # Procurement
    path('procurement/suppliers/', procurement_views.supplier_list, name='suppliers'),
    path('procurement/requisitions/', procurement_views.requisition_list, name='requisitions'),
    path('procurement/requisitions/from-low-stock/', procurement_views.requisition_from_low_stock,
         name='requisition_from_low_stock'),
    path('procurement/requisitions/<int:requisition_id>/decide/', procurement_views.requisition_decide,
         name='requisition_decide'),
    path('procurement/purchase-orders/', procurement_views.purchase_order_list, name='purchase_orders'),
    path('procurement/purchase-orders/<int:order_id>/', procurement_views.purchase_order_detail,
         name='purchase_order_detail'),
    path('procurement/purchase-orders/<int:order_id>/approve/', procurement_views.purchase_order_approve,
         name='purchase_order_approve'),
    path('procurement/purchase-orders/<int:order_id>/send/', procurement_views.purchase_order_send,
         name='purchase_order_send'),
    path('procurement/purchase-orders/<int:order_id>/cancel/', procurement_views.purchase_order_cancel,
         name='purchase_order_cancel'),
    path('procurement/purchase-orders/<int:order_id>/receipts/', procurement_views.goods_receipt_list,
         name='goods_receipts'),
    path('procurement/goods-receipts/<int:receipt_id>/', procurement_views.goods_receipt_detail,
         name='goods_receipt_detail'),
    path('procurement/summary/', procurement_views.procurement_summary, name='procurement_summary'),

    # HR
    path('employees/', hr_views.employee_list, name='employees'),
    path('employees/<int:employee_id>/', hr_views.employee_detail, name='employee_detail'),
    path('employees/<int:employee_id>/attendance/', hr_views.attendance_list, name='attendance'),
    path('employees/<int:employee_id>/attendance/summary/', hr_views.attendance_summary,
         name='attendance_summary'),
    path('employees/<int:employee_id>/leave-balance/', hr_views.leave_balance, name='leave_balance'),
    path('leave-requests/', hr_views.leave_request_list, name='leave_requests'),
    path('leave-requests/<int:leave_id>/decide/', hr_views.leave_request_decide, name='leave_request_decide'),
    path('payroll/', hr_views.payroll_list, name='payroll'),
    path('payroll/calculate/', hr_views.payroll_calculate, name='payroll_calculate'),
    path('payroll/<int:record_id>/process/', hr_views.payroll_process, name='payroll_process'),

    # Employee portal
    path('me/profile/', hr_views.my_profile, name='my_profile'),
    path('me/attendance/', hr_views.my_attendance, name='my_attendance'),
    path('me/leave-requests/', hr_views.my_leave_requests, name='my_leave_requests'),
    path('me/payslips/', hr_views.my_payslips, name='my_payslips'),

    # Service
    path('service-requests/', service_views.service_request_list, name='service_requests'),
    path('service-requests/<int:request_id>/', service_views.service_request_detail,
         name='service_request_detail'),
    path('service-requests/<int:request_id>/assign/', service_views.service_request_assign,
         name='service_request_assign'),
    path('service-requests/<int:request_id>/complete/', service_views.service_request_complete,
         name='service_request_complete'),
    path('service-requests/<int:request_id>/cancel/', service_views.service_request_cancel,
         name='service_request_cancel'),
    path('service-requests/<int:request_id>/invoice/', service_views.service_request_invoice,
         name='service_request_invoice'),
    path('service/metrics/', service_views.service_metrics, name='service_metrics'),
    path('warranty/<str:warranty_number>/', service_views.warranty_lookup, name='warranty_lookup'),
    path('amc-contracts/', service_views.amc_contract_list, name='amc_contracts'),

    # Finance
    path('invoices/', finance_views.invoice_list, name='invoices'),
    path('invoices/<int:invoice_id>/', finance_views.invoice_detail, name='invoice_detail'),
    path('invoices/<int:invoice_id>/cancel/', finance_views.invoice_cancel, name='invoice_cancel'),
    path('invoices/<int:invoice_id>/pdf/', finance_views.invoice_pdf, name='invoice_pdf'),
    path('payments/', finance_views.payment_list, name='payments'),
    path('finance/ar-aging/', finance_views.accounts_receivable_aging, name='ar_aging'),

    # Alerts
    path('alerts/', alert_views.alert_list, name='alerts'),
    path('alerts/dashboard/', alert_views.alert_dashboard, name='alert_dashboard'),
    path('alerts/sla-metrics/', alert_views.sla_metrics, name='sla_metrics'),
    path('alerts/<int:alert_id>/', alert_views.alert_detail, name='alert_detail'),
    path('alerts/<int:alert_id>/acknowledge/', alert_views.alert_acknowledge, name='alert_acknowledge'),
    path('alerts/<int:alert_id>/resolve/', alert_views.alert_resolve, name='alert_resolve'),
    path('alerts/<int:alert_id>/notify/', alert_views.alert_notify, name='alert_notify'),
    path('sla-configurations/', alert_views.sla_configuration_list, name='sla_configurations'),
    path('sla-configurations/<int:config_id>/', alert_views.sla_configuration_detail,
         name='sla_configuration_detail'),

    # Business intelligence
    path('bi/my-dashboard/', bi_views.my_dashboard, name='my_dashboard'),
    path('bi/<str:name>/', bi_views.dashboard, name='dashboard'),
]
