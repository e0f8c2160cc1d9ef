"""
Estimate pricing: fabrication cost of steel doors/windows from size and specs.

Pure functions, no database access. Every monetary value is a Decimal rounded
half-up to two places on the way out; intermediate values keep full precision.

Worked example (2 x 3 STANDARD frame, powder coating, standard hardware, qty 2):
    area 6 -> material 1500, coating 480, hardware 1000, labor 900,
    overhead 360, total cost 4240, profit 848, line total 5088, unit 2544
"""
from decimal import Decimal

from ..exceptions import ValidationFailed
from ..utils import money


FRAME_RATES = {  # per sq unit
    'STANDARD': Decimal('250'),
    'PREMIUM': Decimal('350'),
    'LUXURY': Decimal('500'),
    'CUSTOM': Decimal('600'),
}

COATING_RATES = {  # per sq unit
    'POWDER_COATING': Decimal('80'),
    'ANODIZING': Decimal('120'),
    'WOOD_FINISH': Decimal('150'),
    'SPECIAL_COATING': Decimal('200'),
}

LOCK_COSTS = {
    'STANDARD': Decimal('500'),
    'MULTI_POINT': Decimal('1200'),
    'SMART_LOCK': Decimal('2500'),
    'SECURITY_LOCK': Decimal('1800'),
}

HINGE_COSTS = {
    'STANDARD': Decimal('200'),
    'HEAVY_DUTY': Decimal('400'),
    'CONCEALED': Decimal('600'),
    'ADJUSTABLE': Decimal('500'),
}

HANDLE_COSTS = {
    'STANDARD': Decimal('300'),
    'DESIGNER': Decimal('800'),
    'PREMIUM': Decimal('1200'),
    'CUSTOM': Decimal('1500'),
}

SECURITY_FEATURE_COST = Decimal('500')
ACCESSORY_COST = Decimal('200')

BASE_LABOR_RATE = Decimal('150')  # per sq unit
OVERHEAD_RATE = Decimal('0.15')   # of material + labor
PROFIT_RATE = Decimal('0.20')     # of total cost
MAX_COMPLEXITY = Decimal('2.0')

DEFAULT_FRAME = 'STANDARD'
DEFAULT_COATING = 'POWDER_COATING'


def _positive(value, field):
    try:
        number = Decimal(str(value))
    except Exception:
        raise ValidationFailed(f"{field} must be a number")
    if number <= 0:
        raise ValidationFailed(f"{field} must be greater than zero")
    return number


def hardware_cost(hardware=None):
    hardware = hardware or {}
    cost = LOCK_COSTS.get(hardware.get('lock_type'), LOCK_COSTS['STANDARD'])
    cost += HINGE_COSTS.get(hardware.get('hinge_type'), HINGE_COSTS['STANDARD'])
    cost += HANDLE_COSTS.get(hardware.get('handle_type'), HANDLE_COSTS['STANDARD'])
    cost += SECURITY_FEATURE_COST * len(hardware.get('security_features') or [])
    cost += ACCESSORY_COST * len(hardware.get('accessories') or [])
    return cost


def labor_complexity(area, coating_type, lock_type, custom_features=None):
    """Labor multiplier from 1.0, capped at 2.0."""
    complexity = Decimal('1.0')
    if area > 10:
        complexity += Decimal('0.2')
    if area > 20:
        complexity += Decimal('0.3')
    if coating_type in ('WOOD_FINISH', 'SPECIAL_COATING'):
        complexity += Decimal('0.3')
    if lock_type in ('SMART_LOCK', 'MULTI_POINT'):
        complexity += Decimal('0.2')
    complexity += Decimal('0.1') * len(custom_features or [])
    return min(complexity, MAX_COMPLEXITY)


def calculate_item_pricing(item):
    """
    Price one estimate line.

    Args:
        item: dict with width, height, quantity and optional frame_type,
            coating_type, hardware {lock_type, hinge_type, handle_type,
            security_features, accessories}, custom_features, description

    Returns:
        dict with the normalized specs plus material_cost, coating_cost,
        hardware_cost, labor_cost, overhead_cost, total_cost, profit_amount,
        total_price (whole line) and unit_price (total_price / quantity)
    """
    width = _positive(item.get('width'), 'width')
    height = _positive(item.get('height'), 'height')
    quantity = _positive(item.get('quantity', 1), 'quantity')

    frame_type = item.get('frame_type') or DEFAULT_FRAME
    coating_type = item.get('coating_type') or DEFAULT_COATING
    hardware = item.get('hardware') or {}
    custom_features = item.get('custom_features') or []

    area = width * height
    material = area * FRAME_RATES.get(frame_type, FRAME_RATES[DEFAULT_FRAME])
    coating = area * COATING_RATES.get(coating_type, COATING_RATES[DEFAULT_COATING])
    hardware_total = hardware_cost(hardware)
    complexity = labor_complexity(area, coating_type, hardware.get('lock_type'), custom_features)
    labor = area * BASE_LABOR_RATE * complexity
    overhead = (material + labor) * OVERHEAD_RATE

    total_cost = material + coating + hardware_total + labor + overhead
    profit = total_cost * PROFIT_RATE
    # The line is priced once; unit price is derived from the line total
    total_price = total_cost + profit

    return {
        'description': item.get('description', ''),
        'width': width,
        'height': height,
        'quantity': int(quantity),
        'frame_type': frame_type,
        'coating_type': coating_type,
        'specifications': {
            'hardware': hardware,
            'custom_features': custom_features,
        },
        'area': area,
        'complexity': complexity,
        'material_cost': money(material),
        'coating_cost': money(coating),
        'hardware_cost': money(hardware_total),
        'labor_cost': money(labor),
        'overhead_cost': money(overhead),
        'total_cost': money(total_cost),
        'profit_amount': money(profit),
        'total_price': money(total_price),
        'unit_price': money(total_price / quantity),
    }


def calculate_cost_breakdown(items, discount_amount=0, tax_amount=0):
    """Sum priced lines into an estimate-level breakdown."""
    fields = ('material_cost', 'coating_cost', 'hardware_cost', 'labor_cost', 'overhead_cost', 'profit_amount')
    totals = {f"total_{f}": sum((Decimal(i[f]) for i in items), Decimal('0')) for f in fields}
    subtotal = sum((Decimal(i['total_price']) for i in items), Decimal('0'))
    discount = Decimal(str(discount_amount or 0))
    tax = Decimal(str(tax_amount or 0))

    breakdown = {k: money(v) for k, v in totals.items()}
    breakdown.update({
        'subtotal': money(subtotal),
        'discount_amount': money(discount),
        'tax_amount': money(tax),
        'final_amount': money(subtotal - discount + tax),
    })
    return breakdown
