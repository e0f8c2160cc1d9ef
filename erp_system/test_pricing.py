"""
Tests for estimate pricing.

Pure functions, no database.
"""
from decimal import Decimal

import pytest

from erp_system.exceptions import ValidationFailed
from erp_system.services.pricing import (
    calculate_cost_breakdown,
    calculate_item_pricing,
    hardware_cost,
    labor_complexity,
)


def test_standard_frame_worked_example():
    result = calculate_item_pricing({'width': 2, 'height': 3, 'quantity': 2})

    assert result['area'] == Decimal('6')
    assert result['material_cost'] == Decimal('1500.00')
    assert result['coating_cost'] == Decimal('480.00')
    assert result['hardware_cost'] == Decimal('1000.00')
    assert result['labor_cost'] == Decimal('900.00')
    assert result['overhead_cost'] == Decimal('360.00')
    assert result['total_cost'] == Decimal('4240.00')
    assert result['profit_amount'] == Decimal('848.00')
    assert result['total_price'] == Decimal('5088.00')
    assert result['unit_price'] == Decimal('2544.00')
    assert result['quantity'] == 2


def test_unknown_frame_and_coating_fall_back_to_defaults():
    default = calculate_item_pricing({'width': 2, 'height': 3, 'quantity': 1})
    unknown = calculate_item_pricing({
        'width': 2, 'height': 3, 'quantity': 1,
        'frame_type': 'TITANIUM', 'coating_type': 'GOLD_LEAF',
    })
    assert unknown['material_cost'] == default['material_cost']
    assert unknown['coating_cost'] == default['coating_cost']


@pytest.mark.parametrize('field', ['width', 'height', 'quantity'])
def test_non_positive_dimensions_rejected(field):
    item = {'width': 2, 'height': 3, 'quantity': 1}
    item[field] = 0
    with pytest.raises(ValidationFailed):
        calculate_item_pricing(item)


def test_non_numeric_width_rejected():
    with pytest.raises(ValidationFailed):
        calculate_item_pricing({'width': 'wide', 'height': 3})


def test_hardware_cost_options():
    assert hardware_cost() == Decimal('1000')
    assert hardware_cost({
        'lock_type': 'SMART_LOCK',
        'security_features': ['ALARM', 'SENSOR'],
        'accessories': ['CLOSER'],
    }) == Decimal('2500') + Decimal('200') + Decimal('300') + Decimal('1000') + Decimal('200')


def test_labor_complexity_is_capped():
    assert labor_complexity(Decimal('6'), 'POWDER_COATING', 'STANDARD') == Decimal('1.0')
    assert labor_complexity(Decimal('15'), 'POWDER_COATING', None) == Decimal('1.2')
    assert labor_complexity(
        Decimal('25'), 'WOOD_FINISH', 'SMART_LOCK', ['ARCH', 'GRILL', 'GLASS']
    ) == Decimal('2.0')


def test_cost_breakdown_totals():
    lines = [
        calculate_item_pricing({'width': 2, 'height': 3, 'quantity': 2}),
        calculate_item_pricing({'width': 2, 'height': 3, 'quantity': 1}),
    ]
    breakdown = calculate_cost_breakdown(lines, discount_amount=Decimal('1000'), tax_amount=Decimal('500'))

    assert breakdown['total_material_cost'] == Decimal('3000.00')
    assert breakdown['total_profit_amount'] == Decimal('1696.00')
    assert breakdown['subtotal'] == Decimal('10176.00')
    assert breakdown['discount_amount'] == Decimal('1000.00')
    assert breakdown['final_amount'] == Decimal('9676.00')
