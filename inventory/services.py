"""
Pack logic

A variant carrying a 'pack' option with value N is N base units sold
together. Only the base-unit variant (no pack option, or pack value 1) owns
an Inventory row; a pack's available stock is floor(base_stock / N).
"""
import logging

from catalog.models import Option, ProductVariant

logger = logging.getLogger(__name__)


def analyze_pack_options(variant):
    multiplier = 1
    non_pack_ids = []
    is_pack = False

    for option in variant.option_values.all():
        if option.option_type == Option.PACK_TYPE:
            is_pack = True
            try:
                multiplier = int(option.option_value)
            except (TypeError, ValueError):
                logger.warning(f"Variant {variant.sku_code} has non-numeric pack value '{option.option_value}'")
                multiplier = 1
            if multiplier < 1:
                multiplier = 1
        else:
            non_pack_ids.append(option.pk)

    return {
        'is_pack': is_pack,
        'pack_multiplier': multiplier,
        'is_base_unit': multiplier == 1,
        'non_pack_option_ids': sorted(non_pack_ids),
    }


def find_base_unit_variant(variant, analysis=None):
    """
    The active sibling with the same non-pack options and multiplier 1.
    Returns None when the product has no such variant.
    """
    analysis = analysis or analyze_pack_options(variant)
    if analysis['is_base_unit']:
        return variant

    wanted = set(analysis['non_pack_option_ids'])
    siblings = (
        ProductVariant.objects
        .filter(product_id=variant.product_id, is_active=True)
        .exclude(pk=variant.pk)
        .prefetch_related('option_values')
    )
    for sibling in siblings:
        sibling_analysis = analyze_pack_options(sibling)
        if sibling_analysis['is_base_unit'] and set(sibling_analysis['non_pack_option_ids']) == wanted:
            return sibling
    return None


def get_variant_pack_details(variant):
    details = analyze_pack_options(variant)
    details['base_unit_variant'] = find_base_unit_variant(variant, details)
    return details


def get_base_inventory(variant, details=None):
    """Inventory row backing ``variant`` (its own, or its base unit's)"""
    from .models import Inventory

    details = details or get_variant_pack_details(variant)
    base = details['base_unit_variant']
    if base is None:
        return None
    return Inventory.objects.filter(variant=base).first()


def computed_stock(variant, details=None):
    """Units of ``variant`` that can be sold from its base inventory"""
    details = details or get_variant_pack_details(variant)
    inventory = get_base_inventory(variant, details)
    if inventory is None:
        return 0
    return inventory.stock_quantity // details['pack_multiplier']
