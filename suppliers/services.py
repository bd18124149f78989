import logging

from django.db import transaction
from django.utils import timezone

from core.exceptions import BadRequest
from inventory.models import Inventory
from inventory.services import get_variant_pack_details
from .models import Purchase

logger = logging.getLogger(__name__)


@transaction.atomic
def apply_purchase_completion(purchase):
    """
    Credit inventory for a completed purchase, once.
    Pack purchases are converted to base units on the base-unit variant.
    Returns the number of base units added (0 when already applied).
    """
    purchase = Purchase.objects.select_for_update().get(pk=purchase.pk)
    if purchase.status != Purchase.STATUS_COMPLETED or purchase.inventory_updated_on_completion:
        return 0

    details = get_variant_pack_details(purchase.variant)
    base_variant = details['base_unit_variant']
    if base_variant is None:
        raise BadRequest(
            f"No base-unit variant found for {purchase.variant.sku_code}; cannot receive stock.",
            code='no_base_variant'
        )

    base_units = purchase.quantity * details['pack_multiplier']
    inventory, created = Inventory.objects.select_for_update().get_or_create(variant=base_variant)
    if created:
        logger.info(f"Created inventory for {base_variant.sku_code} on purchase {purchase.purchase_order_number}")
    inventory.add_stock(base_units)

    purchase.inventory_updated_on_completion = True
    if not purchase.received_date:
        purchase.received_date = timezone.now()
    purchase.save(update_fields=['inventory_updated_on_completion', 'received_date', 'updated_at'])

    logger.info(
        f"Purchase {purchase.purchase_order_number}: +{base_units} units on {base_variant.sku_code} "
        f"(stock now {inventory.stock_quantity})"
    )
    return base_units
