import csv
import json

from django.core.management.base import BaseCommand
from django.db.models import F

from inventory.models import Inventory


class Command(BaseCommand):
    help = 'List active inventory at or below its minimum stock level'

    def add_arguments(self, parser):
        parser.add_argument(
            '--format',
            type=str,
            choices=['table', 'json', 'csv'],
            default='table',
            help='Output format'
        )

    def handle(self, *args, **options):
        rows = (
            Inventory.objects.filter(
                is_active=True,
                min_stock_level__gt=0,
                stock_quantity__lte=F('min_stock_level'),
            )
            .select_related('variant__product')
            .order_by('stock_quantity')
        )

        if options['format'] == 'json':
            self._output_json(rows)
        elif options['format'] == 'csv':
            self._output_csv(rows)
        else:
            self._output_table(rows)

    def _row(self, inventory):
        return {
            'sku_code': inventory.variant.sku_code,
            'product': inventory.variant.product.name,
            'stock_quantity': inventory.stock_quantity,
            'min_stock_level': inventory.min_stock_level,
            'status': inventory.stock_status,
            'location': inventory.location,
        }

    def _output_table(self, rows):
        count = rows.count()
        if not count:
            self.stdout.write(self.style.SUCCESS('No low stock items'))
            return

        self.stdout.write(self.style.WARNING(f'\nLow stock items ({count})\n'))
        self.stdout.write('─' * 80)
        self.stdout.write(f"{'SKU':<20} | {'Product':<30} | {'Stock':>6} | {'Min':>6} | {'Status':<12}")
        self.stdout.write('─' * 80)
        for inventory in rows:
            row = self._row(inventory)
            self.stdout.write(
                f"{row['sku_code'][:20]:<20} | {row['product'][:30]:<30} | "
                f"{row['stock_quantity']:>6} | {row['min_stock_level']:>6} | {row['status']:<12}"
            )
        self.stdout.write('─' * 80)

    def _output_json(self, rows):
        self.stdout.write(json.dumps([self._row(inventory) for inventory in rows], indent=2))

    def _output_csv(self, rows):
        writer = csv.writer(self.stdout)
        writer.writerow(['SKU', 'Product', 'Stock', 'Min Stock', 'Status', 'Location'])
        for inventory in rows:
            row = self._row(inventory)
            writer.writerow([
                row['sku_code'], row['product'], row['stock_quantity'],
                row['min_stock_level'], row['status'], row['location'],
            ])
