from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db.models import Count, Sum, F
from django.utils import timezone

User = get_user_model()


class Command(BaseCommand):
    help = 'Show store statistics and system health'

    def add_arguments(self, parser):
        parser.add_argument(
            '--detailed',
            action='store_true',
            help='Show per-status breakdowns'
        )
        parser.add_argument(
            '--health',
            action='store_true',
            help='Show system health check'
        )

    def handle(self, *args, **options):
        if options['health']:
            self._show_system_health()
            return

        self._show_store_stats(options['detailed'])

    def _show_system_health(self):
        """Database, cache and SLA checks"""
        from django.db import connection
        from django.core.cache import cache
        from support.services import check_sla_breaches, overdue_tickets

        self.stdout.write(self.style.SUCCESS('\nSYSTEM HEALTH CHECK\n'))

        healthy = True

        # Database connection
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            self.stdout.write('Database: Connected')
        except Exception as e:
            healthy = False
            self.stdout.write(self.style.ERROR(f'Database: Error - {e}'))

        # Cache
        try:
            cache.set('health_check', 'ok', 1)
            if cache.get('health_check') == 'ok':
                self.stdout.write('Cache: Working')
            else:
                healthy = False
                self.stdout.write(self.style.WARNING('Cache: Issues detected'))
        except Exception as e:
            healthy = False
            self.stdout.write(self.style.ERROR(f'Cache: Error - {e}'))

        if not healthy:
            self.stdout.write(self.style.ERROR('\nSystem is unhealthy'))
            return

        # Support SLA
        flagged = check_sla_breaches()
        overdue = overdue_tickets().count()
        self.stdout.write(f'\nSupport tickets overdue: {overdue} ({flagged} newly flagged)')
        if overdue:
            self.stdout.write(self.style.WARNING('Some tickets are past their SLA'))

        self.stdout.write(self.style.SUCCESS('\nSystem is healthy'))

    def _show_store_stats(self, detailed):
        from catalog.models import Product
        from coupons.models import CouponCampaign
        from inventory.models import Inventory
        from orders.models import Order
        from support.models import SupportTicket
        from wallets.models import Wallet

        now = timezone.now()

        self.stdout.write(self.style.SUCCESS('\nSTORE STATISTICS\n'))

        self.stdout.write(f'Users: {User.objects.count():,} total')
        self.stdout.write(
            f'   • New last 7 days: '
            f'{User.objects.filter(date_joined__gte=now - timezone.timedelta(days=7)).count():,}'
        )
        self.stdout.write(f'Products: {Product.objects.filter(is_active=True).count():,} active')

        revenue = Order.objects.filter(payment_status=Order.PAYMENT_PAID).aggregate(
            total=Sum('grand_total'))['total'] or 0
        self.stdout.write(f'Orders: {Order.objects.count():,} total, revenue {revenue}')

        low_stock = Inventory.objects.filter(
            is_active=True, min_stock_level__gt=0, stock_quantity__lte=F('min_stock_level')
        ).count()
        self.stdout.write(f'Low stock items: {low_stock:,}')

        open_tickets = SupportTicket.objects.exclude(status__in=SupportTicket.FINISHED_STATUSES).count()
        self.stdout.write(f'Open support tickets: {open_tickets:,}')

        active_campaigns = CouponCampaign.objects.filter(
            is_active=True, valid_from__lte=now, valid_until__gte=now
        ).count()
        self.stdout.write(f'Active coupon campaigns: {active_campaigns:,}')

        wallet_total = Wallet.objects.aggregate(total=Sum('balance'))['total'] or 0
        self.stdout.write(f'Wallet balances: {wallet_total}')

        if detailed:
            self.stdout.write('\n' + '─' * 60)
            self._breakdown('Orders by status', Order.objects.values('order_status'), 'order_status')
            self._breakdown('Orders by payment', Order.objects.values('payment_status'), 'payment_status')
            self._breakdown('Tickets by status', SupportTicket.objects.values('status'), 'status')
            self._breakdown('Wallets by status', Wallet.objects.values('status'), 'status')

        self.stdout.write('\n' + '═' * 60)
        if not detailed:
            self.stdout.write('Tip: Use --detailed flag for more information')

    def _breakdown(self, title, values, field):
        self.stdout.write(f'\n{title}:')
        rows = values.annotate(count=Count('id')).order_by('-count')
        if not rows:
            self.stdout.write('  none')
        for row in rows:
            self.stdout.write(f'  • {row[field]}: {row["count"]:,}')
