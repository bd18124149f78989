from django.core.management.base import BaseCommand

from coupons.services import expire_coupons


class Command(BaseCommand):
    help = 'Deactivate expired user coupons and campaigns past valid_until'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report what would be deactivated'
        )

    def handle(self, *args, **options):
        result = expire_coupons(dry_run=options['dry_run'])

        verb = 'Would deactivate' if options['dry_run'] else 'Deactivated'
        self.stdout.write(
            self.style.SUCCESS(
                f"{verb} {result['coupons']} user coupons and {result['campaigns']} campaigns"
            )
        )
