from django.core.management.base import BaseCommand

from mailing.services import send_due_emails


class Command(BaseCommand):
    help = 'Send scheduled admin emails whose send time has passed'

    def handle(self, *args, **options):
        count = send_due_emails()
        self.stdout.write(self.style.SUCCESS(f"Processed {count} scheduled emails"))
