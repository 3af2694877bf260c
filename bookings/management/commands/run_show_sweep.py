from django.core.management.base import BaseCommand

from movies.services import ShowStatusService


class Command(BaseCommand):
    help = 'Run one lifecycle sweep: start and end shows whose time has come'

    def handle(self, *args, **options):
        changes = ShowStatusService().tick()

        if changes.is_empty:
            self.stdout.write(self.style.SUCCESS('✅ No shows to start or end'))
            return

        for show_id in changes.to_start:
            self.stdout.write(self.style.WARNING(f'  🎬 Started show {show_id}'))
        for show_id in changes.to_end:
            self.stdout.write(self.style.WARNING(f'  🏁 Ended show {show_id}'))

        self.stdout.write(
            self.style.SUCCESS(
                f'✅ Sweep complete: {len(changes.to_start)} started, {len(changes.to_end)} ended'
            )
        )
