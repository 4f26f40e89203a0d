import signal
import threading

from django.conf import settings
from django.core.management.base import BaseCommand

from workflows.services.scheduler import AttendanceWorkflow


class Command(BaseCommand):
    help = 'Create unmarked attendance records, flag missing attendance and recompute progress.'

    def add_arguments(self, parser):
        parser.add_argument('--loop', action='store_true', help='Keep running every --interval seconds until interrupted.')
        parser.add_argument('--interval', type=int, default=None, help='Seconds between runs when looping.')
        parser.add_argument('--full', action='store_true', help='Recompute every member of every active promotion.')
        parser.add_argument('--alerts', action='store_true', help='Also evaluate low-attendance and absence-streak alerts.')
        parser.add_argument('--trends', action='store_true', help='Also compare recent attendance trends and notify admins of a sharp decline.')

    def _print_report(self, report):
        self.stdout.write(
            f'Run finished at {report.finished_at}: records created={report.records_created} '
            f'flagged={len(report.flagged)} notifications={report.notifications_sent} '
            f'snapshots recomputed={report.snapshots_recomputed}'
        )
        for alert in report.alerts:
            self.stdout.write(f'Alert: {alert}')
        for trend in report.trends:
            if trend['is_decreasing']:
                self.stdout.write(f'Declining attendance: {trend}')
        for err in report.errors:
            self.stderr.write(f'Error: {err}')

    def handle(self, *args, **options):
        workflow = AttendanceWorkflow(
            full_recompute=options['full'], evaluate_alerts=options['alerts'], analyze_trends=options['trends'],
        )

        if not options['loop']:
            self._print_report(workflow.run_once())
            return

        interval = options['interval'] or settings.ATTENDANCE_WORKFLOW_INTERVAL_SECONDS
        stop_event = threading.Event()

        def _stop(signum, frame):
            self.stdout.write('Stopping attendance workflow...')
            stop_event.set()

        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)
        runs = workflow.run_forever(interval, stop_event)
        self.stdout.write(f'Done. Runs completed: {runs}')
