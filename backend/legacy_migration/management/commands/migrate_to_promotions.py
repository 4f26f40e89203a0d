from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from legacy_migration.services import migrator
from legacy_migration.services.analysis import analyze
from planner import exceptions as errors


class Command(BaseCommand):
    help = 'Migrate legacy course enrollments to promotions (analyze, execute or roll back).'

    def add_arguments(self, parser):
        mode = parser.add_mutually_exclusive_group()
        mode.add_argument('--dry-run', action='store_true', help='Only print the candidate promotions (default).')
        mode.add_argument('--execute', action='store_true', help='Back up the legacy tables and run the migration.')
        mode.add_argument('--rollback', action='store_true', help='Restore the legacy tables from the last backup.')
        parser.add_argument('--actor', help='Username of the admin/staff user performing the migration.')
        parser.add_argument('--no-input', action='store_true', dest='no_input', help='Do not ask for confirmation.')

    def _confirm(self, options, question):
        if options['no_input']:
            return True
        answer = input(f'{question} Type "yes" to continue: ')
        return answer.strip().lower() == 'yes'

    def _print_analysis(self, report):
        self.stdout.write(
            f'Legacy enrollments: {report.total_enrollments} '
            f'(students={report.total_students}, courses={report.total_courses})'
        )
        self.stdout.write(f'Candidate promotions: {len(report.candidates)}')
        for cand in report.candidates:
            self.stdout.write(
                f'  {cand.name}: {len(cand.student_ids)} students, {len(cand.course_ids)} courses, '
                f'{len(cand.enrollment_ids)} enrollments'
            )
        for warning in report.warnings:
            self.stderr.write(f'Warning: {warning}')

    def handle(self, *args, **options):
        if options['rollback']:
            if not self._confirm(options, 'This restores the legacy tables and deletes migrated promotions.'):
                self.stdout.write('Rollback cancelled.')
                return
            run = migrator.rollback()
            if run is None:
                self.stdout.write('Nothing to roll back.')
            else:
                self.stdout.write(f'Done. Migration run {run.pk} rolled back: {run.report.get("rollback")}')
            return

        if not options['execute']:
            self._print_analysis(analyze())
            self.stdout.write('Dry run only; nothing was changed.')
            return

        if not options['actor']:
            raise CommandError('--actor is required with --execute')
        User = get_user_model()
        try:
            actor = User.objects.get(username=options['actor'])
        except User.DoesNotExist:
            raise CommandError(f'Unknown user {options["actor"]!r}')

        self._print_analysis(analyze())
        if not self._confirm(options, 'This migrates the enrollments above.'):
            self.stdout.write('Migration cancelled.')
            return

        try:
            run = migrator.execute(actor)
        except errors.PlanningError as exc:
            raise CommandError(exc.message)

        summary = run.report.get('summary', {})
        for result in run.report.get('results', []):
            self.stdout.write(
                f'  {result["name"]}: promotion={result["promotion_id"]} '
                f'migrated={result["migrated"]} failed={result["failed"]}'
            )
        for rec in run.records.filter(status=migrator.RecordStatus.FAILED):
            self.stderr.write(f'Failed {rec.enrollment_ref}: {rec.error}')
        self.stdout.write(f'Done. Migration run {run.pk} ({run.status}): {summary}')
