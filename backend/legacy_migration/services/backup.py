"""Snapshot and restore of the legacy enrollment tables.

Rows are dumped with Django's python serializer and stored as JSON text.
Datetimes are written with full precision so a restore is field-for-field.
"""
import datetime
import json
import logging

from django.apps import apps
from django.core import serializers
from django.core.management.color import no_style
from django.core.serializers.json import DjangoJSONEncoder
from django.db import connection, transaction

from legacy_migration import models as mig_models

logger = logging.getLogger(__name__)

# Restore order: referenced tables first.
BACKED_UP_MODELS = (
    'courses.LegacyEnrollment',
    'courses.CourseProgress',
    'courses.Submission',
)


class PreciseJSONEncoder(DjangoJSONEncoder):
    """DjangoJSONEncoder without the millisecond truncation of times."""

    def default(self, o):
        if isinstance(o, (datetime.datetime, datetime.time)):
            return o.isoformat()
        return super().default(o)


def take_backup(run: mig_models.MigrationRun):
    backups = []
    for label in BACKED_UP_MODELS:
        model = apps.get_model(label)
        rows = serializers.serialize('python', model._default_manager.order_by('pk'))
        backups.append(mig_models.MigrationBackup.objects.create(
            run=run,
            label=label,
            payload=json.dumps(rows, cls=PreciseJSONEncoder),
            row_count=len(rows),
        ))
        logger.info('Backed up %s rows of %s for migration run %s', len(rows), label, run.pk)
    return backups


@transaction.atomic
def restore_backup(run: mig_models.MigrationRun) -> int:
    """Write every backed-up row back, keeping primary keys."""
    restored = 0
    restored_models = []
    backups = {b.label: b for b in run.backups.all()}
    for label in BACKED_UP_MODELS:
        backup = backups.get(label)
        if backup is None:
            continue
        for obj in serializers.deserialize('python', json.loads(backup.payload)):
            obj.save()
            restored += 1
        restored_models.append(apps.get_model(label))
        logger.info('Restored %s rows of %s from migration run %s', backup.row_count, label, run.pk)

    statements = connection.ops.sequence_reset_sql(no_style(), restored_models)
    if statements:
        with connection.cursor() as cursor:
            for sql in statements:
                cursor.execute(sql)
    return restored
