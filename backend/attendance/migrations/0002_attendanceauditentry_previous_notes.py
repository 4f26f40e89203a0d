"""Keep the previous notes on attendance audit entries.

Generated manually. Run `python manage.py migrate` to apply.
"""
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('attendance', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='attendanceauditentry',
            name='previous_notes',
            field=models.TextField(blank=True, default=''),
        ),
    ]
