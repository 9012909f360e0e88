# datastore/migrations/0001_initial.py

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='StoredDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(
                    help_text="Namespaced key, e.g. 'tfm:v0:students'.",
                    max_length=200,
                    unique=True,
                )),
                ('value', models.TextField(help_text='Serialized JSON document.')),
                ('revision', models.PositiveIntegerField(
                    default=1,
                    help_text='Bumped on every write; used to detect lost updates.',
                )),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Stored Document',
                'verbose_name_plural': 'Stored Documents',
                'ordering': ['key'],
            },
        ),
    ]
