from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Descriptor',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('descriptor', models.TextField(help_text='Output script descriptor, including its checksum')),
                ('m_required', models.PositiveIntegerField()),
                ('n_total', models.PositiveIntegerField()),
                ('first_address', models.CharField(blank=True, max_length=100, null=True)),
                ('scope', models.CharField(db_index=True, default='0', max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='ExtendedKey',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('label', models.CharField(max_length=255)),
                ('xpub', models.CharField(db_index=True, help_text='The extended public key exactly as it was registered', max_length=512)),
                ('scope', models.CharField(db_index=True, default='0', help_text='Opaque partition token isolating unrelated groups of users', max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='PsbtRecord',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('psbt_data', models.TextField(help_text='The PSBT, base64 encoded. Updated as signatures are merged in.')),
                ('m_required', models.PositiveIntegerField()),
                ('n_total', models.PositiveIntegerField()),
                ('signatures_count', models.PositiveIntegerField(default=0, help_text='Maximum partial signature count over the PSBT inputs. Always recomputed from psbt_data.')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('ready', 'Ready'), ('broadcast', 'Broadcast'), ('confirming', 'Confirming'), ('final', 'Final')], db_index=True, default='pending', max_length=20)),
                ('notes', models.TextField(blank=True, null=True)),
                ('txid', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('confirmations', models.PositiveIntegerField(default=0)),
                ('block_height', models.PositiveIntegerField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=0, help_text='Optimistic concurrency counter, incremented on every write')),
                ('scope', models.CharField(db_index=True, default='0', max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.AddConstraint(
            model_name='extendedkey',
            constraint=models.UniqueConstraint(fields=('scope', 'xpub'), name='unique_scope_xpub'),
        ),
    ]
