from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='PendingRegisterPayment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(max_length=64, unique=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed')], db_index=True, default='pending', max_length=16)),
                ('payment_id', models.CharField(blank=True, default='', max_length=64)),
                ('failure_reason', models.CharField(blank=True, default='', max_length=64)),
                ('gateway_meta', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=128)),
                ('email', models.EmailField(db_index=True, max_length=254)),
                ('number', models.CharField(max_length=20)),
                ('address', models.CharField(max_length=255)),
                ('district', models.CharField(max_length=64)),
                ('shop_name', models.CharField(max_length=128)),
                ('shop_logo', models.URLField(max_length=512)),
                ('website', models.CharField(blank=True, default='', max_length=255)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
            ],
            options={
                'abstract': False,
            },
        ),
        migrations.CreateModel(
            name='Seller',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=128)),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('number', models.CharField(max_length=20)),
                ('shop_name', models.CharField(max_length=128)),
                ('shop_logo', models.URLField(max_length=512)),
                ('district', models.CharField(max_length=64)),
                ('address', models.CharField(max_length=255)),
                ('website', models.CharField(blank=True, default='', max_length=255)),
                ('total_orders', models.PositiveIntegerField(default=0)),
                ('total_spend', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('successful_order', models.PositiveIntegerField(default=0)),
                ('canceled_order', models.PositiveIntegerField(default=0)),
                ('total_paid', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('total_due', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('status', models.CharField(default='Pending', max_length=16)),
                ('reference', models.CharField(max_length=64, unique=True)),
                ('payment_id', models.CharField(max_length=64, unique=True)),
                ('transaction_id', models.CharField(max_length=64)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ('-created_at',),
            },
        ),
    ]
