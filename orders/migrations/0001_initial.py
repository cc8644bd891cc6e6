import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order_number', models.CharField(help_text='Customer and payment provider visible reference', max_length=20, unique=True)),
                ('guest_token', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Opaque token for tracking without an account', unique=True)),
                ('email', models.EmailField(max_length=254)),
                ('shipping_address', models.JSONField(help_text='Address snapshot at order time')),
                ('items', models.JSONField(help_text='Line item snapshots at order time')),
                ('total_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('discount_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('coupon_code', models.CharField(blank=True, max_length=50, null=True)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('CONFIRMED', 'Confirmed'), ('PROCESSING', 'Processing'), ('SHIPPED', 'Shipped'), ('DELIVERED', 'Delivered'), ('CANCELLED', 'Cancelled'), ('RETURNED', 'Returned'), ('REFUNDED', 'Refunded')], db_index=True, default='PENDING', max_length=20)),
                ('payment_method', models.CharField(choices=[('COD', 'Cash on delivery'), ('PAYHERE', 'PayHere')], default='COD', max_length=20)),
                ('tracking_number', models.CharField(blank=True, help_text='Courier tracking number, or the provider payment id for online orders', max_length=100, null=True)),
                ('stock_status', models.CharField(choices=[('DEDUCTED', 'Deducted'), ('RESTORED', 'Restored'), ('NOT_DEDUCTED', 'Not deducted')], default='DEDUCTED', help_text='What the stock ledger has done for this order', max_length=20)),
                ('requires_review', models.BooleanField(db_index=True, default=False)),
                ('review_note', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='orders', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Order',
                'verbose_name_plural': 'Orders',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='order_user_created_idx'),
                    models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
                ],
            },
        ),
    ]
