import decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Book',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('author', models.CharField(max_length=200)),
                ('year', models.PositiveIntegerField(blank=True, null=True)),
                ('genre', models.CharField(default='General', max_length=100)),
                ('class_name', models.CharField(help_text='Class the book is shelved for (e.g., Grade 4)', max_length=50)),
                ('copies', models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ('available', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'books',
                'ordering': ['title', 'id'],
                'indexes': [
                    models.Index(fields=['class_name'], name='books_class_idx'),
                    models.Index(fields=['genre'], name='books_genre_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BookCheckout',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('checked_out_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('due_date', models.DateField()),
                ('returned_at', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('checked_out', 'Checked Out'), ('overdue', 'Overdue'), ('returned', 'Returned')], default='checked_out', max_length=20)),
                ('fine', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=10)),
                ('renewals', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('book', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='checkouts', to='library.book')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='checkouts_issued', to=settings.AUTH_USER_MODEL)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='book_checkouts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'book_checkouts',
                'ordering': ['-checked_out_at', '-id'],
                'indexes': [
                    models.Index(fields=['book', 'status'], name='checkouts_book_status_idx'),
                    models.Index(fields=['student', 'status'], name='checkouts_student_status_idx'),
                    models.Index(fields=['due_date'], name='checkouts_due_date_idx'),
                ],
            },
        ),
    ]
