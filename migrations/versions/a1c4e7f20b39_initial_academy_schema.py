"""Initial academy portal schema

Revision ID: a1c4e7f20b39
Revises:
Create Date: 2025-03-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a1c4e7f20b39'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('address'),
    )
    op.create_table(
        'courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('icon', sa.String(length=120), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('role', sa.Enum('Student', 'Teacher', 'Admin', name='account_role'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('class_preference', sa.String(length=20), nullable=True),
        sa.Column('photo_url', sa.Text(), nullable=True),
        sa.Column('dob', sa.String(length=20), nullable=True),
        sa.Column('sex', sa.String(length=10), nullable=True),
        sa.Column('contact_number', sa.LargeBinary(), nullable=True),
        sa.Column('alternate_contact_number', sa.LargeBinary(), nullable=True),
        sa.Column('address', sa.LargeBinary(), nullable=True),
        sa.Column('date_of_joining', sa.String(length=40), nullable=True),
        sa.Column('country', sa.String(length=80), nullable=True),
        sa.Column('state', sa.String(length=80), nullable=True),
        sa.Column('city', sa.String(length=80), nullable=True),
        sa.Column('postal_code', sa.String(length=20), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.Column('preferred_timings', sa.JSON(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('courses', sa.JSON(), nullable=True),
        sa.Column('father_name', sa.String(length=120), nullable=True),
        sa.Column('standard', sa.String(length=40), nullable=True),
        sa.Column('school_name', sa.String(length=120), nullable=True),
        sa.Column('grade', sa.String(length=20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('course_expertise', sa.JSON(), nullable=True),
        sa.Column('educational_qualifications', sa.Text(), nullable=True),
        sa.Column('employment_type', sa.String(length=20), nullable=True),
        sa.Column('years_of_experience', sa.Integer(), nullable=True),
        sa.Column('available_time_slots', sa.JSON(), nullable=True),
        sa.Column('lifecycle_state', sa.Enum('active', 'soft_deleted', name='account_state'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_accounts_lifecycle_state', 'accounts', ['lifecycle_state'], unique=False)

    op.create_table(
        'admin_invite_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('used', sa.Boolean(), nullable=False),
        sa.Column('used_by_account_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['used_by_account_id'], ['accounts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_table(
        'batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('course_name', sa.String(length=120), nullable=False),
        sa.Column('teacher_id', sa.Integer(), nullable=True),
        sa.Column('mode', sa.String(length=20), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.ForeignKeyConstraint(['teacher_id'], ['accounts.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'batch_slots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('timing', sa.String(length=120), nullable=False),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_batch_slots_batch_id', 'batch_slots', ['batch_id'], unique=False)
    op.create_table(
        'batch_slot_students',
        sa.Column('slot_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['slot_id'], ['batch_slots.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('slot_id', 'student_id'),
    )

    op.create_table(
        'fee_structures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('course_name', sa.String(length=120), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.Enum('INR', 'USD', name='currency'), nullable=False),
        sa.Column('billing_cycle', sa.Enum('Monthly', 'Quarterly', 'Annually', name='billing_cycle'), nullable=False),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('course_id'),
    )
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('fee_structure_id', sa.Integer(), nullable=False),
        sa.Column('course_name', sa.String(length=120), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('issue_date', sa.DateTime(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('billing_period', sa.String(length=40), nullable=False),
        sa.Column('status', sa.Enum('Pending', 'Paid', 'Overdue', name='invoice_status'), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('amount_paid', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('payment_method', sa.Enum('Cash', 'Bank Transfer', 'UPI', 'Card', name='payment_method'), nullable=True),
        sa.Column('reference_number', sa.String(length=120), nullable=True),
        sa.Column('payment_notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['student_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['fee_structure_id'], ['fee_structures.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'fee_structure_id', 'billing_period', name='uq_invoices_student_fee_period'),
    )
    op.create_index('ix_invoices_student_id', 'invoices', ['student_id'], unique=False)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('link', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_account_id', 'notifications', ['account_id'], unique=False)

    op.create_table(
        'content_recipients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('content_kind', sa.Enum('Event', 'Notice', 'GradeExam', 'BookMaterial', name='content_kind'), nullable=False),
        sa.Column('content_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('content_kind', 'content_id', 'account_id', name='uq_content_recipients_item_account'),
    )
    op.create_index('ix_content_recipients_kind_account', 'content_recipients', ['content_kind', 'account_id'], unique=False)

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('is_online', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'notices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'grade_exams',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('exam_date', sa.DateTime(), nullable=False),
        sa.Column('registration_deadline', sa.DateTime(), nullable=False),
        sa.Column('syllabus_link', sa.String(length=500), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'book_materials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('course_name', sa.String(length=120), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('url', sa.String(length=500), nullable=False),
        sa.Column('data', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'contact_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'error_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('error_type', sa.String(length=100), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('request_path', sa.String(length=500), nullable=True),
        sa.Column('request_method', sa.String(length=10), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('stack_trace', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_error_logs_timestamp', 'error_logs', ['timestamp'], unique=False)


def downgrade():
    op.drop_index('ix_error_logs_timestamp', table_name='error_logs')
    op.drop_table('error_logs')
    op.drop_table('contact_messages')
    op.drop_table('book_materials')
    op.drop_table('grade_exams')
    op.drop_table('notices')
    op.drop_table('events')
    op.drop_index('ix_content_recipients_kind_account', table_name='content_recipients')
    op.drop_table('content_recipients')
    op.drop_index('ix_notifications_account_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_invoices_student_id', table_name='invoices')
    op.drop_table('invoices')
    op.drop_table('fee_structures')
    op.drop_table('batch_slot_students')
    op.drop_index('ix_batch_slots_batch_id', table_name='batch_slots')
    op.drop_table('batch_slots')
    op.drop_table('batches')
    op.drop_table('admin_invite_codes')
    op.drop_index('ix_accounts_lifecycle_state', table_name='accounts')
    op.drop_table('accounts')
    op.drop_table('courses')
    op.drop_table('locations')

    for enum_name in (
        'content_kind', 'payment_method', 'invoice_status', 'billing_cycle',
        'currency', 'account_state', 'account_role',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
