"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates all database tables for Answer Desk:
- users: Staff (teachers and admins) with class access lists
- students: Students enrolled in a class
- exams: Exams sat by a class in a subject
- answer_sheets: Uploaded scans with analysis figures and AI results
- answer_sheet_flags: Data-quality flags, ordered per sheet
- notifications: Per-recipient notifications
- missing_paper_tracking: Absence / missing sheet workflow records

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Users Table ───────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='TEACHER'),
        sa.Column('admin_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('class_ids', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Students Table ────────────────────────────────────────
    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('full_name', sa.Text(), nullable=False),
        sa.Column('roll_number', sa.Text(), nullable=True),
        sa.Column('class_id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_students_class_id', 'students', ['class_id'])

    # ── Exams Table ───────────────────────────────────────────
    op.create_table(
        'exams',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('class_id', sa.String(36), nullable=False),
        sa.Column('subject_id', sa.String(36), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Answer Sheets Table ───────────────────────────────────
    op.create_table(
        'answer_sheets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('exam_id', sa.String(36), sa.ForeignKey('exams.id'), nullable=False),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('uploaded_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('original_file_name', sa.Text(), nullable=True),
        sa.Column('status', sa.String(24), nullable=False, server_default='UPLOADED'),
        sa.Column('scan_quality', sa.String(16), nullable=False, server_default='GOOD'),
        sa.Column('is_aligned', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('roll_number_detected', sa.Text(), nullable=True),
        sa.Column('roll_number_confidence', sa.Float(), nullable=True),
        sa.Column('ai_confidence', sa.Float(), nullable=True),
        sa.Column('ai_percentage', sa.Float(), nullable=True),
        sa.Column('is_missing', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('missing_reason', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('uploaded_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('last_flagged_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_answer_sheets_exam_id', 'answer_sheets', ['exam_id'])
    op.create_index('ix_answer_sheets_student_id', 'answer_sheets', ['student_id'])

    # ── Answer Sheet Flags Table ──────────────────────────────
    op.create_table(
        'answer_sheet_flags',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('answer_sheet_id', sa.String(36),
                  sa.ForeignKey('answer_sheets.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('severity', sa.String(16), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('detected_by', sa.String(36), nullable=True),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_by', sa.String(36), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('auto_resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_answer_sheet_flags_sheet', 'answer_sheet_flags',
                    ['answer_sheet_id', 'position'], unique=True)

    # ── Notifications Table ───────────────────────────────────
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('priority', sa.String(16), nullable=False, server_default='MEDIUM'),
        sa.Column('status', sa.String(16), nullable=False, server_default='UNREAD'),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('recipient_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('related_entity_id', sa.String(36), nullable=True),
        sa.Column('related_entity_type', sa.String(32), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('dismissed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notifications_recipient_status', 'notifications',
                    ['recipient_id', 'status', 'created_at'])
    op.create_index('ix_notifications_related', 'notifications',
                    ['related_entity_id', 'related_entity_type'])

    # ── Missing Paper Tracking Table ──────────────────────────
    op.create_table(
        'missing_paper_tracking',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('exam_id', sa.String(36), sa.ForeignKey('exams.id'), nullable=False),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('class_id', sa.String(36), nullable=False),
        sa.Column('subject_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(24), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='PENDING'),
        sa.Column('reported_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('reported_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('acknowledged_by', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('admin_remarks', sa.Text(), nullable=True),
        sa.Column('resolved_by', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('escalated_to', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('escalated_at', sa.DateTime(), nullable=True),
        sa.Column('escalation_reason', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(16), nullable=False, server_default='MEDIUM'),
        sa.Column('is_red_flag', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('requires_acknowledgment', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('answer_sheet_id', sa.String(36), sa.ForeignKey('answer_sheets.id'), nullable=True),
        sa.Column('related_notification_ids', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_missing_paper_exam_student', 'missing_paper_tracking', ['exam_id', 'student_id'])
    op.create_index('ix_missing_paper_status_priority', 'missing_paper_tracking', ['status', 'priority'])
    op.create_index('ix_missing_paper_red_flag', 'missing_paper_tracking', ['is_red_flag'])
    op.create_index('ix_missing_paper_class_status', 'missing_paper_tracking', ['class_id', 'status'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_missing_paper_class_status', table_name='missing_paper_tracking')
    op.drop_index('ix_missing_paper_red_flag', table_name='missing_paper_tracking')
    op.drop_index('ix_missing_paper_status_priority', table_name='missing_paper_tracking')
    op.drop_index('ix_missing_paper_exam_student', table_name='missing_paper_tracking')
    op.drop_table('missing_paper_tracking')
    op.drop_index('ix_notifications_related', table_name='notifications')
    op.drop_index('ix_notifications_recipient_status', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_answer_sheet_flags_sheet', table_name='answer_sheet_flags')
    op.drop_table('answer_sheet_flags')
    op.drop_index('ix_answer_sheets_student_id', table_name='answer_sheets')
    op.drop_index('ix_answer_sheets_exam_id', table_name='answer_sheets')
    op.drop_table('answer_sheets')
    op.drop_table('exams')
    op.drop_index('ix_students_class_id', table_name='students')
    op.drop_table('students')
    op.drop_table('users')
