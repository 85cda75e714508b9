"""Initial peer evaluation schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create accounts, roster records, courses, groups and evaluations."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False, server_default='student'),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('reset_token', sa.String(), nullable=True),
        sa.Column('reset_token_expires', sa.DateTime(timezone=True), nullable=True),
        sa.Column('password_reset_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_reset_token', 'users', ['reset_token'])

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'),
                  nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_students_id', 'students', ['id'])
    op.create_index('ix_students_name', 'students', ['name'])
    op.create_index('ix_students_email', 'students', ['email'])

    op.create_table(
        'professors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_professors_id', 'professors', ['id'])
    op.create_index('ix_professors_email', 'professors', ['email'])

    op.create_table(
        'courses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('professor_id', sa.Integer(), sa.ForeignKey('professors.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('semester', sa.String(), nullable=False),
        sa.Column('class_time', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_courses_id', 'courses', ['id'])
    op.create_index('ix_courses_professor_id', 'courses', ['professor_id'])

    op.create_table(
        'enrollments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('course_id', 'student_id', name='uq_enrollment_course_student'),
    )
    op.create_index('ix_enrollments_id', 'enrollments', ['id'])
    op.create_index('ix_enrollments_course_id', 'enrollments', ['course_id'])
    op.create_index('ix_enrollments_student_id', 'enrollments', ['student_id'])

    op.create_table(
        'groups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_groups_id', 'groups', ['id'])

    op.create_table(
        'group_memberships',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('course_id', 'group_id', 'student_id', name='uq_membership_course_group_student'),
    )
    op.create_index('ix_group_memberships_id', 'group_memberships', ['id'])
    op.create_index('ix_group_memberships_course_id', 'group_memberships', ['course_id'])
    op.create_index('ix_group_memberships_group_id', 'group_memberships', ['group_id'])
    op.create_index('ix_group_memberships_student_id', 'group_memberships', ['student_id'])

    op.create_table(
        'evaluation_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
        sa.Column('evaluator_student_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('available_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('course_id', 'group_id', 'evaluator_student_id',
                            name='uq_assignment_course_group_evaluator'),
    )
    op.create_index('ix_evaluation_assignments_id', 'evaluation_assignments', ['id'])
    op.create_index('ix_evaluation_assignments_course_id', 'evaluation_assignments', ['course_id'])
    op.create_index('ix_evaluation_assignments_group_id', 'evaluation_assignments', ['group_id'])
    op.create_index('ix_evaluation_assignments_evaluator_student_id', 'evaluation_assignments',
                    ['evaluator_student_id'])

    op.create_table(
        'evaluations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('evaluator_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_evaluations_id', 'evaluations', ['id'])
    op.create_index('ix_evaluations_evaluator_id', 'evaluations', ['evaluator_id'])

    op.create_table(
        'evaluation_targets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('evaluation_id', sa.Integer(), sa.ForeignKey('evaluations.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('evaluatee_id', sa.Integer(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('contribution_score', sa.Integer(), nullable=False),
        sa.Column('plan_mgmt_score', sa.Integer(), nullable=False),
        sa.Column('team_climate_score', sa.Integer(), nullable=False),
        sa.Column('conflict_res_score', sa.Integer(), nullable=False),
        sa.Column('overall_rating', sa.Integer(), nullable=False),
        sa.Column('feedback', sa.Text(), nullable=True),
    )
    op.create_index('ix_evaluation_targets_id', 'evaluation_targets', ['id'])
    op.create_index('ix_evaluation_targets_evaluatee_id', 'evaluation_targets', ['evaluatee_id'])


def downgrade() -> None:
    """Drop every table, children first."""
    op.drop_table('evaluation_targets')
    op.drop_table('evaluations')
    op.drop_table('evaluation_assignments')
    op.drop_table('group_memberships')
    op.drop_table('groups')
    op.drop_table('enrollments')
    op.drop_table('courses')
    op.drop_table('professors')
    op.drop_table('students')
    op.drop_table('users')
