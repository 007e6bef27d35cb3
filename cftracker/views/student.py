"""Student blueprint: CRUD plus the sync hooks tied to a student's lifecycle."""
import logging

from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required
from sqlalchemy.exc import IntegrityError

from cftracker.extensions import db
from cftracker.models import Student, ContestRecord, ProblemSolveRecord
from cftracker.services.sync_service import (
    SyncTarget, get_sync_service, submit_background_sync,
)

logger = logging.getLogger(__name__)

student_bp = Blueprint('student', __name__, url_prefix='/api/students')

REQUIRED_FIELDS = ('name', 'email', 'handle')
UNIQUE_FIELDS = ('email', 'handle')


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def _read_fields(data):
    """Pick editable fields out of a request body, normalized."""
    fields = {}
    for name in Student.EDITABLE_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name == 'email_notifications':
            value = _as_bool(value)
        elif isinstance(value, str):
            value = value.strip()
        fields[name] = value
    return fields


def _duplicate_error(fields, exclude_id=None):
    """Return a 400 response if a unique field clashes with another student."""
    for name in UNIQUE_FIELDS:
        value = fields.get(name)
        if not value:
            continue
        query = Student.query.filter(getattr(Student, name) == value)
        if exclude_id is not None:
            query = query.filter(Student.id != exclude_id)
        if query.first():
            return _duplicate_response(name, value)
    return None


def _duplicate_response(field, value):
    return jsonify({
        'error': f'A student with this {field} already exists: {value}',
        'field': field,
        'value': value,
    }), 400


def _get_student_or_404(student_id):
    student = db.session.get(Student, student_id)
    if student is None:
        return None, (jsonify({'error': 'Student not found'}), 404)
    return student, None


@student_bp.route('', methods=['GET'])
@login_required
def list_students():
    students = Student.query.order_by(Student.id).all()
    return jsonify([s.to_dict() for s in students])


@student_bp.route('/<int:student_id>', methods=['GET'])
@login_required
def get_student(student_id):
    student, err = _get_student_or_404(student_id)
    if err:
        return err
    return jsonify(student.to_dict())


@student_bp.route('', methods=['POST'])
@login_required
def create_student():
    """Create a student and sync it right away.

    The response carries post-sync data when the sync succeeds and the
    freshly created record otherwise; creation itself never fails on sync.
    """
    fields = _read_fields(request.get_json(silent=True) or {})
    missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
    if missing:
        return jsonify({'error': f"Missing required fields: {', '.join(missing)}"}), 400

    err = _duplicate_error(fields)
    if err:
        return err

    student = Student(**fields)
    db.session.add(student)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'A student with this email or handle already exists'}), 400

    before_sync = student.to_dict()
    logger.info(f"Syncing Codeforces data for new student: {student.handle}")
    outcome = get_sync_service().sync(SyncTarget.from_student(student))
    if not outcome.success:
        logger.warning(f"Sync failed for new student {student.handle}: {outcome.error}")
        return jsonify(before_sync), 201

    db.session.refresh(student)
    return jsonify(student.to_dict()), 201


@student_bp.route('/<int:student_id>', methods=['PATCH', 'PUT'])
@login_required
def update_student(student_id):
    student, err = _get_student_or_404(student_id)
    if err:
        return err

    fields = _read_fields(request.get_json(silent=True) or {})
    empty = [name for name in REQUIRED_FIELDS if name in fields and not fields[name]]
    if empty:
        return jsonify({'error': f"Fields cannot be empty: {', '.join(empty)}"}), 400

    err = _duplicate_error(fields, exclude_id=student.id)
    if err:
        return err

    old_handle = student.handle
    for name, value in fields.items():
        setattr(student, name, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'A student with this email or handle already exists'}), 400

    if student.handle != old_handle:
        logger.info(
            f"Codeforces handle changed from {old_handle} to {student.handle}, "
            f"scheduling background sync"
        )
        submit_background_sync(current_app._get_current_object(), student.id)

    return jsonify(student.to_dict())


@student_bp.route('/<int:student_id>', methods=['DELETE'])
@login_required
def delete_student(student_id):
    """Delete a student together with its contest and problem records."""
    student, err = _get_student_or_404(student_id)
    if err:
        return err
    db.session.delete(student)
    db.session.commit()
    return jsonify({'message': 'Student deleted'})


@student_bp.route('/<int:student_id>/contests')
@login_required
def student_contests(student_id):
    contests = (
        ContestRecord.query.filter_by(student_id=student_id)
        .order_by(ContestRecord.date.desc())
        .all()
    )
    return jsonify([c.to_dict() for c in contests])


@student_bp.route('/<int:student_id>/problems')
@login_required
def student_problems(student_id):
    problems = (
        ProblemSolveRecord.query.filter_by(student_id=student_id)
        .order_by(ProblemSolveRecord.date_solved.desc())
        .all()
    )
    return jsonify([p.to_dict() for p in problems])


@student_bp.route('/<int:student_id>/sync', methods=['POST'])
@login_required
def sync_student(student_id):
    student, err = _get_student_or_404(student_id)
    if err:
        return err

    logger.info(f"Manual sync requested for student: {student.name} ({student.handle})")
    outcome = get_sync_service().sync(SyncTarget.from_student(student))
    if outcome.success:
        return jsonify({'success': True, 'message': 'Sync completed successfully'})
    return jsonify({'success': False, 'error': outcome.error}), 500


@student_bp.route('/check-handle/<handle>')
@login_required
def check_handle(handle):
    student = Student.query.filter_by(handle=handle).first()
    return jsonify({'exists': student is not None, 'id': student.id if student else None})
