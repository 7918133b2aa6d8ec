"""
Admin API (bearer token required except for /admin/login)
- POST /admin/login
- GET  /admin/api/verify, /dashboard, /recent, /heatmap, /logs
- CRUD /admin/api/questions, reorder, reset
- GET  /admin/api/reports/{months,monthly,pdf,csv}
"""
from flask import Blueprint, Response as FlaskResponse, g, jsonify, request

from controllers import exports
from controllers import report_controller as reports
from controllers.auth_controller import admin_required, auth_controller
from controllers.errors import ValidationError
from controllers.question_controller import question_catalog

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Invalid request data')
    return data


def _int_arg(name, default, minimum=1, maximum=None):
    raw = request.args.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f'Invalid {name}')
    if value < minimum or (maximum is not None and value > maximum):
        raise ValidationError(f'Invalid {name}')
    return value


@admin_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    result = auth_controller.login(data.get('username'), data.get('password'))
    return jsonify({'success': True, **result})


@admin_bp.route('/api/verify', methods=['GET'])
@admin_required
def verify():
    user = {k: g.admin.get(k) for k in ('id', 'username', 'name')}
    return jsonify({'success': True, 'user': user})


# --- Dashboard ---

@admin_bp.route('/api/dashboard', methods=['GET'])
@admin_required
def dashboard():
    return jsonify({'success': True, 'data': reports.dashboard_summary()})


@admin_bp.route('/api/recent', methods=['GET'])
@admin_required
def recent():
    limit = _int_arg('limit', 15, maximum=100)
    return jsonify({'success': True, 'data': reports.recent_activity(limit)})


@admin_bp.route('/api/heatmap', methods=['GET'])
@admin_required
def heatmap():
    days = _int_arg('days', 30, maximum=366)
    return jsonify({'success': True, 'data': reports.heatmap(days)})


@admin_bp.route('/api/logs', methods=['GET'])
@admin_required
def logs():
    data = reports.audit_logs(request.args.get('page', 1), request.args.get('limit', 20))
    return jsonify({'success': True, **data})


# --- Questions ---

@admin_bp.route('/api/questions', methods=['GET'])
@admin_required
def list_questions():
    return jsonify({'success': True, 'questions': [q.to_dict() for q in question_catalog.list_all()]})


@admin_bp.route('/api/questions', methods=['POST'])
@admin_required
def create_question():
    data = _json_body()
    question = question_catalog.create(
        data.get('question_text'),
        subtitle=data.get('question_subtitle'),
        options=data.get('options'),
        is_required=data.get('is_required', True),
    )
    return jsonify({'success': True, 'question': question.to_dict()}), 201


@admin_bp.route('/api/questions/reorder', methods=['PUT'])
@admin_required
def reorder_questions():
    data = _json_body()
    updated = question_catalog.reorder(data.get('order'))
    return jsonify({'success': True, 'updated': updated})


@admin_bp.route('/api/questions/reset', methods=['POST'])
@admin_required
def reset_questions():
    questions = question_catalog.reset_to_defaults()
    return jsonify({'success': True, 'questions': [q.to_dict() for q in questions]})


@admin_bp.route('/api/questions/<int:question_id>', methods=['GET'])
@admin_required
def get_question(question_id):
    return jsonify({'success': True, 'question': question_catalog.get(question_id).to_dict()})


@admin_bp.route('/api/questions/<int:question_id>', methods=['PUT'])
@admin_required
def update_question(question_id):
    question = question_catalog.update(question_id, _json_body())
    return jsonify({'success': True, 'question': question.to_dict()})


@admin_bp.route('/api/questions/<int:question_id>', methods=['DELETE'])
@admin_required
def delete_question(question_id):
    question_catalog.delete(question_id)
    return jsonify({'success': True})


# --- Reports ---

@admin_bp.route('/api/reports/months', methods=['GET'])
@admin_required
def report_months():
    return jsonify({'success': True, 'months': reports.available_months()})


@admin_bp.route('/api/reports/monthly', methods=['GET'])
@admin_required
def report_monthly():
    year, month = reports.parse_period(request.args.get('year'), request.args.get('month'))
    return jsonify({'success': True, 'data': reports.monthly_report(year, month)})


@admin_bp.route('/api/reports/pdf', methods=['GET'])
@admin_required
def report_pdf():
    year, month = reports.parse_period(request.args.get('year'), request.args.get('month'))
    return FlaskResponse(
        exports.export_pdf(year, month),
        mimetype='application/pdf',
        headers={'Content-Disposition': f'attachment; filename={exports.pdf_filename(year, month)}'},
    )


@admin_bp.route('/api/reports/csv', methods=['GET'])
@admin_required
def report_csv():
    year = month = None
    if request.args.get('year') and request.args.get('month'):
        year, month = reports.parse_period(request.args['year'], request.args['month'])
    return FlaskResponse(
        exports.export_csv(year, month),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={exports.csv_filename(year, month)}'},
    )
