"""
Public kiosk API
- GET  /api/questions: active questions with their options
- GET  /api/session: start a survey session (HttpOnly cookie)
- POST /api/survey: submit answers (rate limit + origin + session gate)
- GET  /api/survey/stats: live counters for the kiosk screen
"""
from flask import Blueprint, jsonify, request

from controllers import report_controller as reports
from controllers.question_controller import question_catalog
from controllers.submission_gate import client_ip, gated, issue_session_token, set_session_cookie
from controllers.survey_controller import extract_answers, survey_recorder
from models.database import local_now

public_bp = Blueprint('public', __name__)


@public_bp.route('/api/questions', methods=['GET'])
def list_questions():
    questions = [q.to_dict() for q in question_catalog.list_active()]
    return jsonify({'success': True, 'questions': questions})


@public_bp.route('/api/session', methods=['GET'])
def start_session():
    token, ttl = issue_session_token()
    response = jsonify({'success': True, 'expiresIn': ttl})
    return set_session_cookie(response, token, ttl)


@public_bp.route('/api/survey', methods=['POST'])
@gated
def submit_survey():
    payload = request.get_json(silent=True)
    answers = extract_answers(payload)
    submission_id = survey_recorder.submit(
        answers,
        client_ip(),
        request.headers.get('User-Agent', 'unknown'),
        queue_id=payload.get('queueId'),
    )
    return jsonify({
        'success': True,
        'message': 'Terima kasih atas penilaian Anda!',
        'id': submission_id,
        'queueId': payload.get('queueId'),
    }), 201


@public_bp.route('/api/survey/stats', methods=['GET'])
def survey_stats():
    return jsonify({
        'success': True,
        'stats': reports.public_stats(),
        'timestamp': local_now().isoformat(),
    })
