import csv
import io
from contextlib import contextmanager
from datetime import datetime, timedelta

import fitz
import pytest
from sqlalchemy import event

from conftest import add_submission
from controllers import exports
from controllers import report_controller as reports
from controllers.errors import ValidationError
from models.database import db, local_now

GOOD = {'q1': 'sangat_baik', 'q2': 'sangat_baik', 'q3': 'cukup_baik', 'q4': 'sangat_baik', 'q5': 'sangat_baik'}
BAD = {'q1': 'kurang_baik', 'q2': 'cukup_baik', 'q3': 'kurang_baik', 'q4': 'kurang_baik', 'q5': 'kurang_baik'}


@pytest.fixture
def march_2024(ctx):
    add_submission(GOOD, datetime(2024, 3, 4, 9, 15))
    add_submission(GOOD, datetime(2024, 3, 4, 13, 40))
    add_submission(BAD, datetime(2024, 3, 20, 10, 5))
    # outside the month on both sides
    add_submission(GOOD, datetime(2024, 2, 29, 23, 59))
    add_submission(BAD, datetime(2024, 4, 1, 0, 0))


@pytest.mark.parametrize('part, whole, expected', [
    (2, 3, 67),
    (1, 3, 33),
    (1, 8, 13),
    (0, 5, 0),
    (4, 0, 0),
])
def test_percent_rounds_halves_up(part, whole, expected):
    assert reports.percent(part, whole) == expected


def test_parse_period_defaults_and_validation(ctx):
    now = local_now()
    assert reports.parse_period() == (now.year, now.month)
    assert reports.parse_period('2024', '2') == (2024, 2)
    for year, month in (('2024', '13'), ('abc', '1'), ('2024', '0')):
        with pytest.raises(ValidationError):
            reports.parse_period(year, month)


def test_monthly_report_counts_only_that_month(march_2024):
    report = reports.monthly_report(2024, 3)
    stats = report['stats']
    assert stats['total'] == 3
    assert (stats['satisfied'], stats['neutral'], stats['unsatisfied']) == (2, 0, 1)
    assert stats['satisfactionPct'] == 67
    q3 = stats['questions']['q3']
    assert (q3['positive'], q3['neutral'], q3['negative']) == (0, 2, 1)
    assert q3['neutral_pct'] == 67
    assert report['daily'] == [
        {'date': '2024-03-04', 'total': 2, 'satisfied': 2},
        {'date': '2024-03-20', 'total': 1, 'satisfied': 0},
    ]


def test_monthly_report_for_empty_month(ctx):
    stats = reports.monthly_report(2019, 1)['stats']
    assert stats['total'] == 0
    assert stats['satisfactionPct'] == 0
    assert stats['questions']['q1']['positive_pct'] == 0


def test_csv_export_matches_monthly_report(march_2024):
    rows = list(csv.reader(io.StringIO(exports.export_csv(2024, 3))))
    header, body = rows[0], rows[1:]
    assert header[0] == 'ID'
    assert header[-1] == 'Tanggal'
    assert len(header) == 7
    assert len(body) == reports.monthly_report(2024, 3)['stats']['total']
    q5_column = [row[5] for row in body]
    assert q5_column.count('Sangat Puas') == 2
    assert q5_column.count('Kurang Puas') == 1
    # newest first
    assert body[0][-1].startswith('2024-03-20')


def test_csv_export_without_period_includes_everything(march_2024):
    rows = list(csv.reader(io.StringIO(exports.export_csv())))
    assert len(rows) == 6
    assert exports.csv_filename() == 'survey-data-all-all.csv'


def test_pdf_export_renders_month(march_2024):
    data = exports.export_pdf(2024, 3)
    assert data.startswith(b'%PDF')
    with fitz.open(stream=data, filetype='pdf') as doc:
        text = ''.join(page.get_text() for page in doc)
        assert doc.metadata['title'] == 'Laporan Survey Maret 2024'
    assert 'Maret 2024' in text
    assert 'Total Responden' in text
    assert '67%' in text


def test_pdf_export_for_empty_month(ctx):
    assert exports.export_pdf(2019, 1).startswith(b'%PDF')


def test_report_routes(client, admin_headers, march_2024):
    monthly = client.get('/admin/api/reports/monthly?year=2024&month=3', headers=admin_headers)
    assert monthly.status_code == 200
    assert monthly.get_json()['data']['stats']['total'] == 3

    pdf = client.get('/admin/api/reports/pdf?year=2024&month=3', headers=admin_headers)
    assert pdf.status_code == 200
    assert pdf.mimetype == 'application/pdf'
    assert 'laporan-survey-2024-3.pdf' in pdf.headers['Content-Disposition']

    csv_resp = client.get('/admin/api/reports/csv?year=2024&month=3', headers=admin_headers)
    assert csv_resp.mimetype == 'text/csv'
    assert 'survey-data-2024-3.csv' in csv_resp.headers['Content-Disposition']
    assert len(csv_resp.get_data(as_text=True).strip().splitlines()) == 4

    bad = client.get('/admin/api/reports/monthly?year=2024&month=13', headers=admin_headers)
    assert bad.status_code == 400
    assert client.get('/admin/api/reports/pdf?year=2024&month=3').status_code == 401


def test_available_months(client, admin_headers, march_2024):
    months = client.get('/admin/api/reports/months', headers=admin_headers).get_json()['months']
    assert months == [
        {'year': 2024, 'month': 4, 'count': 1},
        {'year': 2024, 'month': 3, 'count': 3},
        {'year': 2024, 'month': 2, 'count': 1},
    ]


def test_dashboard_trend_is_zero_filled(ctx):
    now = local_now()
    add_submission(GOOD, now)
    add_submission(BAD, now - timedelta(days=2))
    add_submission(GOOD, now - timedelta(days=30))

    summary = reports.dashboard_summary()
    assert summary['total'] == 3
    assert summary['today'] == 1
    trend = summary['trend']
    assert len(trend) == 7
    assert trend[-1] == {'date': now.date().isoformat(), 'count': 1}
    assert trend[4]['count'] == 1
    assert sum(day['count'] for day in trend) == 2
    assert summary['questions']['q5']['values'] == {'sangat_baik': 2, 'cukup_baik': 0, 'kurang_baik': 1}


def test_recent_activity_flags_bursts(ctx):
    now = local_now()
    for minutes in (1, 2, 3):
        add_submission(GOOD, now - timedelta(minutes=minutes), ip='192.168.1.50')
    add_submission(GOOD, now - timedelta(minutes=4), ip='192.168.1.51')
    add_submission(GOOD, now - timedelta(minutes=5), ip='192.168.1.51')

    data = reports.recent_activity(limit=4)
    assert len(data['recent']) == 4
    assert data['recent'][0]['answers'] == GOOD
    assert [s['ip_address'] for s in data['suspicious']] == ['192.168.1.50']
    assert data['suspicious'][0]['count'] == 3
    flagged = {r['ip_address']: r['isSuspicious'] for r in data['recent']}
    assert flagged == {'192.168.1.50': True, '192.168.1.51': False}


def test_heatmap_places_sunday_first(ctx):
    now = local_now()
    sunday = (now - timedelta(days=(now.weekday() + 1) % 7 + 7)).replace(hour=14, minute=30)
    add_submission(GOOD, sunday)
    add_submission(GOOD, sunday + timedelta(days=1, hours=-5))
    add_submission(GOOD, now - timedelta(days=60))

    data = reports.heatmap(30)
    assert data['matrix'][0][14] == 1
    assert data['matrix'][1][9] == 1
    assert data['total'] == 2
    assert sum(sum(row) for row in data['matrix']) == data['total']
    assert data['maxCount'] == 1


def test_admin_dashboard_routes(client, admin_headers):
    assert client.get('/admin/api/dashboard', headers=admin_headers).status_code == 200
    assert client.get('/admin/api/recent?limit=5', headers=admin_headers).status_code == 200
    assert client.get('/admin/api/recent?limit=abc', headers=admin_headers).status_code == 400
    assert client.get('/admin/api/heatmap?days=400', headers=admin_headers).status_code == 400
    heat = client.get('/admin/api/heatmap?days=7', headers=admin_headers).get_json()['data']
    assert heat['days'] == 7
    assert len(heat['matrix']) == 7


def test_logs_are_paginated(client, admin_headers, ctx):
    now = local_now()
    for minutes in range(5):
        add_submission(GOOD, now - timedelta(minutes=minutes))

    body = client.get('/admin/api/logs?page=3&limit=2', headers=admin_headers).get_json()
    assert body['pagination'] == {'page': 3, 'limit': 2, 'total': 5, 'totalPages': 3}
    assert len(body['logs']) == 1
    assert body['logs'][0]['answers'] == GOOD
    assert client.get('/admin/api/logs?page=x', headers=admin_headers).status_code == 400


@contextmanager
def recorded_statements():
    statements = []

    def record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(db.engine, 'before_cursor_execute', record)
    try:
        yield statements
    finally:
        event.remove(db.engine, 'before_cursor_execute', record)


def _statements_for(report):
    db.session.expunge_all()
    with recorded_statements() as statements:
        report()
    return len(statements)


def test_report_query_count_does_not_grow_with_submissions(ctx):
    now = local_now()
    runs = {
        'dashboard': reports.dashboard_summary,
        'recent': lambda: reports.recent_activity(limit=20),
        'logs': lambda: reports.audit_logs(1, 20),
        'monthly': lambda: reports.monthly_report(now.year, now.month),
        'csv': exports.export_csv,
    }
    for minutes in range(2):
        add_submission(GOOD, now - timedelta(minutes=minutes))
    small = {name: _statements_for(run) for name, run in runs.items()}

    for minutes in range(2, 20):
        add_submission(BAD, now - timedelta(minutes=minutes))
    large = {name: _statements_for(run) for name, run in runs.items()}
    assert large == small


def test_answer_counts_are_grouped(ctx):
    for _ in range(4):
        add_submission(GOOD)
    add_submission(BAD)
    q5 = reports.dashboard_summary()['questions']['q5']
    assert (q5['positive'], q5['neutral'], q5['negative'], q5['total']) == (4, 0, 1, 5)
