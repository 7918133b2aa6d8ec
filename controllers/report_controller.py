"""
Read-only aggregation over submissions and responses.

Answer counts are grouped in SQL by question and option; only per-submission
timestamps (trend, daily and heatmap buckets) are pulled into Python, so the
same code runs on SQLite and on server databases. Calendar boundaries (today,
this month, the hour of a submission) use the stored local timestamps.
"""
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta

from sqlalchemy import extract, func
from sqlalchemy.orm import selectinload

from controllers.errors import ValidationError
from models.database import db, local_now
from models.question import SENTIMENTS, AnswerOption, Question
from models.response import Response, Submission

SUSPICIOUS_WINDOW = timedelta(minutes=10)
SUSPICIOUS_MIN_COUNT = 3


def percent(part, whole):
    """Nearest whole percent, halves rounded up; 0 when there is nothing to divide."""
    if not whole:
        return 0
    return int(math.floor(part * 100.0 / whole + 0.5))


def month_bounds(year, month):
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def parse_period(year=None, month=None):
    now = local_now()
    try:
        year = int(year) if year not in (None, '') else now.year
        month = int(month) if month not in (None, '') else now.month
    except (TypeError, ValueError):
        raise ValidationError('Invalid year or month')
    if not 1 <= month <= 12 or not 1970 <= year <= 9999:
        raise ValidationError('Invalid year or month')
    return year, month


def active_questions():
    return (
        Question.query
        .options(selectinload(Question.options))
        .filter_by(is_active=True)
        .order_by(Question.question_order, Question.id)
        .all()
    )


def with_answers(query):
    """Eager-load what ``Submission.answers_by_key`` touches."""
    return query.options(
        selectinload(Submission.responses).selectinload(Response.question),
        selectinload(Submission.responses).selectinload(Response.option),
    )


def _in_period(query, start=None, end=None):
    if start is not None:
        query = query.filter(Submission.created_at >= start)
    if end is not None:
        query = query.filter(Submission.created_at < end)
    return query


def _answer_counts(start=None, end=None, question_ids=None):
    query = (
        db.session.query(Response.question_id, AnswerOption.option_value, AnswerOption.sentiment,
                         func.count(Response.id).label('count'))
        .join(AnswerOption, Response.option_id == AnswerOption.id)
    )
    if start is not None or end is not None:
        query = _in_period(query.join(Submission, Response.submission_id == Submission.id), start, end)
    if question_ids is not None:
        query = query.filter(Response.question_id.in_(question_ids))
    return (
        query
        .group_by(Response.question_id, AnswerOption.option_value, AnswerOption.sentiment)
        .all()
    )


def _count_submissions(start=None, end=None):
    return _in_period(db.session.query(func.count(Submission.id)), start, end).scalar() or 0


def question_breakdown(questions, answer_counts, with_percentages=False):
    by_sentiment = defaultdict(Counter)
    by_value = defaultdict(Counter)
    for row in answer_counts:
        by_sentiment[row.question_id][row.sentiment] += row.count
        by_value[row.question_id][row.option_value] += row.count

    result = {}
    for q in questions:
        counts = by_sentiment[q.id]
        total = sum(counts[s] for s in SENTIMENTS)
        entry = {
            'id': q.id,
            'question_text': q.question_text,
            'labels': {s: q.label_for(s) for s in SENTIMENTS},
            'total': total,
            'values': {o.option_value: by_value[q.id][o.option_value] for o in q.options},
        }
        for s in SENTIMENTS:
            entry[s] = counts[s]
            if with_percentages:
                entry[f'{s}_pct'] = percent(counts[s], total)
        result[q.question_key] = entry
    return result


def overall_counts(questions, breakdown):
    """Sentiment counts of the last active question, used as the overall satisfaction proxy."""
    if not questions:
        return {'satisfied': 0, 'neutral': 0, 'unsatisfied': 0}
    last = breakdown[questions[-1].question_key]
    return {'satisfied': last['positive'], 'neutral': last['neutral'], 'unsatisfied': last['negative']}


def _day_start(now):
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def dashboard_summary():
    now = local_now()
    today = _day_start(now)
    month_start = today.replace(day=1)
    questions = active_questions()
    answer_counts = _answer_counts(question_ids=[q.id for q in questions])

    trend_start = today - timedelta(days=6)
    per_day = Counter(
        created.date() for (created,) in
        db.session.query(Submission.created_at).filter(Submission.created_at >= trend_start).all()
    )
    trend = []
    for offset in range(7):
        day = (trend_start + timedelta(days=offset)).date()
        trend.append({'date': day.isoformat(), 'count': per_day[day]})

    return {
        'total': _count_submissions(),
        'today': _count_submissions(start=today),
        'thisMonth': _count_submissions(start=month_start),
        'questions': question_breakdown(questions, answer_counts),
        'trend': trend,
    }


def public_stats():
    today = _day_start(local_now())
    questions = active_questions()
    overall = {'satisfied': 0, 'neutral': 0, 'unsatisfied': 0}
    if questions:
        last = questions[-1]
        breakdown = question_breakdown([last], _answer_counts(question_ids=[last.id]))
        overall = overall_counts([last], breakdown)
    stats = {'total': _count_submissions(), 'today': _count_submissions(start=today)}
    stats.update(overall)
    return stats


def recent_activity(limit=15):
    now = local_now()
    recent = (
        with_answers(Submission.query)
        .order_by(Submission.created_at.desc(), Submission.id.desc())
        .limit(limit)
        .all()
    )
    suspicious_rows = (
        db.session.query(
            Submission.ip_address,
            func.count(Submission.id),
            func.min(Submission.created_at),
            func.max(Submission.created_at),
        )
        .filter(Submission.created_at >= now - SUSPICIOUS_WINDOW)
        .group_by(Submission.ip_address)
        .having(func.count(Submission.id) >= SUSPICIOUS_MIN_COUNT)
        .all()
    )
    suspicious = [
        {
            'ip_address': ip,
            'count': count,
            'first_submission': first.isoformat(),
            'last_submission': last.isoformat(),
        }
        for ip, count, first, last in suspicious_rows
    ]
    flagged = {s['ip_address'] for s in suspicious}
    unique_ips = (
        db.session.query(func.count(func.distinct(Submission.ip_address)))
        .filter(Submission.created_at >= _day_start(now))
        .scalar()
    )
    return {
        'recent': [
            {
                'id': s.id,
                'answers': s.answers_by_key(),
                'ip_address': s.ip_address,
                'queue_id': s.queue_id,
                'created_at': s.created_at.isoformat(),
                'isSuspicious': s.ip_address in flagged,
            }
            for s in recent
        ],
        'suspicious': suspicious,
        'uniqueIpsToday': unique_ips or 0,
        'timestamp': now.isoformat(),
    }


def heatmap(days=30):
    """Submission counts per weekday (0 = Sunday) and hour over the trailing ``days``."""
    since = local_now() - timedelta(days=days)
    matrix = [[0] * 24 for _ in range(7)]
    created = db.session.query(Submission.created_at).filter(Submission.created_at >= since).all()
    for (ts,) in created:
        matrix[(ts.weekday() + 1) % 7][ts.hour] += 1
    return {
        'matrix': matrix,
        'maxCount': max(max(row) for row in matrix),
        'total': len(created),
        'days': days,
    }


def monthly_report(year, month):
    start, end = month_bounds(year, month)
    questions = active_questions()
    breakdown = question_breakdown(
        questions, _answer_counts(start, end, question_ids=[q.id for q in questions]), with_percentages=True,
    )
    overall = overall_counts(questions, breakdown)
    total = _count_submissions(start, end)

    daily_total = Counter(
        ts.date() for (ts,) in
        _in_period(db.session.query(Submission.created_at), start, end).all()
    )
    daily_satisfied = Counter()
    if questions:
        satisfied_times = _in_period(
            db.session.query(Submission.created_at)
            .join(Response, Response.submission_id == Submission.id)
            .join(AnswerOption, Response.option_id == AnswerOption.id)
            .filter(Response.question_id == questions[-1].id, AnswerOption.sentiment == 'positive'),
            start, end,
        ).all()
        daily_satisfied.update(ts.date() for (ts,) in satisfied_times)

    stats = {'total': total, 'questions': breakdown}
    stats.update(overall)
    stats['satisfactionPct'] = percent(overall['satisfied'], total)
    return {
        'year': year,
        'month': month,
        'stats': stats,
        'daily': [
            {'date': day.isoformat(), 'total': daily_total[day], 'satisfied': daily_satisfied[day]}
            for day in sorted(daily_total)
        ],
    }


def available_months(limit=24):
    year_col = extract('year', Submission.created_at)
    month_col = extract('month', Submission.created_at)
    rows = (
        db.session.query(year_col, month_col, func.count(Submission.id))
        .group_by(year_col, month_col)
        .order_by(year_col.desc(), month_col.desc())
        .limit(limit)
        .all()
    )
    return [{'year': int(y), 'month': int(m), 'count': c} for y, m, c in rows]


def audit_logs(page=1, limit=20):
    try:
        page = max(1, int(page))
        limit = min(100, max(1, int(limit)))
    except (TypeError, ValueError):
        raise ValidationError('Invalid page or limit')
    total = _count_submissions()
    rows = (
        with_answers(Submission.query)
        .order_by(Submission.created_at.desc(), Submission.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        'logs': [
            {
                'id': s.id,
                'ip_address': s.ip_address,
                'user_agent': s.user_agent,
                'queue_id': s.queue_id,
                'answers': s.answers_by_key(),
                'created_at': s.created_at.isoformat(),
            }
            for s in rows
        ],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'totalPages': math.ceil(total / limit) if total else 0,
        },
    }
