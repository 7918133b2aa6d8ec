import logging

from sqlalchemy import func

from controllers.errors import ConflictError, NotFoundError, ValidationError
from models.database import db
from models.question import (
    DEFAULT_QUESTIONS, SENTIMENTS, AnswerOption, Question, default_options, sync_id_sequence,
)
from models.response import Response

logger = logging.getLogger(__name__)

LABEL_FIELDS = {
    'option_positive': 'positive',
    'option_neutral': 'neutral',
    'option_negative': 'negative',
}


def _ordered(query):
    return query.order_by(Question.question_order.asc(), Question.id.asc())


def _clean_text(value, field, max_len=500):
    text = value.strip() if isinstance(value, str) else ''
    if not text:
        raise ValidationError(f'{field} is required')
    if len(text) > max_len:
        raise ValidationError(f'{field} is too long')
    return text


def _flag(value, field):
    if not isinstance(value, bool):
        raise ValidationError(f'{field} must be true or false')
    return value


def _build_options(options):
    """Options supplied by the admin must cover each sentiment exactly once."""
    if not isinstance(options, list) or len(options) != len(SENTIMENTS):
        raise ValidationError('Exactly three options are required')
    built = []
    for i, item in enumerate(options, start=1):
        if not isinstance(item, dict):
            raise ValidationError('Invalid option')
        sentiment = item.get('sentiment')
        if sentiment not in SENTIMENTS:
            raise ValidationError(f'Invalid sentiment: {sentiment!r}')
        built.append(AnswerOption(
            option_value=_clean_text(item.get('value'), 'Option value', 50),
            option_label=_clean_text(item.get('label'), 'Option label', 100),
            option_order=i,
            sentiment=sentiment,
        ))
    if sorted(o.sentiment for o in built) != sorted(SENTIMENTS):
        raise ValidationError('Each sentiment must be used exactly once')
    if len({o.option_value for o in built}) != len(built):
        raise ValidationError('Option values must be unique')
    return built


class QuestionCatalog:
    def list_active(self):
        return _ordered(Question.query.filter_by(is_active=True)).all()

    def list_all(self):
        return _ordered(Question.query).all()

    def get(self, question_id):
        question = db.session.get(Question, question_id)
        if question is None:
            raise NotFoundError('Question not found')
        return question

    def create(self, text, subtitle=None, options=None, is_required=True):
        text = _clean_text(text, 'Question text')
        built = _build_options(options) if options else default_options()
        next_order = (db.session.query(func.max(Question.question_order)).scalar() or 0) + 1
        question = Question(
            question_text=text,
            question_subtitle=(subtitle or '').strip() or None,
            question_order=next_order,
            is_required=_flag(is_required, 'is_required'),
            options=built,
        )
        db.session.add(question)
        db.session.commit()
        logger.info("Question %s created at position %s", question.id, next_order)
        return question

    def update(self, question_id, fields):
        if not isinstance(fields, dict):
            raise ValidationError('Invalid question data')
        question = self.get(question_id)

        if 'question_text' in fields:
            question.question_text = _clean_text(fields['question_text'], 'Question text')
        if 'question_subtitle' in fields:
            question.question_subtitle = (fields['question_subtitle'] or '').strip() or None
        if 'is_active' in fields:
            question.is_active = _flag(fields['is_active'], 'is_active')
        if 'is_required' in fields:
            question.is_required = _flag(fields['is_required'], 'is_required')
        for field, sentiment in LABEL_FIELDS.items():
            if field not in fields:
                continue
            option = question.option_for(sentiment)
            if option is None:
                raise NotFoundError(f'Question has no {sentiment} option')
            option.option_label = _clean_text(fields[field], 'Option label', 100)

        db.session.commit()
        logger.info("Question %s updated", question.id)
        return question

    def delete(self, question_id):
        question = self.get(question_id)
        used = db.session.query(Response.id).filter_by(question_id=question.id).first()
        if used is not None:
            raise ConflictError('Question already has responses; deactivate it instead')
        db.session.delete(question)
        db.session.commit()
        logger.info("Question %s deleted", question_id)

    def reorder(self, items):
        if not isinstance(items, list):
            raise ValidationError('Order must be a list')
        updated = 0
        for item in items:
            try:
                question_id, position = int(item['id']), int(item['order'])
            except (KeyError, TypeError, ValueError):
                raise ValidationError('Each entry needs an id and an order')
            question = db.session.get(Question, question_id)
            if question is None:
                continue
            question.question_order = position
            updated += 1
        db.session.commit()
        return updated

    def reset_to_defaults(self):
        seed_ids = set()
        for order, seed in enumerate(DEFAULT_QUESTIONS, start=1):
            seed_ids.add(seed['id'])
            question = db.session.get(Question, seed['id'])
            if question is None:
                question = Question(id=seed['id'], options=default_options(seed['labels']))
                db.session.add(question)
            question.question_text = seed['text']
            question.question_subtitle = seed['subtitle']
            question.question_order = order
            question.is_active = True
            question.is_required = True
            self._restore_options(question, seed['labels'])

        for question in Question.query.filter(Question.id.notin_(seed_ids)).all():
            question.is_active = False

        db.session.commit()
        sync_id_sequence()
        logger.info("Questions reset to defaults")
        return self.list_active()

    def _restore_options(self, question, labels):
        # Existing option rows keep their ids so stored responses stay valid
        fresh = default_options(labels)
        for template in fresh:
            option = question.option_for(template.sentiment)
            if option is None:
                question.options.append(template)
                continue
            option.option_value = template.option_value
            option.option_label = template.option_label
            option.option_order = template.option_order


question_catalog = QuestionCatalog()
