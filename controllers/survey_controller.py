import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from controllers.errors import StorageError, ValidationError
from models.database import db, local_now
from models.question import AnswerOption, Question
from models.response import Response, Submission

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('survey.audit')

QUESTION_KEY = re.compile(r'^q(\d+)$')


@dataclass(frozen=True)
class OptionId:
    value: int


@dataclass(frozen=True)
class ValueCode:
    value: str


Answer = Union[OptionId, ValueCode]


def parse_answer(raw) -> Optional[Answer]:
    # bool is an int subclass but never a valid option id
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return OptionId(raw)
    if isinstance(raw, str) and raw.strip():
        return ValueCode(raw.strip())
    return None


def extract_answers(payload):
    """Pull the answer mapping out of a request body; ``answers`` is accepted as an alias."""
    if not isinstance(payload, dict):
        raise ValidationError('Invalid survey data')
    answers = payload.get('questions')
    if answers is None:
        answers = payload.get('answers')
    if not isinstance(answers, dict):
        raise ValidationError('Invalid survey data')
    return answers


def resolve_option(question: Question, answer: Answer) -> Optional[AnswerOption]:
    for option in question.options:
        if isinstance(answer, OptionId) and option.id == answer.value:
            return option
        if isinstance(answer, ValueCode) and option.option_value == answer.value:
            return option
    return None


class SurveyRecorder:
    def submit(self, answers, client_ip, user_agent, queue_id=None):
        if not isinstance(answers, dict):
            raise ValidationError('Invalid survey data')

        active = {q.question_key: q for q in Question.query.filter_by(is_active=True).all()}
        resolved = []
        for key, raw in answers.items():
            question = active.get(key) if isinstance(key, str) and QUESTION_KEY.match(key) else None
            if question is None:
                logger.debug("Ignoring unknown answer key %r", key)
                continue
            answer = parse_answer(raw)
            option = resolve_option(question, answer) if answer is not None else None
            if option is None:
                logger.warning("Dropping unresolved answer %r for %s", raw, key)
                continue
            resolved.append((question, option))

        submission = Submission(
            ip_address=(client_ip or 'unknown')[:45],
            user_agent=(user_agent or 'unknown')[:500],
            queue_id=str(queue_id)[:32] if queue_id else None,
            created_at=local_now(),
        )
        try:
            db.session.add(submission)
            db.session.flush()
            for question, option in resolved:
                db.session.add(Response(submission_id=submission.id, question_id=question.id, option_id=option.id))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Survey submission failed for %s", client_ip)
            raise StorageError('Failed to save survey')

        audit_logger.info('[AUDIT] %s', json.dumps({
            'event': 'SURVEY_SUBMITTED',
            'timestamp': submission.created_at.isoformat(),
            'submissionId': submission.id,
            'ip': submission.ip_address,
            'userAgent': submission.user_agent,
            'queueId': submission.queue_id,
            'answers': {q.question_key: o.option_value for q, o in resolved},
        }, ensure_ascii=False))
        return submission.id


survey_recorder = SurveyRecorder()
