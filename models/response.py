from models.database import db, local_now


class Submission(db.Model):
    __tablename__ = 'survey_submissions'
    id = db.Column(db.Integer, primary_key=True)          # one row per kiosk interaction
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    queue_id = db.Column(db.String(32))                   # queue ticket typed at the kiosk
    created_at = db.Column(db.DateTime, default=local_now, nullable=False, index=True)

    responses = db.relationship('Response', back_populates='submission', cascade='all, delete-orphan')

    def answers_by_key(self):
        return {r.question.question_key: r.option.option_value for r in self.responses}


class Response(db.Model):
    __tablename__ = 'survey_responses'
    __table_args__ = (
        db.UniqueConstraint('submission_id', 'question_id', name='uq_response_submission_question'),
    )
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('survey_submissions.id', ondelete='CASCADE'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False, index=True)
    option_id = db.Column(db.Integer, db.ForeignKey('answer_options.id', ondelete='CASCADE'), nullable=False)

    submission = db.relationship('Submission', back_populates='responses')
    question = db.relationship('Question')
    option = db.relationship('AnswerOption')
