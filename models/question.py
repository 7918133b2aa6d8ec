from models.database import db, local_now

SENTIMENTS = ("positive", "neutral", "negative")

# Seed set restored by "reset to defaults"; ids are stable (q1..q5)
DEFAULT_OPTIONS = [
    ("sangat_baik", "Sangat Baik", "positive"),
    ("cukup_baik", "Cukup Baik", "neutral"),
    ("kurang_baik", "Kurang Baik", "negative"),
]

DEFAULT_QUESTIONS = [
    {
        "id": 1,
        "text": "Bagaimana penilaian Anda terhadap KECEPATAN layanan kami?",
        "subtitle": "Waktu tunggu dan kecepatan proses pelayanan",
        "labels": ("Sangat Baik", "Cukup Baik", "Kurang Baik"),
    },
    {
        "id": 2,
        "text": "Bagaimana penilaian Anda terhadap KERAMAHAN petugas kami?",
        "subtitle": "Sikap dan kesopanan petugas saat melayani",
        "labels": ("Sangat Baik", "Cukup Baik", "Kurang Baik"),
    },
    {
        "id": 3,
        "text": "Bagaimana penilaian Anda terhadap KEJELASAN informasi yang diberikan?",
        "subtitle": "Informasi persyaratan dan prosedur layanan",
        "labels": ("Sangat Baik", "Cukup Baik", "Kurang Baik"),
    },
    {
        "id": 4,
        "text": "Bagaimana penilaian Anda terhadap FASILITAS yang tersedia?",
        "subtitle": "Kenyamanan ruang tunggu dan sarana pendukung",
        "labels": ("Sangat Baik", "Cukup Baik", "Kurang Baik"),
    },
    {
        "id": 5,
        "text": "Secara keseluruhan, bagaimana KEPUASAN Anda terhadap layanan kami?",
        "subtitle": "Penilaian umum atas pengalaman Anda hari ini",
        "labels": ("Sangat Puas", "Cukup Puas", "Kurang Puas"),
    },
]


class Question(db.Model):
    __tablename__ = 'questions'
    id = db.Column(db.Integer, primary_key=True)
    question_text = db.Column(db.String(500), nullable=False)
    question_subtitle = db.Column(db.String(500))
    question_order = db.Column(db.Integer, nullable=False, default=0, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=local_now)
    updated_at = db.Column(db.DateTime, default=local_now, onupdate=local_now)

    options = db.relationship(
        'AnswerOption',
        back_populates='question',
        cascade='all, delete-orphan',
        order_by='AnswerOption.option_order',
    )

    @property
    def question_key(self):
        return f"q{self.id}"

    def option_for(self, sentiment):
        for option in self.options:
            if option.sentiment == sentiment:
                return option
        return None

    def label_for(self, sentiment):
        option = self.option_for(sentiment)
        return option.option_label if option else ''

    def to_dict(self):
        return {
            'id': self.id,
            'question_key': self.question_key,
            'question_text': self.question_text,
            'question_subtitle': self.question_subtitle or '',
            'question_order': self.question_order,
            'is_active': bool(self.is_active),
            'is_required': bool(self.is_required),
            'option_positive': self.label_for('positive'),
            'option_neutral': self.label_for('neutral'),
            'option_negative': self.label_for('negative'),
            'options': [o.to_dict() for o in self.options],
        }


class AnswerOption(db.Model):
    __tablename__ = 'answer_options'
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False, index=True)
    option_value = db.Column(db.String(50), nullable=False)   # value code sent by the kiosk
    option_label = db.Column(db.String(100), nullable=False)
    option_order = db.Column(db.Integer, nullable=False, default=0)
    sentiment = db.Column(db.Enum(*SENTIMENTS, name='sentiment'), nullable=False, default='neutral')

    question = db.relationship('Question', back_populates='options')

    def to_dict(self):
        return {
            'id': self.id,
            'value': self.option_value,
            'label': self.option_label,
            'order': self.option_order,
            'sentiment': self.sentiment,
        }


def default_options(labels=None):
    labels = labels or [label for _, label, _ in DEFAULT_OPTIONS]
    return [
        AnswerOption(option_value=value, option_label=label, option_order=i, sentiment=sentiment)
        for i, ((value, _, sentiment), label) in enumerate(zip(DEFAULT_OPTIONS, labels), start=1)
    ]


def seed_default_questions():
    """Insert the default question set when the catalog is empty."""
    if Question.query.first() is not None:
        return False
    for order, seed in enumerate(DEFAULT_QUESTIONS, start=1):
        q = Question(
            id=seed['id'],
            question_text=seed['text'],
            question_subtitle=seed['subtitle'],
            question_order=order,
            options=default_options(seed['labels']),
        )
        db.session.add(q)
    db.session.commit()
    sync_id_sequence()
    return True


def sync_id_sequence():
    # Explicit ids leave PostgreSQL serial sequences behind
    if db.engine.dialect.name != 'postgresql':
        return
    db.session.execute(db.text(
        "SELECT setval(pg_get_serial_sequence('questions', 'id'), (SELECT MAX(id) FROM questions))"
    ))
    db.session.commit()
