# CSV + PDF exports for the admin reports page.
# Both read the same numbers as the monthly report so downloads never drift from the dashboard.

import csv
import io

import fitz  # PyMuPDF
from sqlalchemy.orm import selectinload

from controllers import report_controller as reports
from models.database import local_now
from models.response import Submission

MONTH_NAMES = [
    'Januari', 'Februari', 'Maret', 'April', 'Mei', 'Juni',
    'Juli', 'Agustus', 'September', 'Oktober', 'November', 'Desember',
]

PAGE_WIDTH, PAGE_HEIGHT = 595, 842   # A4 in points
MARGIN = 50

PRIMARY = (0.059, 0.180, 0.361)      # #0F2E5C
GREEN = (0.157, 0.655, 0.271)
ORANGE = (0.953, 0.612, 0.071)
RED = (0.863, 0.208, 0.271)
GRAY = (0.424, 0.459, 0.490)
LIGHT = (0.973, 0.976, 0.980)
TRACK = (0.914, 0.925, 0.937)
WHITE = (1, 1, 1)
BLACK = (0, 0, 0)


def csv_filename(year=None, month=None):
    return f"survey-data-{year or 'all'}-{month or 'all'}.csv"


def pdf_filename(year, month):
    return f"laporan-survey-{year}-{month}.pdf"


def export_csv(year=None, month=None):
    """One row per submission, one column per active question holding the chosen option label."""
    questions = reports.active_questions()
    labels = {o.id: o.option_label for q in questions for o in q.options}

    query = Submission.query.options(selectinload(Submission.responses))
    if year and month:
        start, end = reports.month_bounds(year, month)
        query = query.filter(Submission.created_at >= start, Submission.created_at < end)
    submissions = query.order_by(Submission.created_at.desc(), Submission.id.desc()).all()

    buf = io.StringIO()
    w = csv.writer(buf)
    w.writerow(['ID'] + [q.question_text for q in questions] + ['Tanggal'])
    for s in submissions:
        chosen = {r.question_id: r.option_id for r in s.responses}
        w.writerow(
            [s.id]
            + [labels.get(chosen.get(q.id), '') for q in questions]
            + [s.created_at.isoformat()]
        )
    return buf.getvalue()


def _text(page, rect, text, size=10, bold=False, color=BLACK, align=fitz.TEXT_ALIGN_LEFT):
    page.insert_textbox(
        fitz.Rect(*rect), str(text),
        fontsize=size, fontname='hebo' if bold else 'helv', color=color, align=align,
    )


def _fill(page, rect, color):
    page.draw_rect(fitz.Rect(*rect), color=None, fill=color)


def export_pdf(year, month):
    """Render the monthly report as an A4 PDF and return its bytes."""
    report = reports.monthly_report(year, month)
    stats = report['stats']
    questions = reports.active_questions()
    last = questions[-1] if questions else None

    def label(sentiment):
        return last.label_for(sentiment) if last else sentiment.title()

    doc = fitz.open()
    page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
    content_w = PAGE_WIDTH - 2 * MARGIN

    # Header
    _fill(page, (0, 0, PAGE_WIDTH, 120), PRIMARY)
    _text(page, (MARGIN, 30, PAGE_WIDTH - MARGIN, 60), 'LAPORAN SURVEY KEPUASAN LAYANAN',
          size=20, bold=True, color=WHITE, align=fitz.TEXT_ALIGN_CENTER)
    _text(page, (MARGIN, 85, PAGE_WIDTH - MARGIN, 105), f"Periode: {MONTH_NAMES[month - 1]} {year}",
          size=13, bold=True, color=WHITE, align=fitz.TEXT_ALIGN_CENTER)

    # Summary cards
    y = 140
    card_w, card_h, gap = 112, 70, 15
    cards = [
        ('Total Responden', stats['total'], PRIMARY),
        (label('positive'), stats['satisfied'], GREEN),
        (label('neutral'), stats['neutral'], ORANGE),
        (label('negative'), stats['unsatisfied'], RED),
    ]
    for i, (caption, value, color) in enumerate(cards):
        x = MARGIN + i * (card_w + gap)
        _fill(page, (x, y, x + card_w, y + card_h), LIGHT)
        _fill(page, (x, y, x + card_w, y + 5), color)
        _text(page, (x, y + 10, x + card_w, y + 46), value, size=22, bold=True, color=color,
              align=fitz.TEXT_ALIGN_CENTER)
        _text(page, (x, y + 48, x + card_w, y + card_h), caption, size=9, color=GRAY,
              align=fitz.TEXT_ALIGN_CENTER)
    y += card_h + 30

    # Satisfaction meter
    if stats['total'] > 0:
        pct = stats['satisfactionPct']
        _text(page, (MARGIN, y, PAGE_WIDTH - MARGIN, y + 18), 'TINGKAT KEPUASAN KESELURUHAN', size=12, bold=True)
        y += 22
        _fill(page, (MARGIN, y, MARGIN + content_w, y + 20), TRACK)
        if pct:
            _fill(page, (MARGIN, y, MARGIN + content_w * pct / 100.0, y + 20), GREEN)
        _text(page, (MARGIN + 5, y + 2, MARGIN + 80, y + 20), f"{pct}%", size=11, bold=True,
              color=WHITE if pct >= 10 else BLACK)
        y += 40

    # Per-question table
    _text(page, (MARGIN, y, PAGE_WIDTH - MARGIN, y + 18), 'HASIL PER PERTANYAAN', size=12, bold=True, color=PRIMARY)
    y += 22
    col_x = [MARGIN, MARGIN + 215, MARGIN + 310, MARGIN + 405]
    row_h = 25
    table_top = y
    _fill(page, (MARGIN, y, MARGIN + content_w, y + row_h), PRIMARY)
    for x, heading in zip(col_x, ['Pertanyaan', 'Positif', 'Netral', 'Negatif']):
        _text(page, (x + 5, y + 7, x + 210, y + row_h), heading, size=10, bold=True, color=WHITE)
    y += row_h

    for index, q in enumerate(questions):
        entry = stats['questions'][q.question_key]
        height = row_h * 2 if len(q.question_text) > 40 else row_h
        if y + height > PAGE_HEIGHT - MARGIN:
            page.draw_rect(fitz.Rect(MARGIN, table_top, MARGIN + content_w, y), color=TRACK, width=1)
            page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
            y = table_top = MARGIN
        if index % 2 == 0:
            _fill(page, (MARGIN, y, MARGIN + content_w, y + height), LIGHT)
        _text(page, (col_x[0] + 5, y + 5, col_x[1] - 5, y + height), f"{index + 1}. {q.question_text}", size=8)
        for x, sentiment, color in zip(col_x[1:], ('positive', 'neutral', 'negative'), (GREEN, ORANGE, RED)):
            _text(page, (x + 5, y + 7, x + 95, y + height), f"{entry[sentiment]} ({entry[sentiment + '_pct']}%)",
                  size=10, color=color)
        y += height
    page.draw_rect(fitz.Rect(MARGIN, table_top, MARGIN + content_w, y), color=TRACK, width=1)

    # Footer
    y += 30
    if y > PAGE_HEIGHT - MARGIN - 30:
        page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        y = MARGIN
    page.draw_line(fitz.Point(MARGIN, y), fitz.Point(PAGE_WIDTH - MARGIN, y), color=TRACK, width=1)
    generated = local_now().strftime('%d-%m-%Y %H:%M:%S')
    _text(page, (MARGIN, y + 10, PAGE_WIDTH - MARGIN, y + 25),
          f"Laporan ini dibuat otomatis pada: {generated}", size=9, color=GRAY, align=fitz.TEXT_ALIGN_CENTER)

    doc.set_metadata({'title': f"Laporan Survey {MONTH_NAMES[month - 1]} {year}", 'producer': 'survey-kiosk'})
    data = doc.tobytes()
    doc.close()
    return data
