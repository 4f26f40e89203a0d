"""Dry-run analysis of legacy enrollments.

Every student is placed in the time window of their latest active
enrollment: the enrollment month gives the intake (August to January is the
September intake, February to July the March intake) and the academic
year; the semester is estimated from how long ago that academic year
started. Students sharing a window and the same set of courses form one
candidate promotion. The grouping is a heuristic, which is why analysis is
kept separate from execution and never writes anything.
"""
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, List, Optional

from django.utils import timezone

from courses import models as course_models
from promotions.services.cohort_store import MAX_SEMESTER

SEPTEMBER = 'september'
MARCH = 'march'


@dataclass
class CandidateCohort:
    name: str
    intake: str
    academic_year: str
    semester: int
    start_date: date
    end_date: date
    student_ids: List[int]
    course_ids: List[int]
    enrollment_ids: List[int]

    def definition(self) -> Dict:
        return {
            'name': self.name,
            'intake': self.intake,
            'academic_year': self.academic_year,
            'semester': self.semester,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'level': f'Year {(self.semester + 1) // 2}',
            'department': 'General',
            'max_students': len(self.student_ids) + 50,
            'description': f'Created from {len(self.enrollment_ids)} legacy enrollments',
        }


@dataclass
class AnalysisReport:
    today: date
    total_enrollments: int = 0
    total_students: int = 0
    total_courses: int = 0
    candidates: List[CandidateCohort] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict:
        data = asdict(self)
        data['today'] = self.today.isoformat()
        for cand in data['candidates']:
            cand['start_date'] = cand['start_date'].isoformat()
            cand['end_date'] = cand['end_date'].isoformat()
        return data


def intake_for_month(month: int) -> str:
    return SEPTEMBER if month >= 8 or month == 1 else MARCH


def academic_start_year(enrolled_on: date) -> int:
    # January enrollments belong to the academic year that started the previous September
    if enrolled_on.month == 1:
        return enrolled_on.year - 1
    return enrolled_on.year


def estimate_semester(intake: str, start_year: int, today: date) -> int:
    years_since = max(0, today.year - start_year)
    if intake == SEPTEMBER:
        return min(MAX_SEMESTER - 1, years_since * 2 + 1)
    return min(MAX_SEMESTER, years_since * 2 + 2)


def window_for(enrolled_on: date, today: date):
    intake = intake_for_month(enrolled_on.month)
    start_year = academic_start_year(enrolled_on)
    academic_year = f'{start_year}-{start_year + 1}'
    semester = estimate_semester(intake, start_year, today)
    if intake == SEPTEMBER:
        start, end = date(start_year, 9, 1), date(start_year + 1, 6, 30)
    else:
        start, end = date(start_year, 3, 1), date(start_year + 1, 12, 30)
    return intake, academic_year, semester, start, end


def analyze(today: Optional[date] = None) -> AnalysisReport:
    today = today or timezone.localdate()
    report = AnalysisReport(today=today)

    enrollments = list(
        course_models.LegacyEnrollment.objects
        .filter(is_active=True)
        .select_related('course', 'student')
        .order_by('student_id', 'enrolled_at', 'id')
    )
    report.total_enrollments = len(enrollments)
    if not enrollments:
        return report

    by_student = defaultdict(list)
    for enr in enrollments:
        by_student[enr.student_id].append(enr)
    report.total_students = len(by_student)
    report.total_courses = len({e.course_id for e in enrollments})

    groups = defaultdict(list)
    for student_id, rows in by_student.items():
        latest = rows[-1]
        window = window_for(timezone.localtime(latest.enrolled_at).date(), today)
        courses = frozenset(e.course_id for e in rows)
        groups[(window, courses)].append(student_id)

    per_window = defaultdict(int)
    for (window, _), _students in groups.items():
        per_window[window] += 1

    seen_in_window = defaultdict(int)
    for (window, courses), student_ids in sorted(groups.items(), key=lambda kv: (kv[0][0], sorted(kv[0][1]))):
        intake, academic_year, semester, start, end = window
        name = f'{intake.capitalize()} {academic_year} - Semester {semester}'
        if per_window[window] > 1:
            seen_in_window[window] += 1
            name = f'{name} (group {seen_in_window[window]})'
        enrollment_ids = [e.pk for sid in student_ids for e in by_student[sid]]
        report.candidates.append(CandidateCohort(
            name=name,
            intake=intake,
            academic_year=academic_year,
            semester=semester,
            start_date=start,
            end_date=end,
            student_ids=sorted(student_ids),
            course_ids=sorted(courses),
            enrollment_ids=sorted(enrollment_ids),
        ))

    course_by_id = {e.course_id: e.course for e in enrollments}
    for course_id, course in sorted(course_by_id.items()):
        if course.instructor_id is None:
            report.warnings.append(f'Course {course.code} has no instructor; its enrollments cannot be migrated')
    for student_id, rows in by_student.items():
        windows = {window_for(timezone.localtime(e.enrolled_at).date(), today)[:2] for e in rows}
        if len(windows) > 1:
            report.warnings.append(
                f'Student {student_id} has enrollments in {len(windows)} intakes; the latest one was used'
            )
    return report
