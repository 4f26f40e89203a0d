"""Course-progress sources.

The progress calculator asks a completion source for a student's
completion ratio (0..1) in a course. The local source reads the
`CourseProgress` table; the HTTP source asks the course-content service.
Any failure surfaces as `ExternalDependencyError` so callers can keep
their last good snapshot.
"""
import logging

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from courses import models as course_models
from planner import exceptions as errors

logger = logging.getLogger(__name__)


def _checked_ratio(value, student_id, course_id) -> float:
    try:
        ratio = float(value)
    except (TypeError, ValueError):
        raise errors.ExternalDependencyError(
            f'Completion for student={student_id} course={course_id} is not a number: {value!r}'
        )
    if ratio < 0.0 or ratio > 1.0:
        raise errors.ExternalDependencyError(
            f'Completion for student={student_id} course={course_id} out of range: {ratio}'
        )
    return ratio


class LocalCompletionSource:
    """Reads completion from `CourseProgress.progress_percentage`."""

    def get_completion_ratio(self, student_id: int, course_id: int) -> float:
        row = (
            course_models.CourseProgress.objects
            .filter(student_id=student_id, course_id=course_id)
            .values_list('progress_percentage', flat=True)
            .first()
        )
        if row is None:
            return 0.0
        return _checked_ratio(row / 100.0, student_id, course_id)


class HttpCompletionSource:
    """Asks the course-content service for completion.

    Expects `GET {base_url}/students/{student}/courses/{course}/completion`
    to answer `{"completion_ratio": <0..1>}`.
    """

    def __init__(self, base_url=None, timeout=None, api_key=None):
        self.base_url = (base_url or getattr(settings, 'COMPLETION_SOURCE_URL', '')).rstrip('/')
        self.timeout = float(timeout or getattr(settings, 'COMPLETION_SOURCE_TIMEOUT_SECONDS', 5.0) or 5.0)
        self.api_key = api_key if api_key is not None else getattr(settings, 'COMPLETION_SOURCE_API_KEY', '')

    def get_completion_ratio(self, student_id: int, course_id: int) -> float:
        if not self.base_url:
            raise errors.ExternalDependencyError('COMPLETION_SOURCE_URL is not configured')

        url = f'{self.base_url}/students/{student_id}/courses/{course_id}/completion'
        headers = {'Authorization': f'Bearer {self.api_key}'} if self.api_key else {}
        try:
            response = requests.get(url, headers=headers, timeout=self.timeout)
        except requests.Timeout:
            logger.warning('Completion source timed out: student=%s course=%s', student_id, course_id)
            raise errors.ExternalDependencyError(f'Completion source timed out after {self.timeout}s')
        except requests.RequestException as exc:
            logger.warning('Completion source unreachable: student=%s course=%s err=%s', student_id, course_id, exc)
            raise errors.ExternalDependencyError(f'Completion source unreachable: {exc}')

        if response.status_code == 404:
            return 0.0
        if not 200 <= response.status_code < 300:
            raise errors.ExternalDependencyError(
                f'Completion source answered {response.status_code}',
                detail={'response_status_code': response.status_code},
            )
        try:
            body = response.json()
        except ValueError:
            raise errors.ExternalDependencyError('Completion source returned invalid JSON')
        return _checked_ratio(body.get('completion_ratio'), student_id, course_id)


def get_completion_source():
    """Build the configured completion source."""
    dotted = getattr(settings, 'COMPLETION_SOURCE', '')
    if dotted:
        return import_string(dotted)()
    if getattr(settings, 'COMPLETION_SOURCE_URL', ''):
        return HttpCompletionSource()
    return LocalCompletionSource()
