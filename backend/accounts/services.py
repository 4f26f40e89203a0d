"""Identity and authorization helpers used by the planning services.

Roles are a closed set; every predicate below matches the role values
explicitly so adding a role forces a decision here.
"""
import logging

from django.contrib.auth import get_user_model

from planner import exceptions as errors

logger = logging.getLogger(__name__)


def _role_of(user):
    if user is None:
        return None
    if getattr(user, 'is_superuser', False):
        return get_user_model().Role.ADMIN
    return getattr(user, 'role', None)


def resolve_actor(actor_or_id):
    """Return the user instance for an actor given as a user or an id."""
    User = get_user_model()
    if isinstance(actor_or_id, User):
        return actor_or_id
    if actor_or_id is None:
        raise errors.AuthorizationError('An authenticated actor is required')
    try:
        return User.objects.get(pk=actor_or_id, is_active=True)
    except User.DoesNotExist:
        raise errors.AuthorizationError(f'Unknown actor {actor_or_id}')


def resolve_role(actor_or_id):
    return _role_of(resolve_actor(actor_or_id))


def is_admin(user) -> bool:
    return _role_of(user) == get_user_model().Role.ADMIN


def can_manage_cohorts(user) -> bool:
    Role = get_user_model().Role
    role = _role_of(user)
    if role in (Role.ADMIN, Role.STAFF):
        return True
    if role in (Role.TEACHER, Role.STUDENT, None):
        return False
    logger.warning('Unhandled role %s for user=%s', role, getattr(user, 'pk', None))
    return False


def can_teach(user) -> bool:
    Role = get_user_model().Role
    role = _role_of(user)
    if role in (Role.TEACHER, Role.ADMIN):
        return True
    if role in (Role.STAFF, Role.STUDENT, None):
        return False
    logger.warning('Unhandled role %s for user=%s', role, getattr(user, 'pk', None))
    return False


def can_mark_attendance(user, session) -> bool:
    """Only the session's teacher or an admin may record attendance."""
    if user is None:
        return False
    if is_admin(user):
        return True
    return session.teacher_id == user.pk


def require_cohort_manager(actor):
    user = resolve_actor(actor)
    if not can_manage_cohorts(user):
        raise errors.AuthorizationError('Only admin or staff may manage promotions')
    return user
