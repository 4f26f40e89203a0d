from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from planner import exceptions as errors

STATUS_BY_KIND = {
    errors.ValidationError.kind: status.HTTP_400_BAD_REQUEST,
    errors.ConflictError.kind: status.HTTP_409_CONFLICT,
    errors.AuthorizationError.kind: status.HTTP_403_FORBIDDEN,
    errors.NotFoundError.kind: status.HTTP_404_NOT_FOUND,
    errors.PreconditionError.kind: status.HTTP_412_PRECONDITION_FAILED,
    errors.ExternalDependencyError.kind: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def planning_exception_handler(exc, context):
    if isinstance(exc, errors.PlanningError):
        code = STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST)
        data = exc.as_dict()
        data['status_code'] = code
        return Response(data, status=code)

    response = exception_handler(exc, context)

    if response is not None and isinstance(response.data, dict):
        response.data['status_code'] = response.status_code
        response.data['detail'] = str(exc)

    return response
