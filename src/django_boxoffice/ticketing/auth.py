"""Operator authentication for the scanner and staff API views."""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING

from django.http import JsonResponse

from django_boxoffice.settings import get_config

if TYPE_CHECKING:
    from django.http import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

OPERATOR_TOKEN_HEADER = "HTTP_X_OPERATOR_TOKEN"


def is_operator(request: HttpRequest) -> bool:
    """Return ``True`` for a staff user or a request bearing the operator token.

    The token is read from the ``X-Operator-Token`` header and compared with
    ``BOXOFFICE["operator_token"]`` in constant time. When no token is
    configured, only staff users are accepted.
    """
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated and user.is_staff:
        return True

    expected = get_config().operator_token
    supplied = request.META.get(OPERATOR_TOKEN_HEADER, "")
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied.encode(), expected.encode())


class OperatorRequiredMixin:
    """View mixin that answers 401 unless the caller is an operator.

    Door scanners authenticate with the shared operator token; staff can
    also use their Django session.
    """

    def dispatch(self, request: HttpRequest, *args: object, **kwargs: object) -> HttpResponse:
        """Reject non-operators before dispatching the view."""
        if not is_operator(request):
            logger.warning("Rejected unauthenticated operator request to %s", request.path)
            return JsonResponse({"error": "Operator credentials required."}, status=401)
        return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]
