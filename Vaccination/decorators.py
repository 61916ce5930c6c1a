from functools import wraps

from rest_framework import status
from rest_framework.response import Response

from .models import Account


def resolve_account(request):
    """Active staff account of the authenticated user, matched by email."""
    user = getattr(request, 'user', None)
    if not user or not user.is_authenticated or not user.email:
        return None
    return Account.objects.filter(email__iexact=user.email, is_active=True).first()


def _forbidden():
    return Response({"message": "Access denied"}, status=status.HTTP_403_FORBIDDEN)


def account_required(view_func):
    """
    Attach the caller's Account as ``request.account``.
    Blocks users without an active staff account.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        account = resolve_account(request)
        if account is None:
            return _forbidden()
        request.account = account
        return view_func(request, *args, **kwargs)

    return wrapper


def agent_required(view_func):
    """Restrict view to agents attached to a health center."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        account = resolve_account(request)
        if account is None or not account.is_agent or not account.health_center_id:
            return _forbidden()
        request.account = account
        return view_func(request, *args, **kwargs)

    return wrapper


def national_required(view_func):
    """Restrict view to super administrators and national staff."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        account = resolve_account(request)
        if account is None or not account.is_national:
            return _forbidden()
        request.account = account
        return view_func(request, *args, **kwargs)

    return wrapper
