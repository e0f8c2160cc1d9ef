"""
Branch context middleware for the Steel ERP.

Sets request.branch_code from the X-Branch-Code header (API clients) or the
session (browser logins that picked a branch). The code is only resolved and
access-checked when a view asks for it (erp_system.security.get_current_branch),
because API callers are authenticated by DRF after middleware runs.
"""
import logging

logger = logging.getLogger(__name__)

BRANCH_HEADER = 'HTTP_X_BRANCH_CODE'
SESSION_BRANCH_KEY = 'branch_code'


class BranchMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        code = (request.META.get(BRANCH_HEADER) or '').strip().upper()

        if not code:
            session = getattr(request, 'session', None)
            if session is not None:
                code = (session.get(SESSION_BRANCH_KEY) or '').strip().upper()

        request.branch_code = code or None
        if code:
            logger.debug(f"[BranchMiddleware] branch_code={code} path={request.path}")

        return self.get_response(request)
