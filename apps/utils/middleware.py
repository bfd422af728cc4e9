# utils/middleware.py

import logging
from utils.context import set_request_context, clear_request_context

logger = logging.getLogger(__name__)


class AuditContextMiddleware:
    """
    Middleware to capture request context for audit logging.

    The origin address, agent string and path recorded on every
    AccessControlLog entry come from here.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        set_request_context(request=request)

        try:
            response = self.get_response(request)
        finally:
            # Always clear context after request
            clear_request_context()

        return response

    def process_exception(self, request, exception):
        """Clean up context on exception"""
        clear_request_context()
        return None
