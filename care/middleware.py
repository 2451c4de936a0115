import logging
import re
import threading
import uuid

_local = threading.local()

_VALID_ID = re.compile(r'^[A-Za-z0-9._-]{1,64}$')


def current_request_id():
    return getattr(_local, 'request_id', None)


class RequestIdMiddleware:
    """Tag every request with an id, echoed in ``X-Request-ID`` and the logs.

    A well-formed id supplied by a proxy is reused; anything else is
    replaced with a fresh one.
    """
    HEADER = 'X-Request-ID'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        incoming = request.META.get('HTTP_X_REQUEST_ID', '')
        request_id = incoming if _VALID_ID.match(incoming) else uuid.uuid4().hex
        request.request_id = request_id
        _local.request_id = request_id
        try:
            response = self.get_response(request)
        finally:
            _local.request_id = None
        response[self.HEADER] = request_id
        return response


class RequestIdLogFilter(logging.Filter):
    def filter(self, record):
        record.request_id = current_request_id() or '-'
        return True
