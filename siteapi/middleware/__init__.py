from .admin_guard import admin_required
from .admission import admission_required, client_ip
from .request_id import init_request_id_middleware
from .security_headers import init_security_headers

__all__ = [
    "admin_required",
    "admission_required",
    "client_ip",
    "init_request_id_middleware",
    "init_security_headers",
]
