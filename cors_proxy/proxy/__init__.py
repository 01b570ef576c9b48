from .headers import set_no_cache, set_cors, prepare_downstream_headers
from .redirects import rewrite_redirect_location
from .target import TargetRejection, is_valid_target, resolve_target

__all__ = [
    "TargetRejection",
    "is_valid_target",
    "resolve_target",
    "rewrite_redirect_location",
    "set_no_cache",
    "set_cors",
    "prepare_downstream_headers",
]
