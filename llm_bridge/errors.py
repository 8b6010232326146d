"""
Error taxonomy shared by adapters, the registry and the guarded executor.

Every BridgeError carries a numeric ErrorCode that the chat host shows to
users, and logs its origin error when raised so the cause is never lost.
"""

import logging
from enum import IntEnum
from typing import Optional

logger = logging.getLogger(__name__)

ERROR_FORMAT_TEMPLATE = "The plugin failed with error code %s. Please report this to the llm-bridge developers."


class ErrorCode(IntEnum):
    NETWORK_ERROR = 1
    UNSUPPORTED_PROXY_PROTOCOL = 2
    API_KEY_UNAVAILABLE = 100
    API_REQUEST_RESOLVE_CAPTCHA = 101
    API_REQUEST_TIMEOUT = 102
    API_REQUEST_FAILED = 103
    MODEL_ADAPTER_NOT_FOUND = 300
    MODEL_NOT_FOUND = 301
    PRESET_NOT_FOUND = 302
    MODEL_INIT_ERROR = 303
    EMBEDDINGS_INIT_ERROR = 304
    VECTOR_STORE_INIT_ERROR = 305
    CHAT_HISTORY_INIT_ERROR = 306
    MEMBER_NOT_IN_ROOM = 400
    ROOM_NOT_JOINED = 401
    ROOM_NOT_FOUND_MASTER = 402
    ROOM_TEMPLATE_INVALID = 403
    THE_NAME_FIND_IN_MULTIPLE_ROOMS = 404
    ROOM_NOT_FOUND = 405
    UNKNOWN_ERROR = 999


class BridgeError(Exception):
    """Human-readable error carrying an ErrorCode and the error that caused it."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        origin: Optional[BaseException] = None,
    ):
        super().__init__(ERROR_FORMAT_TEMPLATE % int(code))
        self.code = code
        self.origin = origin

        logger.error("%s BridgeError:%d %s", "=" * 20, int(code), "=" * 20)
        if origin is not None:
            logger.error("Caused by: %r", origin)
            if origin.__cause__ is not None:
                logger.error("Underlying cause: %r", origin.__cause__)

    def __str__(self) -> str:
        return self.args[0]


class RequestTimeout(BridgeError):
    """A guarded call did not settle before its deadline."""

    def __init__(self, origin: Optional[BaseException] = None):
        super().__init__(ErrorCode.API_REQUEST_TIMEOUT, origin)
