import logging

from starlette.requests import HTTPConnection  # type: ignore[import-not-found]

from ...config import config


logger = logging.getLogger(__name__)

UNDEFINED_USER = "-"
USER_NAME_PARAM = "user.name"


def get_user_header_name() -> str:
    return str(config.AUTH.USER_HEADER or "").strip()


def is_defined_user(user: str | None) -> bool:
    return bool(user) and user != UNDEFINED_USER


def validate_identity_config() -> None:
    header_name = get_user_header_name()
    logger.info(
        "Caller identity sources: header=%s, query parameter=%s; security enabled: %s",
        header_name or "<none>",
        USER_NAME_PARAM,
        bool(config.AUTH.SECURITY_ENABLED),
    )
    if config.AUTH.SECURITY_ENABLED and not header_name:
        logger.warning(
            "Security is enabled but no trusted user header is configured; "
            "callers are identified by the %s query parameter only",
            USER_NAME_PARAM,
        )


def resolve_caller(connection: HTTPConnection) -> str:
    """
    Identify the caller of a request.

    A trusted proxy header wins over the pseudo-authentication `user.name`
    query parameter. With security enabled and a header configured, only
    the header is trusted. Requests carrying no usable identity are
    attributed to the undefined user `-`.
    """
    header_name = get_user_header_name()
    if header_name:
        value = connection.headers.get(header_name)
        if value and value.strip():
            return value.strip()
        if config.AUTH.SECURITY_ENABLED:
            return UNDEFINED_USER
    param = connection.query_params.get(USER_NAME_PARAM)
    if param and param.strip():
        return param.strip()
    return UNDEFINED_USER


async def get_caller(connection: HTTPConnection) -> str:
    return resolve_caller(connection)
