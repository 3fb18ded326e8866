"""
Error Handler Utility - sanitized error responses for the operator API

Internal exception details are logged with traceback; callers only get a
generic message, so nothing about the throttle's internals leaks through
an HTTP response.

Usage:
    from throttleguard.utils.error_handler import safe_error_response

    try:
        service.apply_settings(new_settings)
    except Exception as e:
        raise safe_error_response(500, "updating login throttle settings", e, logger)
"""

import logging
from fastapi import HTTPException


def safe_error_response(
    status_code: int,
    operation: str,
    exception: Exception,
    logger: logging.Logger
) -> HTTPException:
    """
    Log an exception and build an HTTPException with a generic detail.

    Args:
        status_code: HTTP status code (e.g., 500, 400)
        operation: What failed, phrased for "while <operation>"
        exception: The caught exception
        logger: Logger instance for recording the error

    Returns:
        HTTPException with sanitized error message
    """
    if status_code >= 500:
        logger.error(f"{operation} failed: {exception}", exc_info=True)
        detail = f"An internal error occurred while {operation}. Please try again later."
    else:
        logger.warning(f"{operation} rejected: {exception}")
        detail = f"Error while {operation}. Please check your request and try again."

    return HTTPException(status_code=status_code, detail=detail)
