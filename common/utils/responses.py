"""
Standard response envelope helpers.

Provides consistent formatting for success and error payloads returned to
whatever dispatcher (HTTP route, queue consumer) sits in front of a service.

Example:
    from common.utils import success_response, error_response

    if not account:
        return error_response("Account not found", code="ACCOUNT_NOT_FOUND")
    return success_response(account.model_dump(), message="Account retrieved")
"""

from typing import Any, Optional, Dict


def success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standard success response.

    Args:
        data: The response data (can be dict, list, or any serializable type)
        message: Optional success message

    Returns:
        Dictionary with success=True and optional data/message
    """
    response: Dict[str, Any] = {"success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return response


def error_response(
    message: str,
    code: Optional[str] = None,
    details: Optional[Any] = None,
    status: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a standard error response.

    Args:
        message: Human-readable error message
        code: Machine-readable error code (e.g., "ACCOUNT_NOT_FOUND")
        details: Additional error details
        status: Numeric status, for transports without a status line

    Returns:
        Dictionary with success=False and error info
    """
    error: Dict[str, Any] = {"message": message}

    if code:
        error["code"] = code

    if details is not None:
        error["details"] = details

    response: Dict[str, Any] = {"success": False, "error": error}
    if status is not None:
        response["status"] = status
    return response


def paginated_response(
    items: list,
    total: int,
    page: int = 1,
    limit: int = 20,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a paginated success response.

    Args:
        items: List of items for current page
        total: Total number of items across all pages
        page: Current page number (1-indexed)
        limit: Items per page
        message: Optional success message
    """
    total_pages = (total + limit - 1) // limit if limit > 0 else 0

    response: Dict[str, Any] = {
        "success": True,
        "data": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNextPage": page < total_pages,
            "hasPreviousPage": page > 1,
        },
    }

    if message:
        response["message"] = message

    return response
