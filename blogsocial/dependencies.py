from fastapi import Query, Request

from blogsocial.config import settings
from blogsocial.errors import ValidationError


class PaginationParams:
    """
    Reusable FastAPI dependency that parses and validates pagination /
    sorting query parameters.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``.
    sort_by:
        ORM column name to sort by; the service maps unknown names to
        ``created_at``.
    sort_order:
        ``"asc"`` or ``"desc"``.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
        sort_by: str = Query("created_at", description="Column name to sort results by."),
        sort_order: str = Query(
            "desc",
            pattern="^(asc|desc)$",
            description="Sort direction: 'asc' or 'desc'.",
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
        self.sort_by = sort_by
        self.sort_order = sort_order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def get_current_user_id(request: Request) -> int | None:
    """
    Resolve the signed-in principal.

    Authentication itself happens upstream; the gateway forwards the
    authenticated user's id in ``settings.AUTH_USER_HEADER``.  A missing
    header means an anonymous caller and yields None.  Services decide
    whether that is an error.
    """
    raw = request.headers.get(settings.AUTH_USER_HEADER)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{settings.AUTH_USER_HEADER} must be an integer user id")
