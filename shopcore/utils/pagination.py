from sqlalchemy import func
from sqlmodel import select


def normalize_page(page: int, limit: int) -> tuple[int, int]:
    if page < 1:
        page = 1

    if limit < 1:
        limit = 10

    return page, limit


def page_meta(total: int, page: int, limit: int) -> dict:
    return {
        "total_items": total,
        "total_pages": (total + limit - 1) // limit,
        "current_page": page,
        "limit": limit,
    }


def paginate(
    *,
    session,
    query,
    page: int = 1,
    limit: int = 10,
):
    page, limit = normalize_page(page, limit)
    offset = (page - 1) * limit

    total = session.exec(
        select(func.count()).select_from(query.subquery())
    ).one()

    results = session.exec(
        query.offset(offset).limit(limit)
    ).all()

    return {
        **page_meta(total, page, limit),
        "results": results,
    }
