from newsroom.pagination import get_pagination_meta


def success(data=None, message: str | None = None) -> dict:
    body: dict = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def paginated(data, page: int, limit: int, total: int) -> dict:
    return {
        "success": True,
        "data": data,
        "pagination": get_pagination_meta(page, limit, total),
    }
