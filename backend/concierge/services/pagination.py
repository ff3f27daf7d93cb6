"""
分页工具
"""
import math


def paginate(query, page: int = 1, limit: int = 10) -> dict:
    """对查询分页，返回 items/total/page/limit/pages"""
    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def serialize_page(page: dict, schema) -> dict:
    """把分页结果中的 ORM 对象转换为响应模型"""
    return {**page, "items": [schema.model_validate(item) for item in page["items"]]}
