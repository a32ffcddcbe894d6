from flask import request

MAX_PAGE_SIZE = 100


def page_args():
    try:
        page = max(int(request.args.get('page', 1)), 1)
    except ValueError:
        page = 1
    try:
        limit = min(max(int(request.args.get('limit', 10)), 1), MAX_PAGE_SIZE)
    except ValueError:
        limit = 10
    return page, limit


def paginate(query, serializer):
    page, limit = page_args()
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = (total + limit - 1) // limit
    return {
        'items': [serializer(item) for item in items],
        'pagination': {
            'current_page': page,
            'total_pages': total_pages,
            'total_count': total,
            'has_next_page': page < total_pages,
            'has_prev_page': page > 1,
        },
    }
