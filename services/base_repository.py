"""
Shared plumbing for tenant-scoped repositories: org scoping, lookups,
sorting and pagination.
"""

from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from services.errors import NotFoundError, ServiceError


def apply_sort(query, model, sort_by: str, sort_order: str, allowed: Iterable[str], default: str):
    """Order by a whitelisted column; unknown columns fall back to the default."""
    column_name = sort_by if sort_by in allowed else default
    column = getattr(model, column_name)
    return query.order_by(column.asc() if (sort_order or '').lower() == 'asc' else column.desc())


def paginate(query, page: int = 1, per_page: int = 25,
             serializer: Callable[[Any], Dict] = None) -> Dict[str, Any]:
    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or 25), 1), 200)

    total = query.count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    serializer = serializer or (lambda row: row.to_dict())

    return {
        'items': [serializer(row) for row in rows],
        'total': total,
        'page': page,
        'per_page': per_page,
        'pages': (total + per_page - 1) // per_page,
    }


class TenantRepository:
    """
    Base for repositories working inside one organization.

    organization_id is None only for super admins, who then read across
    organizations but cannot create tenant rows.
    """

    def __init__(self, session: Session, organization_id: Optional[str], user: Optional[Dict] = None):
        self.session = session
        self.organization_id = organization_id
        self.user = user or {}

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get('id')

    @property
    def role(self) -> Optional[str]:
        return self.user.get('role')

    def _scoped(self, model):
        query = self.session.query(model)
        if self.organization_id:
            query = query.filter(model.org_id == self.organization_id)
        return query

    def _get(self, model, entity_id, label: str, lock: bool = False):
        query = self._scoped(model).filter(model.id == entity_id)
        if lock:
            query = query.with_for_update()
        entity = query.first()
        if entity is None:
            raise NotFoundError(label, entity_id)
        return entity

    def _require_org(self) -> str:
        if not self.organization_id:
            raise ServiceError("An organization is required for this operation")
        return self.organization_id
