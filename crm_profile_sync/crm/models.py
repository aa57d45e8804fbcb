"""
Data types exchanged with the CRM users API.

Remote JSON field names are kept as attribute names (``user_id``,
``custom_attributes``, ``total_pages``...) so the mapping stays obvious.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Union

# Custom attribute values are restricted to JSON scalars
AttributeValue = Union[str, int, float, bool]


@dataclass
class DirectoryUser:
    """A contact record in the CRM directory."""

    email: Optional[str] = None
    id: Optional[str] = None
    user_id: Optional[str] = None
    custom_attributes: Dict[str, AttributeValue] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DirectoryUser':
        """Build a user from a CRM user object, ignoring fields we don't track."""
        attributes = data.get('custom_attributes') or {}
        return cls(
            email=data.get('email'),
            id=_optional_str(data.get('id')),
            user_id=_optional_str(data.get('user_id')),
            custom_attributes=dict(attributes)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an upsert, omitting absent fields."""
        body = {}
        if self.id is not None:
            body['id'] = self.id
        if self.user_id is not None:
            body['user_id'] = self.user_id
        if self.email is not None:
            body['email'] = self.email
        if self.custom_attributes:
            body['custom_attributes'] = dict(self.custom_attributes)
        return body


@dataclass
class ViewCriteria:
    """Lookup query for a single user; id wins over user_id, user_id over email."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None


@dataclass
class PagingSection:
    type: Optional[str] = None
    next: Optional[str] = None
    page: int = 1
    per_page: int = 0
    total_pages: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PagingSection':
        return cls(
            type=data.get('type'),
            next=data.get('next'),
            page=int(data.get('page') or 1),
            per_page=int(data.get('per_page') or 0),
            total_pages=int(data.get('total_pages') or 1)
        )


@dataclass
class PageListing:
    """One page of the ``GET /users`` listing."""

    users: List[DirectoryUser]
    pages: PagingSection
    total_count: int = 0
    type: Optional[str] = None

    @property
    def total_pages(self) -> int:
        return self.pages.total_pages

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PageListing':
        users = [DirectoryUser.from_dict(u) for u in data.get('users') or []]
        return cls(
            users=users,
            pages=PagingSection.from_dict(data.get('pages') or {}),
            total_count=int(data.get('total_count') or len(users)),
            type=data.get('type')
        )


@dataclass
class PageFailure:
    """Tagged failure for a page that could not be fetched."""

    page: int
    error: Exception


@dataclass(frozen=True)
class BurstSpan:
    """Inclusive range of listing pages fetched together."""

    first_page: int
    last_page: int

    @property
    def pages(self) -> range:
        return range(self.first_page, self.last_page + 1)

    def __len__(self) -> int:
        return self.last_page - self.first_page + 1


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
