"""Normalized principal value object.

Pure value object with no external dependencies. Immutable (frozen dataclass).
Built by :func:`dingtalk_auth.mapper.map_principal` from one or more DingTalk
response fragments; fields a flow does not provide stay ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True)
class NormalizedPrincipal:
    """Flow-agnostic identity of a DingTalk user.

    Attributes:
        provider_user_id: Corp userid. Always present.
        union_id: Ecosystem-wide unionid, if the flow or profile provided it.
        open_id: Application-scoped openid (scan-code flows only).
        display_name: Real name from the corp address book.
        nickname: DingTalk nickname.
        avatar_url: Avatar image URL.
        mobile: Mobile number.
        email: Personal email.
        job_number: Employee number.
        department_ids: Department ids in provider order.
        roles: Role names.
        is_admin: Corp administrator flag.
        is_boss: Corp owner flag.
        is_active: Whether the user has activated DingTalk.
        extended_attributes: Custom address book attributes.
        position: Job title.
        org_email: Organization email.
        tel: Office phone.
        work_place: Office location.
        hired_date: Hire date as epoch milliseconds.
        remark: Address book remark.
        state_code: Country code of the mobile number.
        is_senior: Senior management flag.
        is_hidden: Whether the mobile number is hidden.
    """

    provider_user_id: str
    union_id: str | None = None
    open_id: str | None = None
    display_name: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None
    mobile: str | None = None
    email: str | None = None
    job_number: str | None = None
    department_ids: tuple[int, ...] = ()
    roles: frozenset[str] = frozenset()
    is_admin: bool | None = None
    is_boss: bool | None = None
    is_active: bool | None = None
    extended_attributes: Mapping[str, str] = field(default_factory=dict, hash=False)
    position: str | None = None
    org_email: str | None = None
    tel: str | None = None
    work_place: str | None = None
    hired_date: int | None = None
    remark: str | None = None
    state_code: str | None = None
    is_senior: bool | None = None
    is_hidden: bool | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles
