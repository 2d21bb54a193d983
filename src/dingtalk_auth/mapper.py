"""Map DingTalk response fragments onto a NormalizedPrincipal.

The login flows collect identity data from structurally different responses
(``/user/getuserinfo``, ``/sns/getuserinfo_bycode``, ``/user/get``). The
mapper merges those fragments, keyed by DingTalk's own field names, and
builds a single :class:`~dingtalk_auth.principal.NormalizedPrincipal`.

Pure function: no network or cache access. Optional fields may be missing
or malformed without failing the mapping; only a missing mandatory field
raises :class:`~dingtalk_auth.exceptions.MappingError`.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from dingtalk_auth.exceptions import MappingError
from dingtalk_auth.principal import NormalizedPrincipal

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

# Principal attribute -> DingTalk field names, first present wins.
_TEXT_FIELDS: dict[str, tuple[str, ...]] = {
    "union_id": ("unionid",),
    "open_id": ("openid",),
    "display_name": ("name",),
    "nickname": ("nickname", "nick"),
    "avatar_url": ("avatar",),
    "mobile": ("mobile",),
    "email": ("email",),
    "job_number": ("jobnumber",),
    "position": ("position",),
    "org_email": ("orgEmail",),
    "tel": ("tel",),
    "work_place": ("workPlace",),
    "remark": ("remark",),
    "state_code": ("stateCode",),
}

_FLAG_FIELDS: dict[str, str] = {
    "is_admin": "isAdmin",
    "is_boss": "isBoss",
    "is_active": "active",
    "is_senior": "isSenior",
    "is_hidden": "isHide",
}

USER_ID_FIELD = "userid"
UNION_ID_FIELD = "unionid"


def merge_fragments(*fragments: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge response fragments left to right; later non-empty values win."""
    merged: dict[str, Any] = {}
    for fragment in fragments:
        if not fragment:
            continue
        for key, value in fragment.items():
            if value is None or value == "":
                continue
            merged[key] = value
    return merged


def map_principal(
    *fragments: Mapping[str, Any] | None,
    required: Iterable[str] = (USER_ID_FIELD,),
) -> NormalizedPrincipal:
    """Build a NormalizedPrincipal from DingTalk response fragments.

    Args:
        *fragments: Response bodies or partial dicts using DingTalk field
            names (``userid``, ``name``, ``department``, ``isAdmin``, ...).
            ``None`` fragments are skipped.
        required: Field names the active flow declares mandatory.

    Returns:
        NormalizedPrincipal with every provided field populated.

    Raises:
        MappingError: If a required field is absent from every fragment.

    Example:
        >>> p = map_principal({"userid": "u1"}, {"name": "Alice", "department": [10, 20]})
        >>> p.provider_user_id, p.display_name, p.department_ids
        ('u1', 'Alice', (10, 20))
    """
    merged = merge_fragments(*fragments)

    for name in required:
        if name not in merged:
            raise MappingError(name)
    if USER_ID_FIELD not in merged:
        raise MappingError(USER_ID_FIELD)

    values: dict[str, Any] = {"provider_user_id": str(merged[USER_ID_FIELD])}

    for attribute, candidates in _TEXT_FIELDS.items():
        for candidate in candidates:
            if candidate in merged:
                values[attribute] = str(merged[candidate])
                break

    for attribute, source in _FLAG_FIELDS.items():
        if source in merged:
            values[attribute] = _as_flag(merged[source])

    if "department" in merged:
        values["department_ids"] = _department_ids(merged["department"])
    if "roles" in merged:
        values["roles"] = _role_names(merged["roles"])
    if "extattr" in merged:
        values["extended_attributes"] = _extended_attributes(merged["extattr"])
    if "hiredDate" in merged:
        hired = _as_int(merged["hiredDate"])
        if hired is not None:
            values["hired_date"] = hired

    return NormalizedPrincipal(**values)


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _department_ids(raw: Any) -> tuple[int, ...]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("principal_department_malformed")
            return ()
    if not isinstance(raw, list | tuple):
        logger.warning("principal_department_malformed")
        return ()

    ids: list[int] = []
    for item in raw:
        dept_id = _as_int(item)
        if dept_id is None:
            logger.warning("principal_department_id_skipped", extra={"value": repr(item)})
            continue
        ids.append(dept_id)
    return tuple(ids)


def _role_names(raw: Any) -> frozenset[str]:
    if not isinstance(raw, list | tuple):
        return frozenset()
    names: set[str] = set()
    for role in raw:
        if isinstance(role, str) and role:
            names.add(role)
        elif isinstance(role, dict) and role.get("name"):
            names.add(str(role["name"]))
    return frozenset(names)


def _extended_attributes(raw: Any) -> dict[str, str]:
    # DingTalk returns extattr as a JSON-encoded string; some SDKs decode it.
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("principal_extattr_malformed")
            return {}
    if not isinstance(raw, dict):
        return {}
    return {str(k): str(v) for k, v in raw.items() if v is not None}
