from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.notaris.models import SiteSetting

logger = logging.getLogger(__name__)


def get_setting(s: Session, key: str) -> SiteSetting | None:
    return s.query(SiteSetting).filter(SiteSetting.key == key).one_or_none()


def set_setting(s: Session, key: str, value: str, *, is_public: bool | None = None) -> SiteSetting:
    row = get_setting(s, key)
    if row is None:
        row = SiteSetting(key=key, value=value, is_public=bool(is_public))
        s.add(row)
    else:
        row.value = value
        if is_public is not None:
            row.is_public = is_public
    row.updated_at = datetime.utcnow()
    return row


def get_json_setting(s: Session, key: str) -> Any | None:
    row = get_setting(s, key)
    if row is None or not row.value:
        return None
    try:
        return json.loads(row.value)
    except json.JSONDecodeError:
        logger.error("Site setting %s holds invalid JSON; ignoring it", key)
        return None


def set_json_setting(s: Session, key: str, value: Any) -> SiteSetting:
    return set_setting(s, key, json.dumps(value, sort_keys=True), is_public=False)
