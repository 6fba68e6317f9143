"""
utils/preferences.py  –  Per-operator dashboard settings

Explicit get/set by key (active tab, display currency, feature flags),
stored in the local database under the acting user's id.
"""

import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from models.user_preference import UserPreference
from utils.errors import ValidationError

MAX_KEY_LENGTH = 100


class PreferenceStore:
    def __init__(self, db: Session, user_id: Optional[str]):
        if not user_id:
            raise ValidationError("Preferences need an acting user (X-User-Id header)")
        self.db = db
        self.user_id = str(user_id)

    def _row(self, key: str) -> Optional[UserPreference]:
        return self.db.query(UserPreference).filter(
            UserPreference.user_id == self.user_id,
            UserPreference.pref_key == key,
        ).first()

    def get(self, key: str, default: Any = None) -> Any:
        row = self._row(key)
        if row is None or row.pref_value is None:
            return default
        return json.loads(row.pref_value)

    def set(self, key: str, value: Any) -> Any:
        key = (key or "").strip()
        if not key or len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Preference key must be 1-{MAX_KEY_LENGTH} characters")

        row = self._row(key)
        if row is None:
            row = UserPreference(user_id=self.user_id, pref_key=key)
            self.db.add(row)
        row.pref_value = json.dumps(value)
        self.db.commit()
        return value
