"""Database-backed application settings.

GlobalSettingsRepository is the ConfigCollaborator used in production: the
interest rate for ICR calculation is edited by admins and stored in the
global_settings table.
"""

import json
import logging
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import DEFAULT_INTEREST_RATE_PERCENT
from ..exceptions import PersistenceFailureError
from ..models import utcnow
from ..ports import ConfigCollaborator
from .records import GlobalSetting

logger = logging.getLogger(__name__)

INTEREST_RATE_KEY = "default_interest_rate"
DECLINED_REASONS_KEY = "loan_declined_reasons"


class GlobalSettingsRepository(ConfigCollaborator):
    """Repository for key/value settings.

    Attributes:
        db: SQLAlchemy database session
        fallback_rate: Rate used when no valid rate is stored
    """

    def __init__(self, db: Session, fallback_rate: float = DEFAULT_INTEREST_RATE_PERCENT):
        """Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
            fallback_rate: Rate used when no valid rate is stored
        """
        self.db = db
        self.fallback_rate = fallback_rate

    def get_value(self, key: str) -> Optional[str]:
        """Raw stored value for a key, or None if unset."""
        setting = self.db.query(GlobalSetting).filter(GlobalSetting.key == key).first()
        return setting.value if setting else None

    def set_value(self, key: str, value: Any) -> GlobalSetting:
        """Create or update a setting.

        Non-string values are stored as JSON.

        Raises:
            PersistenceFailureError: If the write fails
        """
        stored = value if isinstance(value, str) or value is None else json.dumps(value)
        setting = self.db.query(GlobalSetting).filter(GlobalSetting.key == key).first()
        if setting is None:
            setting = GlobalSetting(key=key)
            self.db.add(setting)
        setting.value = stored
        setting.updated_at = utcnow()

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailureError(f"Failed to save setting {key}: {e}") from e
        self.db.refresh(setting)
        logger.info(f"Updated setting {key}")
        return setting

    def get_interest_rate_percent(self) -> float:
        """Configured interest rate, or the fallback when unset or invalid."""
        try:
            raw = self.get_value(INTEREST_RATE_KEY)
        except SQLAlchemyError as e:
            logger.warning(f"Could not read {INTEREST_RATE_KEY}, using {self.fallback_rate}: {e}")
            return self.fallback_rate

        if raw is None or not str(raw).strip():
            return self.fallback_rate
        try:
            rate = float(str(raw).replace("%", "").strip())
        except ValueError:
            logger.warning(
                f"Invalid {INTEREST_RATE_KEY} value {raw!r}, using {self.fallback_rate}"
            )
            return self.fallback_rate
        if not rate > 0:
            logger.warning(
                f"Non-positive {INTEREST_RATE_KEY} value {raw!r}, using {self.fallback_rate}"
            )
            return self.fallback_rate
        return rate

    def get_loan_declined_reasons(self) -> List[str]:
        """Canned decline reasons offered to admins; empty when unset."""
        raw = self.get_value(DECLINED_REASONS_KEY)
        if not raw:
            return []
        try:
            reasons = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON in {DECLINED_REASONS_KEY}")
            return []
        if not isinstance(reasons, list):
            return []
        return [str(r) for r in reasons]
