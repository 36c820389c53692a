"""
License code repository.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from entitlement_sync.models.license_code import LicenseCode

logger = logging.getLogger(__name__)


class LicenseCodesRepository:

    def __init__(self, db_session: Session):
        self.db = db_session

    def find(self, code: str, provider: str) -> Optional[LicenseCode]:
        return self.db.query(LicenseCode).filter(
            LicenseCode.code == code,
            LicenseCode.provider == provider,
        ).first()

    def create(self, code: str, provider: str, price_id: str) -> LicenseCode:
        license_code = LicenseCode(code=code, provider=provider, price_id=price_id, redeemed=False)
        self.db.add(license_code)
        self.db.flush()
        return license_code

    def mark_redeemed(self, license_code_id: str) -> bool:
        """
        Flip redeemed to True only if it is still False.

        Returns:
            True if this call redeemed the code, False if another call won
        """
        updated = self.db.query(LicenseCode).filter(
            LicenseCode.id == license_code_id,
            LicenseCode.redeemed.is_(False),
        ).update({LicenseCode.redeemed: True}, synchronize_session=False)
        self.db.flush()
        self.db.expire_all()
        return updated == 1

    def commit(self) -> None:
        """Commit current transaction."""
        self.db.commit()

    def rollback(self) -> None:
        """Roll back current transaction."""
        self.db.rollback()
