"""
Coupon repository: tracked coupons and per-user usage.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from entitlement_sync.models.coupon import Coupon, UserCoupon

logger = logging.getLogger(__name__)


class CouponsRepository:

    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_code(self, code: str) -> Optional[Coupon]:
        return self.db.query(Coupon).filter(Coupon.code == code).first()

    def create(self, code: str) -> Coupon:
        coupon = Coupon(code=code)
        self.db.add(coupon)
        self.db.flush()
        return coupon

    def has_used(self, user_id: str, coupon_id: str) -> bool:
        return self.db.query(UserCoupon).filter(
            UserCoupon.user_id == user_id,
            UserCoupon.coupon_id == coupon_id,
        ).first() is not None

    def record_usage(self, user_id: str, coupon_id: str) -> bool:
        """
        Record that a user paid with a tracked coupon.

        Returns:
            True if a new record was written
        """
        if self.has_used(user_id, coupon_id):
            return False
        self.db.add(UserCoupon(user_id=user_id, coupon_id=coupon_id))
        self.db.flush()
        return True
