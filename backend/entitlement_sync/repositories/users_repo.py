"""
Users repository.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from entitlement_sync.entitlements.errors import UserNotFoundError
from entitlement_sync.models.user import User

logger = logging.getLogger(__name__)


class UsersRepository:

    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_uuid(self, user_uuid: str) -> Optional[User]:
        return self.db.query(User).filter(User.uuid == user_uuid).first()

    def get_by_uuid(self, user_uuid: str) -> User:
        """
        Get a user by uuid.

        Raises:
            UserNotFoundError: If no user has this uuid
        """
        user = self.find_by_uuid(user_uuid)
        if user is None:
            raise UserNotFoundError("User not found", user_uuid=user_uuid)
        return user

    def find_by_customer_id(self, customer_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.customer_id == customer_id).first()

    def find_by_ids(self, user_ids: List[str]) -> List[User]:
        if not user_ids:
            return []
        return self.db.query(User).filter(User.id.in_(user_ids)).all()

    def upsert(
        self,
        user_uuid: str,
        customer_id: Optional[str] = None,
        lifetime: Optional[bool] = None,
    ) -> User:
        """
        Create or update a user keyed by uuid.

        Args:
            user_uuid: Gateway identity
            customer_id: Provider customer id; kept when None
            lifetime: New lifetime flag; kept when None

        Returns:
            The stored user
        """
        user = self.find_by_uuid(user_uuid)
        if user is None:
            user = User(uuid=user_uuid, customer_id=customer_id, lifetime=bool(lifetime))
            self.db.add(user)
            logger.info("User created", extra={"user_uuid": user_uuid, "customer_id": customer_id})
        else:
            if customer_id is not None:
                user.customer_id = customer_id
            if lifetime is not None:
                user.lifetime = lifetime

        self.db.flush()
        return user

    def set_lifetime_space(self, user: User, space_bytes: Optional[int]) -> User:
        """Record the stacked lifetime drive space; None clears it."""
        user.lifetime_space_bytes = space_bytes
        self.db.flush()
        logger.info(
            "Lifetime space updated",
            extra={"user_uuid": user.uuid, "lifetime_space_bytes": space_bytes},
        )
        return user

    def commit(self) -> None:
        """Commit current transaction."""
        self.db.commit()
