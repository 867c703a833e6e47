"""
HouseService -- house lookup and on-demand creation.

Responsibility:
    Resolves a house number to its House row, creating the house (owned by
    the sentinel system user) the first time a deposit is settled to an
    unseen number.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the confirmation
    path of every reconciliation route.

Invariants enforced:
    - House numbers are validated against HouseNumberBounds before any
      lookup or insert.
    - At most one House per number; a concurrent first insert is resolved
      with a SAVEPOINT and a re-read.

Failure modes:
    - InvalidHouseNumberError for numbers outside the bounds.
    - HouseNotFoundError from ``get_house`` for unknown ids.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from condo_kernel.domain.clock import Clock
from condo_kernel.domain.houses import HouseNumberBounds
from condo_kernel.domain.sentinels import SYSTEM_USER_ID, SYSTEM_USER_NAME
from condo_kernel.exceptions import HouseNotFoundError
from condo_kernel.logging_config import get_logger
from condo_kernel.models.house import House, User
from condo_kernel.services.base import BaseService

logger = get_logger("services.house")


class HouseService(BaseService[House]):
    """
    House resolution.

    Contract:
        ``get_or_create_house(n)`` always returns a flushed House whose
        number is ``n``.

    Non-goals:
        - Does NOT manage house ownership transfers.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        bounds: HouseNumberBounds | None = None,
    ):
        super().__init__(session, clock)
        self.bounds = bounds or HouseNumberBounds()

    def get_house(self, house_id: UUID) -> House:
        house = self.session.get(House, house_id)
        if house is None:
            raise HouseNotFoundError(str(house_id))
        return house

    def find_by_number(self, number_house: int) -> House | None:
        return self.session.execute(
            select(House).where(House.number_house == number_house)
        ).scalar_one_or_none()

    def get_or_create_house(self, number_house: int) -> House:
        """
        Look up a house by number, creating it under the system user if
        it does not exist yet.

        Raises:
            InvalidHouseNumberError: number outside the configured bounds.
        """
        self.bounds.validate(number_house)

        house = self.find_by_number(number_house)
        if house is not None:
            return house

        system_user = self.ensure_system_user()

        savepoint = self.session.begin_nested()
        try:
            house = House(
                number_house=number_house,
                user_id=system_user.id,
                created_by_id=SYSTEM_USER_ID,
            )
            self.session.add(house)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "house_create_race_retry",
                extra={"house_number": number_house},
            )
            savepoint.rollback()
            return self.session.execute(
                select(House).where(House.number_house == number_house)
            ).scalar_one()

        logger.info(
            "house_auto_created",
            extra={"house_number": number_house, "house_id": str(house.id)},
        )
        return house

    def ensure_system_user(self) -> User:
        """Return the sentinel system user, creating it on first use."""
        user = self.session.get(User, SYSTEM_USER_ID)
        if user is not None:
            return user

        savepoint = self.session.begin_nested()
        try:
            user = User(
                id=SYSTEM_USER_ID,
                name=SYSTEM_USER_NAME,
                is_system=True,
                created_by_id=SYSTEM_USER_ID,
            )
            self.session.add(user)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            user = self.session.execute(
                select(User).where(User.id == SYSTEM_USER_ID)
            ).scalar_one()
        return user
