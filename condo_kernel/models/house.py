"""
Module: condo_kernel.models.house
Responsibility: ORM persistence for residents (users) and billing units
    (houses).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - House numbers are unique (uq_house_number).  Range validation against
      the configured bounds happens in HouseService before insert.
    - Every house has an owner; houses auto-created during reconciliation
      belong to the sentinel system user.

Failure modes:
    - IntegrityError on duplicate house number (two concurrent
      auto-creations); HouseService retries the lookup.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_kernel.db.base import TrackedBase, UUIDString


class User(TrackedBase):
    """
    A resident or operator account.

    Only the fields the reconciliation core needs: ownership of houses and
    the sentinel system user flag.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    is_system: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    houses: Mapped[list["House"]] = relationship(back_populates="owner")

    def __repr__(self) -> str:
        return f"<User {self.name}>"


class House(TrackedBase):
    """
    A billing unit identified by its number.

    Guarantees:
        - number_house is unique.
    """

    __tablename__ = "houses"

    __table_args__ = (
        UniqueConstraint("number_house", name="uq_house_number"),
    )

    number_house: Mapped[int] = mapped_column(Integer, nullable=False)

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    owner: Mapped[User] = relationship(back_populates="houses")

    def __repr__(self) -> str:
        return f"<House {self.number_house}>"
