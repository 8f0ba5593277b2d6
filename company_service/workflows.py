"""Company and user workflows: validation gates, persistence and cascade delete."""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import schemas
from .exceptions import Conflict, NotFound, RegistryUnavailable, ValidationRejected
from .models import Company, User
from .registry_client import LookupStatus, RegistryClient
from .utils import get_password_hash

logger = logging.getLogger(__name__)


def _check_path_id(path_id: Optional[int], body_id: int):
    if path_id is not None and path_id != body_id:
        raise ValidationRejected(f"Path id {path_id} does not match body id {body_id}.")


def _commit(db: Session, action: str):
    """Commits the pending unit of work, rolling everything back on failure."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error while trying to {action}: {e.orig}")
        raise Conflict(f"Could not {action}: the data conflicts with existing records.")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while trying to {action}: {e}", exc_info=True)
        raise


class CompanyWorkflow:
    """Creation is gated by the registry; deletion cascades to the company's users."""

    def __init__(self, db: Session, registry: RegistryClient):
        self.db = db
        self.registry = registry

    def list(self) -> List[Company]:
        return self.db.query(Company).options(selectinload(Company.users)).order_by(Company.id).all()

    def get(self, company_id: int) -> Company:
        company = (
            self.db.query(Company)
            .options(selectinload(Company.users))
            .filter(Company.id == company_id)
            .first()
        )
        if not company:
            logger.warning(f"Company {company_id} not found.")
            raise NotFound(f"Company {company_id} not found.")
        return company

    async def create(self, company_in: schemas.CompanyCreate) -> Company:
        lookup = await self.registry.lookup(company_in.tax_id)

        if lookup.status == LookupStatus.UNAVAILABLE:
            logger.error(f"Company not created: registry unavailable for tax id {company_in.tax_id} ({lookup.detail}).")
            raise RegistryUnavailable("Tax id registry is unavailable. Try again later.")

        record = lookup.record
        if record is None or not record.tax_id:
            logger.warning(f"Company not created: tax id {company_in.tax_id} invalid or not found.")
            raise ValidationRejected("Tax ID invalid or not found.")

        # Only the echoed tax id gates creation; the active flag is informational.
        if record.active is False:
            logger.warning(f"Tax id {company_in.tax_id} is inactive in the registry; registering anyway.")

        company = Company(
            tax_id=company_in.tax_id,
            legal_name=company_in.legal_name,
            trade_name=company_in.trade_name,
        )
        self.db.add(company)
        _commit(self.db, "create company")
        self.db.refresh(company)
        logger.info(f"Company created with ID: {company.id} (tax id {company.tax_id})")
        return company

    def update(self, path_id: Optional[int], company_in: schemas.CompanyUpdate) -> Company:
        _check_path_id(path_id, company_in.id)

        company = self.db.get(Company, company_in.id)
        if not company:
            logger.warning(f"Update failed: company {company_in.id} not found.")
            raise NotFound(f"Company {company_in.id} not found.")

        company.tax_id = company_in.tax_id
        company.legal_name = company_in.legal_name
        company.trade_name = company_in.trade_name
        _commit(self.db, "update company")
        self.db.refresh(company)
        logger.info(f"Company {company.id} updated.")
        return company

    def delete(self, company_id: int) -> int:
        """Removes the company and all its users in one transaction. Returns the number of users removed."""
        company = self.get(company_id)

        removed_users = len(company.users)
        # Users are flushed as deletes before the company row through the cascade
        self.db.delete(company)
        _commit(self.db, "delete company")
        logger.info(f"Company {company_id} deleted together with {removed_users} user(s).")
        return removed_users


class UserWorkflow:
    """Users must reference an existing company when created."""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(User, Company.legal_name).join(Company, User.company_id == Company.id)

    def list(self) -> List[Tuple[User, str]]:
        return self._query().order_by(User.id).all()

    def get(self, user_id: int) -> Tuple[User, str]:
        row = self._query().filter(User.id == user_id).first()
        if not row:
            logger.warning(f"User {user_id} not found.")
            raise NotFound(f"User {user_id} not found.")
        return row

    def create(self, user_in: schemas.UserCreate) -> Tuple[User, str]:
        company = self.db.get(Company, user_in.company_id)
        if not company:
            logger.warning(f"User not created: company {user_in.company_id} not found.")
            raise ValidationRejected("Company not found.")

        user = User(
            name=user_in.name,
            username=user_in.username,
            hashed_password=get_password_hash(user_in.password),
            company_id=company.id,
        )
        self.db.add(user)
        _commit(self.db, "create user")
        self.db.refresh(user)
        logger.info(f"User created with ID: {user.id} in company {company.id}")
        return user, company.legal_name

    def update(self, path_id: Optional[int], user_in: schemas.UserUpdate) -> Tuple[User, str]:
        # The company reference is not re-checked here; the foreign key still guards it.
        _check_path_id(path_id, user_in.id)

        user = self.db.get(User, user_in.id)
        if not user:
            logger.warning(f"Update failed: user {user_in.id} not found.")
            raise NotFound(f"User {user_in.id} not found.")

        user.name = user_in.name
        user.username = user_in.username
        user.hashed_password = get_password_hash(user_in.password)
        user.company_id = user_in.company_id
        _commit(self.db, "update user")
        logger.info(f"User {user.id} updated.")
        return self.get(user.id)

    def delete(self, user_id: int):
        user = self.db.get(User, user_id)
        if not user:
            logger.warning(f"Delete failed: user {user_id} not found.")
            raise NotFound(f"User {user_id} not found.")

        self.db.delete(user)
        _commit(self.db, "delete user")
        logger.info(f"User {user_id} deleted.")
