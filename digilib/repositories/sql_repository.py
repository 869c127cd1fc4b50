"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.orm import joinedload, selectinload

from digilib.core.utils import like_pattern
from digilib.db.models import (
    Admin,
    Author,
    Category,
    Download,
    Institution,
    RefreshToken,
    Resource,
    Subscription,
    SubscriptionPlan,
    User,
    resource_authors,
)
from digilib.db.session import Database


def _owner_clause(owner_kind: str, owner_id: int):
    if owner_kind == "user":
        return Subscription.user_id == owner_id
    if owner_kind == "institution":
        return Subscription.institution_id == owner_id
    raise ValueError(f"Unknown subscription owner kind: {owner_kind!r}")


def _active_clause(now: datetime):
    return and_(
        Subscription.status == "active",
        Subscription.start_at <= now,
        Subscription.end_at >= now,
    )


class SQLRepository:
    """CRUD helpers wrapping the SQLAlchemy session."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # -------------------------- users --------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        with self.database.session() as session:
            return session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self.database.session() as session:
            stmt = select(User).where(func.lower(User.email) == (email or "").strip().lower())
            return session.execute(stmt).scalar_one_or_none()

    def create_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        role: str = "user",
        institution_id: Optional[int] = None,
    ) -> User:
        entity = User(
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            institution_id=institution_id,
        )
        with self.database.session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def update_user(self, user_id: int, **values) -> Optional[User]:
        with self.database.session() as session:
            if values:
                session.execute(update(User).where(User.id == user_id).values(**values))
                session.commit()
            return session.get(User, user_id)

    def delete_user(self, user_id: int) -> bool:
        with self.database.session() as session:
            result = session.execute(delete(User).where(User.id == user_id))
            session.commit()
            return bool(result.rowcount)

    def list_users(
        self,
        *,
        search: str = "",
        role: str = "",
        institution_id: Optional[int] = None,
        page: int = 1,
        limit: int = 15,
    ) -> tuple[list[User], int]:
        conditions = []
        if search:
            pattern = like_pattern(search)
            conditions.append(or_(User.name.ilike(pattern, escape="\\"), User.email.ilike(pattern, escape="\\")))
        if role:
            conditions.append(User.role == role)
        if institution_id is not None:
            conditions.append(User.institution_id == institution_id)
        with self.database.session() as session:
            total = session.execute(select(func.count(User.id)).where(*conditions)).scalar_one()
            stmt = (
                select(User)
                .options(joinedload(User.institution))
                .where(*conditions)
                .order_by(User.created_at.desc(), User.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            return list(session.execute(stmt).scalars().all()), int(total)

    def count_users(self, role: Optional[str] = None) -> int:
        with self.database.session() as session:
            stmt = select(func.count(User.id))
            if role:
                stmt = stmt.where(User.role == role)
            return int(session.execute(stmt).scalar_one())

    # -------------------------- institutions --------------------------
    def get_institution(self, institution_id: int) -> Optional[Institution]:
        with self.database.session() as session:
            return session.get(Institution, institution_id)

    def get_institution_by_email(self, email: str) -> Optional[Institution]:
        with self.database.session() as session:
            stmt = select(Institution).where(func.lower(Institution.email) == (email or "").strip().lower())
            return session.execute(stmt).scalar_one_or_none()

    def create_institution(self, *, name: str, email: str, password_hash: str) -> Institution:
        entity = Institution(name=name, email=email, password_hash=password_hash)
        with self.database.session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def update_institution(self, institution_id: int, **values) -> Optional[Institution]:
        with self.database.session() as session:
            if values:
                session.execute(update(Institution).where(Institution.id == institution_id).values(**values))
                session.commit()
            return session.get(Institution, institution_id)

    def delete_institution(self, institution_id: int) -> bool:
        with self.database.session() as session:
            # students lose their affiliation instead of being deleted
            session.execute(update(User).where(User.institution_id == institution_id).values(institution_id=None))
            result = session.execute(delete(Institution).where(Institution.id == institution_id))
            session.commit()
            return bool(result.rowcount)

    def list_institutions(self, *, search: str = "", page: int = 1, limit: int = 15) -> tuple[list[tuple[Institution, int]], int]:
        conditions = []
        if search:
            pattern = like_pattern(search)
            conditions.append(
                or_(Institution.name.ilike(pattern, escape="\\"), Institution.email.ilike(pattern, escape="\\"))
            )
        student_count = (
            select(func.count(User.id))
            .where(User.institution_id == Institution.id)
            .correlate(Institution)
            .scalar_subquery()
        )
        with self.database.session() as session:
            total = session.execute(select(func.count(Institution.id)).where(*conditions)).scalar_one()
            stmt = (
                select(Institution, student_count)
                .where(*conditions)
                .order_by(Institution.created_at.desc(), Institution.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            rows = [(inst, int(count or 0)) for inst, count in session.execute(stmt).all()]
            return rows, int(total)

    def count_institutions(self) -> int:
        with self.database.session() as session:
            return int(session.execute(select(func.count(Institution.id))).scalar_one())

    def list_students(self, institution_id: int) -> list[User]:
        with self.database.session() as session:
            stmt = (
                select(User)
                .where(User.institution_id == institution_id, User.role == "student")
                .order_by(User.name)
            )
            return list(session.execute(stmt).scalars().all())

    # -------------------------- admins --------------------------
    def get_admin(self, admin_id: int) -> Optional[Admin]:
        with self.database.session() as session:
            return session.get(Admin, admin_id)

    def get_admin_by_email(self, email: str) -> Optional[Admin]:
        with self.database.session() as session:
            stmt = select(Admin).where(func.lower(Admin.email) == (email or "").strip().lower())
            return session.execute(stmt).scalar_one_or_none()

    def create_admin(self, *, fullname: str, email: str, password_hash: str, role: str = "staff") -> Admin:
        entity = Admin(fullname=fullname, email=email, password_hash=password_hash, role=role)
        with self.database.session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def update_admin(self, admin_id: int, **values) -> Optional[Admin]:
        with self.database.session() as session:
            if values:
                session.execute(update(Admin).where(Admin.id == admin_id).values(**values))
                session.commit()
            return session.get(Admin, admin_id)

    def delete_admin(self, admin_id: int) -> bool:
        with self.database.session() as session:
            result = session.execute(delete(Admin).where(Admin.id == admin_id))
            session.commit()
            return bool(result.rowcount)

    def list_admins(self, *, search: str = "", role: str = "", page: int = 1, limit: int = 15) -> tuple[list[Admin], int]:
        conditions = []
        if search:
            pattern = like_pattern(search)
            conditions.append(or_(Admin.fullname.ilike(pattern, escape="\\"), Admin.email.ilike(pattern, escape="\\")))
        if role:
            conditions.append(Admin.role == role)
        with self.database.session() as session:
            total = session.execute(select(func.count(Admin.id)).where(*conditions)).scalar_one()
            stmt = (
                select(Admin)
                .where(*conditions)
                .order_by(Admin.created_at.desc(), Admin.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            return list(session.execute(stmt).scalars().all()), int(total)

    # -------------------------- categories --------------------------
    def list_categories(self) -> list[tuple[Category, int]]:
        resource_count = (
            select(func.count(Resource.id))
            .where(Resource.category_id == Category.id)
            .correlate(Category)
            .scalar_subquery()
        )
        with self.database.session() as session:
            stmt = select(Category, resource_count).order_by(Category.name)
            return [(cat, int(count or 0)) for cat, count in session.execute(stmt).all()]

    def get_category(self, category_id: int) -> Optional[Category]:
        with self.database.session() as session:
            return session.get(Category, category_id)

    def get_category_by_name(self, name: str) -> Optional[Category]:
        with self.database.session() as session:
            stmt = select(Category).where(func.lower(Category.name) == (name or "").strip().lower())
            return session.execute(stmt).scalar_one_or_none()

    def create_category(self, *, name: str, description: Optional[str] = None) -> Category:
        entity = Category(name=name, description=description)
        with self.database.session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def update_category(self, category_id: int, **values) -> Optional[Category]:
        with self.database.session() as session:
            if values:
                session.execute(update(Category).where(Category.id == category_id).values(**values))
                session.commit()
            return session.get(Category, category_id)

    def delete_category(self, category_id: int) -> bool:
        with self.database.session() as session:
            result = session.execute(delete(Category).where(Category.id == category_id))
            session.commit()
            return bool(result.rowcount)

    def category_in_use(self, category_id: int) -> bool:
        with self.database.session() as session:
            stmt = select(exists().where(Resource.category_id == category_id))
            return bool(session.execute(stmt).scalar())

    # -------------------------- authors --------------------------
    def list_authors(self, *, search: str = "", page: int = 1, limit: int = 15) -> tuple[list[tuple[Author, int]], int]:
        conditions = []
        if search:
            conditions.append(Author.name.ilike(like_pattern(search), escape="\\"))
        resource_count = (
            select(func.count(resource_authors.c.resource_id))
            .where(resource_authors.c.author_id == Author.id)
            .correlate(Author)
            .scalar_subquery()
        )
        with self.database.session() as session:
            total = session.execute(select(func.count(Author.id)).where(*conditions)).scalar_one()
            stmt = (
                select(Author, resource_count)
                .where(*conditions)
                .order_by(Author.name)
                .limit(limit)
                .offset((page - 1) * limit)
            )
            rows = [(author, int(count or 0)) for author, count in session.execute(stmt).all()]
            return rows, int(total)

    def get_author(self, author_id: int) -> Optional[Author]:
        with self.database.session() as session:
            return session.get(Author, author_id)

    def get_authors(self, author_ids: Iterable[int]) -> list[Author]:
        ids = sorted(set(author_ids))
        if not ids:
            return []
        with self.database.session() as session:
            return list(session.execute(select(Author).where(Author.id.in_(ids))).scalars().all())

    def create_author(self, *, name: str) -> Author:
        entity = Author(name=name)
        with self.database.session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def update_author(self, author_id: int, **values) -> Optional[Author]:
        with self.database.session() as session:
            if values:
                session.execute(update(Author).where(Author.id == author_id).values(**values))
                session.commit()
            return session.get(Author, author_id)

    def delete_author(self, author_id: int) -> bool:
        with self.database.session() as session:
            session.execute(delete(resource_authors).where(resource_authors.c.author_id == author_id))
            result = session.execute(delete(Author).where(Author.id == author_id))
            session.commit()
            return bool(result.rowcount)

    # -------------------------- resources --------------------------
    def _resource_query(self):
        return select(Resource).options(joinedload(Resource.category), selectinload(Resource.authors))

    def get_resource(self, resource_id: int) -> Optional[Resource]:
        with self.database.session() as session:
            stmt = self._resource_query().where(Resource.id == resource_id)
            return session.execute(stmt).unique().scalar_one_or_none()

    def list_resources(
        self,
        *,
        search: str = "",
        category_id: Optional[int] = None,
        type: str = "",
        language: str = "",
        year: Optional[int] = None,
        paid: str = "",
        status: str = "",
        page: int = 1,
        limit: int = 15,
    ) -> tuple[list[Resource], int]:
        conditions = []
        if search:
            conditions.append(Resource.title.ilike(like_pattern(search), escape="\\"))
        if category_id is not None:
            conditions.append(Resource.category_id == category_id)
        if type:
            conditions.append(Resource.type == type)
        if language:
            conditions.append(Resource.language == language)
        if year is not None:
            conditions.append(Resource.publication_year == year)
        if paid:
            conditions.append(Resource.paid == paid)
        if status:
            conditions.append(Resource.status == status)
        with self.database.session() as session:
            total = session.execute(select(func.count(Resource.id)).where(*conditions)).scalar_one()
            stmt = (
                self._resource_query()
                .where(*conditions)
                .order_by(Resource.created_at.desc(), Resource.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            return list(session.execute(stmt).unique().scalars().all()), int(total)

    def create_resource(self, values: dict, author_ids: Sequence[int] = ()) -> Resource:
        with self.database.session() as session:
            entity = Resource(download_count=0, **values)
            if author_ids:
                entity.authors = list(session.execute(select(Author).where(Author.id.in_(list(author_ids)))).scalars())
            session.add(entity)
            session.commit()
            resource_id = entity.id
        return self.get_resource(resource_id)

    def update_resource(self, resource_id: int, values: dict, author_ids: Optional[Sequence[int]] = None) -> Optional[Resource]:
        with self.database.session() as session:
            entity = session.get(Resource, resource_id)
            if not entity:
                return None
            for key, value in values.items():
                setattr(entity, key, value)
            if author_ids is not None:
                entity.authors = list(session.execute(select(Author).where(Author.id.in_(list(author_ids)))).scalars())
            session.commit()
        return self.get_resource(resource_id)

    def delete_resource(self, resource_id: int) -> bool:
        with self.database.session() as session:
            session.execute(delete(resource_authors).where(resource_authors.c.resource_id == resource_id))
            session.execute(delete(Download).where(Download.resource_id == resource_id))
            result = session.execute(delete(Resource).where(Resource.id == resource_id))
            session.commit()
            return bool(result.rowcount)

    def count_resources(self) -> int:
        with self.database.session() as session:
            return int(session.execute(select(func.count(Resource.id))).scalar_one())

    def increment_download_count(self, resource_id: int) -> bool:
        """Single-statement increment; relies on the database for row atomicity."""
        with self.database.session() as session:
            stmt = (
                update(Resource)
                .where(Resource.id == resource_id)
                .values(download_count=Resource.download_count + 1)
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            session.commit()
            return bool(result.rowcount)

    def record_download(self, resource_id: int, actor_type: str, actor_id: int) -> None:
        with self.database.session() as session:
            session.add(Download(resource_id=resource_id, actor_type=actor_type, actor_id=actor_id))
            session.commit()

    def count_downloads(self) -> int:
        with self.database.session() as session:
            return int(session.execute(select(func.coalesce(func.sum(Resource.download_count), 0))).scalar_one())

    # -------------------------- plans --------------------------
    def list_plans(self, *, search: str = "", type: str = "", page: int = 1, limit: int = 15) -> tuple[list[SubscriptionPlan], int]:
        conditions = []
        if search:
            conditions.append(SubscriptionPlan.name.ilike(like_pattern(search), escape="\\"))
        if type:
            conditions.append(SubscriptionPlan.type == type)
        with self.database.session() as session:
            total = session.execute(select(func.count(SubscriptionPlan.id)).where(*conditions)).scalar_one()
            stmt = (
                select(SubscriptionPlan)
                .where(*conditions)
                .order_by(SubscriptionPlan.created_at.desc(), SubscriptionPlan.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            return list(session.execute(stmt).scalars().all()), int(total)

    def get_plan(self, plan_id: int) -> Optional[SubscriptionPlan]:
        with self.database.session() as session:
            return session.get(SubscriptionPlan, plan_id)

    def create_plan(self, *, name: str, type: str, price: Decimal, duration_days: int, features: list[str]) -> SubscriptionPlan:
        entity = SubscriptionPlan(name=name, type=type, price=price, duration_days=duration_days, features=list(features))
        with self.database.session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def update_plan(self, plan_id: int, **values) -> Optional[SubscriptionPlan]:
        with self.database.session() as session:
            entity = session.get(SubscriptionPlan, plan_id)
            if not entity:
                return None
            for key, value in values.items():
                setattr(entity, key, value)
            session.commit()
            session.refresh(entity)
            return entity

    def delete_plan(self, plan_id: int) -> bool:
        with self.database.session() as session:
            session.execute(update(Subscription).where(Subscription.plan_id == plan_id).values(plan_id=None))
            result = session.execute(delete(SubscriptionPlan).where(SubscriptionPlan.id == plan_id))
            session.commit()
            return bool(result.rowcount)

    # -------------------------- subscriptions --------------------------
    def has_active_subscription(self, owner_kind: str, owner_id: int, now: datetime) -> bool:
        """Existence check: any row of the owner satisfying the active predicate."""
        with self.database.session() as session:
            stmt = select(exists().where(_owner_clause(owner_kind, owner_id), _active_clause(now)))
            return bool(session.execute(stmt).scalar())

    def current_subscription(self, owner_kind: str, owner_id: int, now: datetime) -> Optional[Subscription]:
        with self.database.session() as session:
            stmt = (
                select(Subscription)
                .options(joinedload(Subscription.plan))
                .where(_owner_clause(owner_kind, owner_id), _active_clause(now))
                .order_by(Subscription.end_at.desc())
                .limit(1)
            )
            return session.execute(stmt).scalars().first()

    def has_overlapping_active(
        self,
        owner_kind: str,
        owner_id: int,
        start_at: datetime,
        end_at: datetime,
        *,
        exclude_id: Optional[int] = None,
    ) -> bool:
        conditions = [
            _owner_clause(owner_kind, owner_id),
            Subscription.status == "active",
            Subscription.start_at <= end_at,
            Subscription.end_at >= start_at,
        ]
        if exclude_id is not None:
            conditions.append(Subscription.id != exclude_id)
        with self.database.session() as session:
            return bool(session.execute(select(exists().where(*conditions))).scalar())

    def create_subscription(self, **values) -> Subscription:
        with self.database.session() as session:
            entity = Subscription(**values)
            session.add(entity)
            session.commit()
            subscription_id = entity.id
        return self.get_subscription(subscription_id)

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        with self.database.session() as session:
            stmt = select(Subscription).options(joinedload(Subscription.plan)).where(Subscription.id == subscription_id)
            return session.execute(stmt).scalars().first()

    def update_subscription(self, subscription_id: int, **values) -> Optional[Subscription]:
        with self.database.session() as session:
            if values:
                session.execute(update(Subscription).where(Subscription.id == subscription_id).values(**values))
                session.commit()
        return self.get_subscription(subscription_id)

    def delete_subscription(self, subscription_id: int) -> bool:
        with self.database.session() as session:
            result = session.execute(delete(Subscription).where(Subscription.id == subscription_id))
            session.commit()
            return bool(result.rowcount)

    def list_subscriptions(
        self,
        *,
        status: str = "",
        owner_kind: str = "",
        payment_method: str = "",
        user_id: Optional[int] = None,
        institution_id: Optional[int] = None,
        page: int = 1,
        limit: int = 15,
    ) -> tuple[list[Subscription], int]:
        conditions = []
        if status:
            conditions.append(Subscription.status == status)
        if owner_kind == "user":
            conditions.append(Subscription.user_id.is_not(None))
        elif owner_kind == "institution":
            conditions.append(Subscription.institution_id.is_not(None))
        if payment_method:
            conditions.append(Subscription.payment_method == payment_method)
        if user_id is not None:
            conditions.append(Subscription.user_id == user_id)
        if institution_id is not None:
            conditions.append(Subscription.institution_id == institution_id)
        with self.database.session() as session:
            total = session.execute(select(func.count(Subscription.id)).where(*conditions)).scalar_one()
            stmt = (
                select(Subscription)
                .options(joinedload(Subscription.plan))
                .where(*conditions)
                .order_by(Subscription.created_at.desc(), Subscription.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            return list(session.execute(stmt).scalars().all()), int(total)

    def count_active_subscriptions(self, now: datetime) -> int:
        with self.database.session() as session:
            return int(session.execute(select(func.count(Subscription.id)).where(_active_clause(now))).scalar_one())

    def active_revenue(self, now: datetime) -> Decimal:
        with self.database.session() as session:
            stmt = select(func.coalesce(func.sum(Subscription.price), 0)).where(_active_clause(now))
            return Decimal(str(session.execute(stmt).scalar_one() or 0))

    # -------------------------- refresh tokens --------------------------
    def save_refresh_token(self, digest: str, actor_type: str, actor_id: int, expires_at: datetime) -> None:
        with self.database.session() as session:
            session.merge(RefreshToken(token_digest=digest, actor_type=actor_type, actor_id=actor_id, expires_at=expires_at))
            session.commit()

    def get_valid_refresh_token(self, digest: str, now: datetime) -> Optional[RefreshToken]:
        with self.database.session() as session:
            stmt = select(RefreshToken).where(RefreshToken.token_digest == digest, RefreshToken.expires_at > now)
            return session.execute(stmt).scalar_one_or_none()

    def delete_refresh_token(self, digest: str) -> None:
        with self.database.session() as session:
            session.execute(delete(RefreshToken).where(RefreshToken.token_digest == digest))
            session.commit()

    def delete_refresh_tokens_for(self, actor_type: str, actor_id: int) -> None:
        with self.database.session() as session:
            session.execute(
                delete(RefreshToken).where(RefreshToken.actor_type == actor_type, RefreshToken.actor_id == actor_id)
            )
            session.commit()

    def purge_expired_refresh_tokens(self, now: datetime) -> int:
        with self.database.session() as session:
            result = session.execute(delete(RefreshToken).where(RefreshToken.expires_at <= now))
            session.commit()
            return int(result.rowcount or 0)
