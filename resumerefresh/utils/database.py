import threading
import uuid
import zlib
from datetime import datetime
from pathlib import Path
from typing import Optional
from contextlib import contextmanager

from sqlalchemy import create_engine, Column, String, Integer, DateTime, Text, JSON, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from resumerefresh.core.errors import PersistenceFailure
from resumerefresh.core.submission import (
    SubmissionMetadata,
    SubmissionRecord,
    SubmissionSource,
    SubmissionStatus,
)

Base = declarative_base()

# Upserts for the same email always take the same lock
LOCK_STRIPES = 64


class SubmissionModel(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    applicant_name = Column(String, default="")
    job_title = Column(String, default="")
    company_name = Column(String, default="")
    same_company = Column(String, nullable=False)
    skills = Column(JSON, default=list)
    current_role = Column(String, nullable=False)
    years_of_experience = Column(Integer, nullable=False)
    relevant_info = Column(Text, default="")
    user_agent = Column(String, default="")
    ip_address = Column(String, default="")
    source = Column(String, default=SubmissionSource.INTERACTIVE_EMAIL.value)
    referrer = Column(String)
    submitted_at = Column(DateTime, default=datetime.now)
    status = Column(String, default=SubmissionStatus.PENDING_REVIEW.value)
    created_at = Column(DateTime, default=datetime.now, index=True)
    updated_at = Column(DateTime, default=datetime.now)

    def to_record(self) -> SubmissionRecord:
        return SubmissionRecord(
            id=self.id,
            email=self.email,
            applicant_name=self.applicant_name or "",
            job_title=self.job_title or "",
            company_name=self.company_name or "",
            same_company=self.same_company,
            skills=self.skills or [],
            current_role=self.current_role,
            years_of_experience=self.years_of_experience,
            relevant_info=self.relevant_info or "",
            submission_metadata=SubmissionMetadata(
                user_agent=self.user_agent or "",
                ip_address=self.ip_address or "",
                source=self.source or SubmissionSource.INTERACTIVE_EMAIL.value,
                referrer=self.referrer,
                submitted_at=self.submitted_at or self.updated_at,
            ),
            status=self.status or SubmissionStatus.PENDING_REVIEW.value,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply(self, fields: dict, metadata: SubmissionMetadata) -> None:
        self.applicant_name = fields.get("applicant_name", "")
        self.job_title = fields.get("job_title", "")
        self.company_name = fields.get("company_name", "")
        self.same_company = fields["same_company"]
        self.skills = list(fields.get("skills") or [])
        self.current_role = fields["current_role"]
        self.years_of_experience = fields["years_of_experience"]
        self.relevant_info = fields.get("relevant_info", "")
        self.user_agent = metadata.user_agent
        self.ip_address = metadata.ip_address
        self.source = metadata.source
        self.referrer = metadata.referrer
        self.submitted_at = metadata.submitted_at
        self.status = SubmissionStatus.PENDING_REVIEW.value


class Database:
    def __init__(self, db_path: str = "data/submissions.db", echo: bool = False):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=echo,
            connect_args={"check_same_thread": False}
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    @contextmanager
    def session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceFailure(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _lock_for(self, email: str) -> threading.Lock:
        return self._locks[zlib.crc32(email.encode("utf-8")) % LOCK_STRIPES]

    def find_latest(self, email: str) -> Optional[SubmissionRecord]:
        email = email.strip().lower()
        with self.session() as session:
            model = (
                session.query(SubmissionModel)
                .filter(SubmissionModel.email == email)
                .order_by(SubmissionModel.created_at.desc())
                .first()
            )
            return model.to_record() if model else None

    def upsert_latest(self, email: str, fields: dict, metadata: SubmissionMetadata) -> SubmissionRecord:
        """
        Replace the newest record for this email, or create one.
        Serialized per email so concurrent submits never produce two rows.
        """
        email = email.strip().lower()
        now = datetime.now()

        with self._lock_for(email):
            with self.session() as session:
                model = (
                    session.query(SubmissionModel)
                    .filter(SubmissionModel.email == email)
                    .order_by(SubmissionModel.created_at.desc())
                    .first()
                )
                if model is None:
                    model = SubmissionModel(id=str(uuid.uuid4()), email=email, created_at=now)
                    session.add(model)

                model.apply(fields, metadata)
                model.updated_at = now
                session.flush()
                return model.to_record()

    def get_submission(self, submission_id: str) -> Optional[SubmissionRecord]:
        with self.session() as session:
            model = session.query(SubmissionModel).filter(SubmissionModel.id == submission_id).first()
            return model.to_record() if model else None

    def list_submissions(
        self,
        page: int = 1,
        limit: int = 10,
        email_filter: Optional[str] = None,
    ) -> list[SubmissionRecord]:
        page = max(page, 1)
        limit = max(min(limit, 100), 1)

        with self.session() as session:
            query = session.query(SubmissionModel)
            if email_filter:
                query = query.filter(SubmissionModel.email.ilike(f"%{email_filter.strip()}%"))
            models = (
                query.order_by(SubmissionModel.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return [m.to_record() for m in models]

    def count_submissions(self, email_filter: Optional[str] = None) -> int:
        with self.session() as session:
            query = session.query(SubmissionModel)
            if email_filter:
                query = query.filter(SubmissionModel.email.ilike(f"%{email_filter.strip()}%"))
            return query.count()

    def count_by_source(self) -> dict[str, int]:
        with self.session() as session:
            rows = (
                session.query(SubmissionModel.source, func.count(SubmissionModel.id))
                .group_by(SubmissionModel.source)
                .all()
            )
        counts = {source.value: 0 for source in SubmissionSource}
        for source, count in rows:
            counts[source or SubmissionSource.INTERACTIVE_EMAIL.value] = count
        return counts

    def get_stats(self) -> dict:
        by_source = self.count_by_source()
        return {
            "total_submissions": sum(by_source.values()),
            "by_source": by_source,
            "latest": [r.to_summary() for r in self.list_submissions(page=1, limit=5)],
        }


_db: Optional[Database] = None


def get_db() -> Database:
    global _db
    if _db is None:
        from resumerefresh.utils.config import get_settings
        settings = get_settings()
        _db = Database(
            db_path=settings.database.path,
            echo=settings.database.echo
        )
    return _db
