"""
SQL implementation of the specification repository.

Each call opens its own session, so one repository can be shared by the
worker threads the pipeline runs blocking calls in.
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional

import structlog
from sqlalchemy.orm import Session, sessionmaker

from ..core.interfaces import SpecificationRepository
from ..data.models.job import JobRef, JobSpec
from ..data.models.project import ProjectSpec
from ..errors import JobNotFound, ProjectNotFound, SecretNotFound
from ..schemas.job_v1 import dump_spec, load_spec
from .crypto import ApplicationKey, SecretDecryptionError
from .models import JobSpecModel, ProjectModel, ProjectSecretModel

logger = structlog.get_logger()


class SqlSpecificationRepository(SpecificationRepository):
    """Projects, secrets and job specifications in a relational database."""

    def __init__(self, session_factory: sessionmaker, key: ApplicationKey):
        self.session_factory = session_factory
        self.key = key

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Projects

    def list_projects(self) -> List[ProjectSpec]:
        with self.session() as db:
            projects = db.query(ProjectModel).order_by(ProjectModel.name).all()
            return [self._project(p) for p in projects]

    def get_project(self, name: str) -> ProjectSpec:
        with self.session() as db:
            return self._project(self._get_project(db, name))

    def save_project(self, project: ProjectSpec) -> None:
        with self.session() as db:
            model = db.query(ProjectModel).filter(ProjectModel.name == project.name).first()
            if model is None:
                db.add(ProjectModel(name=project.name, config=dict(project.config)))
            else:
                model.config = dict(project.config)

    # Jobs

    def list_jobs(self, project: str) -> List[JobSpec]:
        with self.session() as db:
            model = self._get_project(db, project)
            jobs = (
                db.query(JobSpecModel)
                .filter(JobSpecModel.project_id == model.id)
                .order_by(JobSpecModel.name)
                .all()
            )
            return [load_spec(job.spec) for job in jobs]

    def get_job(self, project: str, name: str) -> JobSpec:
        with self.session() as db:
            return load_spec(self._get_job(db, project, name).spec)

    def save_job(self, project: str, job: JobSpec, destination: Optional[str] = None) -> None:
        with self.session() as db:
            model = self._get_project(db, project)
            existing = (
                db.query(JobSpecModel)
                .filter(JobSpecModel.project_id == model.id, JobSpecModel.name == job.name)
                .first()
            )
            if existing is None:
                db.add(
                    JobSpecModel(
                        project_id=model.id,
                        name=job.name,
                        spec=dump_spec(job),
                        destination=destination,
                    )
                )
            else:
                existing.spec = dump_spec(job)
                existing.destination = destination

    def delete_job(self, project: str, name: str) -> None:
        with self.session() as db:
            db.delete(self._get_job(db, project, name))

    def find_jobs_by_destination(self, destination: str) -> List[JobRef]:
        with self.session() as db:
            rows = (
                db.query(ProjectModel.name, JobSpecModel.name)
                .join(JobSpecModel, JobSpecModel.project_id == ProjectModel.id)
                .filter(JobSpecModel.destination == destination)
                .all()
            )
            return sorted(JobRef(project, name) for project, name in rows)

    # Secrets

    def get_secret(self, project: str, name: str) -> bytes:
        with self.session() as db:
            model = self._get_project(db, project)
            secret = (
                db.query(ProjectSecretModel)
                .filter(ProjectSecretModel.project_id == model.id, ProjectSecretModel.name == name)
                .first()
            )
            if secret is None:
                raise SecretNotFound(project, name)
            return self.key.decrypt(secret.value)

    def save_secret(self, project: str, name: str, value: bytes) -> None:
        with self.session() as db:
            model = self._get_project(db, project)
            secret = (
                db.query(ProjectSecretModel)
                .filter(ProjectSecretModel.project_id == model.id, ProjectSecretModel.name == name)
                .first()
            )
            encrypted = self.key.encrypt(value)
            if secret is None:
                db.add(ProjectSecretModel(project_id=model.id, name=name, value=encrypted))
            else:
                secret.value = encrypted

    # Helpers

    def _project(self, model: ProjectModel) -> ProjectSpec:
        # An unreadable secret only affects the project that owns it
        project = ProjectSpec(name=model.name, config=dict(model.config or {}))
        for secret in model.secrets:
            try:
                project.secrets[secret.name] = self.key.decrypt(secret.value)
            except SecretDecryptionError as e:
                logger.warning(
                    "secret_unreadable", project=model.name, secret=secret.name, error=e.message
                )
                project.secret_errors[secret.name] = e.message
        return project

    def _get_project(self, db: Session, name: str) -> ProjectModel:
        model = db.query(ProjectModel).filter(ProjectModel.name == name).first()
        if model is None:
            raise ProjectNotFound(name)
        return model

    def _get_job(self, db: Session, project: str, name: str) -> JobSpecModel:
        model = self._get_project(db, project)
        job = (
            db.query(JobSpecModel)
            .filter(JobSpecModel.project_id == model.id, JobSpecModel.name == name)
            .first()
        )
        if job is None:
            raise JobNotFound(project, name)
        return job
