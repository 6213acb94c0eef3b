"""Pytest fixtures for gradebook tests.

The Test environment runs against a private in-memory SQLite database whose
schema is created once per session. Every test runs inside a transaction
that is rolled back afterwards, so tests never see each other's rows.

Usage:
    def test_summary(client: TestClient, offering: ClassOffering, auth_headers, teacher: User):
        url = f"/api/grading/reports/class-summary/{offering.class_offering_id}"
        response = client.get(url, headers=auth_headers(teacher))
        assert response.status_code == 200
"""

from __future__ import annotations

import datetime
import decimal
import os
import typing as t
from pathlib import Path

import pydantic as p
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import gradebook
from gradebook.auth import JWTManager
from gradebook.core import GradebookContainer, TimestampProvider
from gradebook.grading import catalog, registry
from gradebook.model import ClassOffering, ClassOfferingID, ComponentID, DeploymentEnvironment, \
    GradingComponent, GradingFormula, User, UserID, UserRole, Weighting
from gradebook.storage import assessment as assessment_storage
from gradebook.storage import offering as offering_storage
from gradebook.storage import roster as roster_storage
from gradebook.storage import user as user_storage
from gradebook.storage.table import metadata


@pytest.fixture(scope="session")
def container() -> t.Generator[GradebookContainer]:
    """Boot the DI container for the test session and create the schema."""
    ct = GradebookContainer()
    root = Path(os.path.dirname(gradebook.__file__)).parent

    GradebookContainer.boot(
        ct,
        debug=False,
        env=DeploymentEnvironment.Test,
        config_root=p.FileUrl(f"file://{root}/config"),
        override=(),
    )
    metadata.create_all(ct.storage().persistent().engine())

    yield ct

    ct.shutdown_resources()


@pytest.fixture(scope="session")
def app(container: GradebookContainer) -> FastAPI:
    """Create the FastAPI application wired to the test container."""
    from gradebook.core.config.web import GradebookWebSettings
    from gradebook.web.gradebook.main import _create_app  # pyright: ignore[reportPrivateUsage]

    container.wire(modules=["gradebook.web.gradebook.main", "gradebook.auth.middleware"])
    return _create_app(
        config=GradebookWebSettings(**container.config.web.gradebook()),
        env=DeploymentEnvironment.Test,
        root_path=t.cast(Path, container.root()),
    )


@pytest.fixture
def db_session(container: GradebookContainer) -> t.Generator[Session]:
    """Provide a database session wrapped in a transaction.

    Uses join_transaction_mode="create_savepoint" so that the session.begin()
    calls made by the code under test create savepoints inside the outer
    transaction, which is rolled back when the test ends.
    """
    engine = container.storage().persistent().engine()

    connection = engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, autobegin=False, join_transaction_mode="create_savepoint")

    container.storage().persistent().session.override(session)

    yield session

    container.storage().persistent().session.reset_override()
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def client(app: FastAPI, db_session: Session) -> t.Generator[TestClient]:
    """Provide a TestClient whose requests share the test's transactional session."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def utcnow() -> TimestampProvider:
    return lambda: datetime.datetime.now(datetime.UTC)


# Factories


@pytest.fixture
def user_factory(db_session: Session) -> t.Callable[..., User]:
    """Factory fixture for users; every call gets a unique email unless one is given."""
    counter = iter(range(1, 10_000))

    def create_user(
        name: str | None = None,
        email: str | None = None,
        role: UserRole = UserRole.Student,
    ) -> User:
        n = next(counter)
        with db_session.begin():
            return user_storage.create(
                email=email or f"{role.value}{n}@example.edu",
                name=name or f"{role.value.title()} {n}",
                role=role,
                session=db_session,
            )

    return create_user


@pytest.fixture
def admin(user_factory: t.Callable[..., User]) -> User:
    return user_factory(name="Ada Admin", role=UserRole.Admin)


@pytest.fixture
def teacher(user_factory: t.Callable[..., User]) -> User:
    return user_factory(name="Tess Teacher", role=UserRole.Teacher)


@pytest.fixture
def offering_factory(db_session: Session, teacher: User) -> t.Callable[..., ClassOffering]:
    """Factory fixture for class offerings; ``teacher`` is assigned unless ``teachers`` says otherwise."""

    def create_offering(name: str = "Algebra I", teachers: t.Sequence[User] | None = None) -> ClassOffering:
        with db_session.begin():
            period = offering_storage.create_period(name="Fall 2026", session=db_session)
            created = offering_storage.create(
                name=name, academic_period_id=period.academic_period_id, session=db_session
            )
            for u in [teacher] if teachers is None else teachers:
                offering_storage.add_teacher(created.class_offering_id, u.user_id, session=db_session)
            return created

    return create_offering


@pytest.fixture
def offering(offering_factory: t.Callable[..., ClassOffering]) -> ClassOffering:
    return offering_factory()


@pytest.fixture
def enroll(db_session: Session, user_factory: t.Callable[..., User]) -> t.Callable[..., list[User]]:
    """Create ``count`` students and enroll them in the offering, in order."""

    def enroll_students(class_offering_id: ClassOfferingID, count: int = 1) -> list[User]:
        students = [user_factory() for _ in range(count)]
        with db_session.begin():
            for student in students:
                roster_storage.enroll(class_offering_id, student.user_id, session=db_session)
        return students

    return enroll_students


@pytest.fixture
def record_scores(db_session: Session) -> t.Callable[..., None]:
    """Record a student's scores, keyed by component id."""

    def record(student_id: UserID, scores: t.Mapping[ComponentID, decimal.Decimal | str | None]) -> None:
        with db_session.begin():
            for component_id, value in scores.items():
                score = decimal.Decimal(value) if value is not None else None
                assessment_storage.record(student_id, component_id, score, session=db_session)

    return record


@pytest.fixture
def component_factory(db_session: Session, teacher: User) -> t.Callable[..., GradingComponent]:
    def create_component(
        class_offering_id: ClassOfferingID,
        name: str,
        weight: str = "0.5",
        max_score: str = "100",
        weighting: Weighting = Weighting.Weight,
    ) -> GradingComponent:
        return registry.create_component(
            class_offering_id,
            actor=teacher,
            name=name,
            weight=decimal.Decimal(weight),
            max_score=decimal.Decimal(max_score),
            weighting=weighting,
            session=db_session,
        )

    return create_component


@pytest.fixture
def formula_factory(db_session: Session, teacher: User) -> t.Callable[..., GradingFormula]:
    def create_formula(
        class_offering_id: ClassOfferingID,
        expression: str,
        activate: bool = True,
        **kwargs: t.Any,
    ) -> GradingFormula:
        return catalog.create_formula(
            class_offering_id, actor=teacher, expression=expression, activate=activate, session=db_session, **kwargs
        )

    return create_formula


class GradedOffering(t.NamedTuple):
    offering: ClassOffering
    components: dict[str, GradingComponent]
    formula: GradingFormula
    students: list[User]


@pytest.fixture
def graded_offering(
    offering: ClassOffering,
    component_factory: t.Callable[..., GradingComponent],
    formula_factory: t.Callable[..., GradingFormula],
    enroll: t.Callable[..., list[User]],
    record_scores: t.Callable[..., None],
) -> GradedOffering:
    """An offering with exams 0.6/homework 0.4, an active weighted formula and three scored students.

    The students score 92.5, 87.0 and 58.0 respectively.
    """
    exams = component_factory(offering.class_offering_id, "exams", weight="0.6")
    homework = component_factory(offering.class_offering_id, "homework", weight="0.4")
    formula = formula_factory(
        offering.class_offering_id,
        "exams * 0.6 + homework * 0.4",
        pass_threshold=decimal.Decimal(60),
    )
    students = enroll(offering.class_offering_id, 3)
    for student, (e, h) in zip(students, [("95", "88.75"), ("85", "90"), ("55", "62.5")]):
        record_scores(student.user_id, {exams.component_id: e, homework.component_id: h})

    return GradedOffering(
        offering=offering,
        components={"exams": exams, "homework": homework},
        formula=formula,
        students=students,
    )


# Auth


@pytest.fixture
def jwt_manager(container: GradebookContainer) -> JWTManager:
    return container.auth().jwt_manager()


@pytest.fixture
def auth_headers(jwt_manager: JWTManager) -> t.Callable[[User], dict[str, str]]:
    """Build an Authorization header carrying a fresh token for the user."""

    def headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {jwt_manager.create_access_token(user.user_id, user.role)}"}

    return headers

