"""Tests for the grading HTTP API."""

from __future__ import annotations

import datetime
import decimal
import typing as t

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from gradebook.grading import lifecycle, orchestrator
from gradebook.model import ClassOffering, FormulaID, User, UserRole
from gradebook.storage import computation as computation_storage
from gradebook.storage import offering as offering_storage

if t.TYPE_CHECKING:
    from conftest import GradedOffering

D = decimal.Decimal
Prefix = "/api/grading"
Headers = t.Callable[[User], dict[str, str]]


def _decimal(value: t.Any) -> decimal.Decimal:
    return D(str(value))


class TestAuthentication(object):
    """Tests for authentication and role checks."""

    def test_no_token(self, client: TestClient, offering: ClassOffering) -> None:
        response = client.get(f"{Prefix}/components", params={"class_offering_id": offering.class_offering_id})
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client: TestClient, offering: ClassOffering) -> None:
        response = client.get(
            f"{Prefix}/components",
            params={"class_offering_id": offering.class_offering_id},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401

    def test_student_cannot_manage(
        self, client: TestClient, graded_offering: GradedOffering, auth_headers: Headers
    ) -> None:
        student = graded_offering.students[0]
        response = client.post(
            f"{Prefix}/compute",
            json={"class_offering_id": graded_offering.offering.class_offering_id},
            headers=auth_headers(student),
        )
        assert response.status_code == 403

    def test_unassigned_teacher(
        self,
        client: TestClient,
        graded_offering: GradedOffering,
        user_factory: t.Callable[..., User],
        auth_headers: Headers,
    ) -> None:
        outsider = user_factory(role=UserRole.Teacher)
        response = client.get(
            f"{Prefix}/reports/class-summary/{graded_offering.offering.class_offering_id}",
            headers=auth_headers(outsider),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"


class TestComponentsApi(object):
    """Tests for the /components routes."""

    def test_create_and_list(
        self, client: TestClient, offering: ClassOffering, teacher: User, auth_headers: Headers
    ) -> None:
        response = client.post(
            f"{Prefix}/components",
            json={"class_offering_id": offering.class_offering_id, "name": "exams", "weight": "0.6"},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 201
        assert response.json()["name"] == "exams"

        response = client.get(
            f"{Prefix}/components",
            params={"class_offering_id": offering.class_offering_id},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 200
        body = response.json()
        assert [c["name"] for c in body["components"]] == ["exams"]
        assert _decimal(body["total_weight"]) == D("0.6")

    def test_weight_error_is_422(
        self, client: TestClient, offering: ClassOffering, teacher: User, auth_headers: Headers
    ) -> None:
        response = client.post(
            f"{Prefix}/components",
            json={"class_offering_id": offering.class_offering_id, "name": "exams", "weight": "1.5"},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"][0]["field"] == "weight"

    def test_delete_referenced_is_409(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        exams = graded_offering.components["exams"]
        response = client.delete(f"{Prefix}/components/{exams.component_id}", headers=auth_headers(teacher))
        assert response.status_code == 409
        assert response.json()["error"] == "component_in_use"


class TestFormulasApi(object):
    """Tests for the /formulas routes."""

    def test_validate(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        response = client.post(
            f"{Prefix}/formulas/validate",
            json={"class_offering_id": graded_offering.offering.class_offering_id, "expression": "exams+homework"},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["canonical"] == "(exams + homework)"
        assert body["references"] == ["exams", "homework"]

    def test_syntax_error_is_422(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        response = client.post(
            f"{Prefix}/formulas/validate",
            json={"class_offering_id": graded_offering.offering.class_offering_id, "expression": "exams * (2"},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "syntax_error"
        assert body["details"][0]["field"] == "expression"

    def test_unknown_formula_is_404(self, client: TestClient, teacher: User, auth_headers: Headers) -> None:
        response = client.get(f"{Prefix}/formulas/{FormulaID()}", headers=auth_headers(teacher))
        assert response.status_code == 404


class TestTemplatesApi(object):
    """Tests for the /templates routes."""

    def test_create_duplicate_and_apply(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        response = client.post(
            f"{Prefix}/templates",
            json={"name": "Even split", "expression": "exams * 0.5 + homework * 0.5", "category": "basic"},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 201
        template = response.json()
        assert template["category"] == "basic"
        assert _decimal(template["output_scale"]) == D(100)

        response = client.post(
            f"{Prefix}/templates/{template['template_id']}/duplicate", json={}, headers=auth_headers(teacher)
        )
        assert response.status_code == 201
        assert response.json()["name"] == "Even split (copy)"

        response = client.get(f"{Prefix}/templates", params={"category": "basic"}, headers=auth_headers(teacher))
        assert [item["name"] for item in response.json()["templates"]] == ["Even split"]

        response = client.post(
            f"{Prefix}/templates/{template['template_id']}/apply",
            json={"class_offering_id": offering_id, "activate": True},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 201
        formula = response.json()
        assert formula["expression"] == "exams * 0.5 + homework * 0.5"
        assert formula["version"] == 2
        assert formula["is_active"] is True

    def test_apply_unknown_component_is_422(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        response = client.post(
            f"{Prefix}/templates",
            json={"name": "Quizzes", "expression": "quizzes"},
            headers=auth_headers(teacher),
        )
        response = client.post(
            f"{Prefix}/templates/{response.json()['template_id']}/apply",
            json={"class_offering_id": graded_offering.offering.class_offering_id},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "unknown_reference"

    def test_student_cannot_list(
        self, client: TestClient, graded_offering: GradedOffering, auth_headers: Headers
    ) -> None:
        response = client.get(f"{Prefix}/templates", headers=auth_headers(graded_offering.students[0]))
        assert response.status_code == 403

    def test_delete(self, client: TestClient, teacher: User, auth_headers: Headers) -> None:
        response = client.post(
            f"{Prefix}/templates", json={"name": "Exams only", "expression": "exams"}, headers=auth_headers(teacher)
        )
        template_id = response.json()["template_id"]

        response = client.delete(f"{Prefix}/templates/{template_id}", headers=auth_headers(teacher))
        assert response.status_code == 204
        response = client.get(f"{Prefix}/templates/{template_id}", headers=auth_headers(teacher))
        assert response.status_code == 404


class TestComputationApi(object):
    """Tests for computing, previewing and publishing over HTTP."""

    def test_compute(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        response = client.post(
            f"{Prefix}/compute",
            json={"class_offering_id": graded_offering.offering.class_offering_id},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "completed"
        assert body["succeeded_count"] == 3
        assert [r["letter"] for r in body["results"]] == ["A", "B", "F"]

        response = client.get(f"{Prefix}/computations/{body['computation_id']}", headers=auth_headers(teacher))
        assert response.status_code == 200
        assert response.json()["computation_id"] == body["computation_id"]

    def test_preview(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        response = client.post(
            f"{Prefix}/preview",
            json={
                "class_offering_id": graded_offering.offering.class_offering_id,
                "student_id": graded_offering.students[2].user_id,
                "component_overrides": {"exams": "70"},
            },
            headers=auth_headers(teacher),
        )
        assert response.status_code == 200
        body = response.json()
        assert _decimal(body["raw_score"]) == D(67)
        assert body["letter"] == "D"

    def test_publish_and_lock(
        self, client: TestClient, graded_offering: GradedOffering, teacher: User, auth_headers: Headers
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        client.post(f"{Prefix}/compute", json={"class_offering_id": offering_id}, headers=auth_headers(teacher))

        response = client.post(
            f"{Prefix}/final-grades/lock", json={"class_offering_id": offering_id}, headers=auth_headers(teacher)
        )
        assert response.status_code == 200
        assert {f["error"] for f in response.json()["failed"]} == {"must_publish_before_lock"}

        response = client.post(
            f"{Prefix}/final-grades/publish", json={"class_offering_id": offering_id}, headers=auth_headers(teacher)
        )
        assert response.status_code == 200
        assert len(response.json()["affected"]) == 3

        response = client.post(
            f"{Prefix}/final-grades/lock", json={"class_offering_id": offering_id}, headers=auth_headers(teacher)
        )
        assert len(response.json()["affected"]) == 3

        response = client.post(
            f"{Prefix}/final-grades/unlock",
            json={"class_offering_id": offering_id, "reason": ""},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 422

    def test_computation_in_progress_is_409(
        self,
        client: TestClient,
        db_session: Session,
        graded_offering: GradedOffering,
        teacher: User,
        auth_headers: Headers,
    ) -> None:
        with db_session.begin():
            running = computation_storage.create(
                class_offering_id=graded_offering.offering.class_offering_id,
                formula_id=graded_offering.formula.formula_id,
                triggered_by=teacher.user_id,
                started_at=datetime.datetime.now(datetime.UTC),
                session=db_session,
            )
            offering_storage.claim(
                graded_offering.offering.class_offering_id, running.computation_id, session=db_session
            )
        response = client.post(
            f"{Prefix}/compute",
            json={"class_offering_id": graded_offering.offering.class_offering_id},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 409
        assert response.json()["error"] == "computation_in_progress"


class TestFinalGradesApi(object):
    """Tests for reading final grades and reports over HTTP."""

    def test_student_reads_own_published_grade(
        self,
        client: TestClient,
        db_session: Session,
        graded_offering: GradedOffering,
        teacher: User,
        auth_headers: Headers,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[0]
        url = f"{Prefix}/final-grades/{student.user_id}/{offering_id}"
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        # drafts stay hidden from the student
        assert client.get(url, headers=auth_headers(student)).status_code == 404

        lifecycle.publish(offering_id, actor=teacher, session=db_session)
        response = client.get(url, headers=auth_headers(student))
        assert response.status_code == 200
        body = response.json()
        assert body["display_letter"] == "A"
        assert _decimal(body["display_score"]) == D("92.5")

    def test_student_cannot_read_other_grade(
        self,
        client: TestClient,
        db_session: Session,
        graded_offering: GradedOffering,
        teacher: User,
        auth_headers: Headers,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        me, other = graded_offering.students[:2]
        response = client.get(f"{Prefix}/final-grades/{other.user_id}/{offering_id}", headers=auth_headers(me))
        assert response.status_code == 403

    def test_override(
        self,
        client: TestClient,
        db_session: Session,
        graded_offering: GradedOffering,
        teacher: User,
        auth_headers: Headers,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[1]
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        url = f"{Prefix}/final-grades/{student.user_id}/{offering_id}/override"

        response = client.post(url, json={"reason": "extra credit", "letter": "A-"}, headers=auth_headers(teacher))
        assert response.status_code == 200
        body = response.json()
        assert body["display_letter"] == "A-"
        assert body["letter"] == "B"

        response = client.post(
            url,
            json={"reason": "again", "letter": "A", "expected_revision": 1},
            headers=auth_headers(teacher),
        )
        assert response.status_code == 409

        response = client.request("DELETE", url, headers=auth_headers(teacher))
        assert response.status_code == 200
        assert response.json()["display_letter"] == "B"

    def test_reports(
        self,
        client: TestClient,
        db_session: Session,
        graded_offering: GradedOffering,
        teacher: User,
        auth_headers: Headers,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        lifecycle.publish(offering_id, actor=teacher, session=db_session)

        response = client.get(f"{Prefix}/reports/class-summary/{offering_id}", headers=auth_headers(teacher))
        assert response.status_code == 200
        assert response.json()["count"] == 3
        assert _decimal(response.json()["mean"]) == D("79.17")

        response = client.get(f"{Prefix}/reports/grade-distribution/{offering_id}", headers=auth_headers(teacher))
        assert [b["letter"] for b in response.json()["buckets"]] == ["A", "B", "C", "D", "F"]

    def test_student_transcript(
        self,
        client: TestClient,
        db_session: Session,
        graded_offering: GradedOffering,
        teacher: User,
        auth_headers: Headers,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student, other = graded_offering.students[:2]
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        url = f"{Prefix}/reports/student-transcript/{student.user_id}"

        # staff see the draft, the student does not
        assert [e["status"] for e in client.get(url, headers=auth_headers(teacher)).json()["entries"]] == ["draft"]
        assert client.get(url, headers=auth_headers(student)).json()["entries"] == []
        assert client.get(url, headers=auth_headers(other)).status_code == 403
