"""Route aggregation for the grading API."""

from fastapi import APIRouter

from . import component, computation, final_grade, formula, report, template

router = APIRouter()
router.include_router(component.router)
router.include_router(formula.router)
router.include_router(template.router)
router.include_router(computation.router)
router.include_router(final_grade.router)
router.include_router(report.router)
