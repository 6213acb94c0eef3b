"""Grading collaborators for dependency injection."""

from __future__ import annotations

from dependency_injector.containers import DeclarativeContainer
from dependency_injector.providers import Configuration, Provider, Selector, Singleton

from gradebook.grading.provider import AccessPolicy, AssessmentStore, AuditSink, LogAuditSink, RosterProvider, \
    SQLAccessPolicy, SQLAssessmentStore, SQLAuditSink, SQLRosterProvider


class GradingContainer(DeclarativeContainer):
    """Container for the stores and policies the grading services consult."""

    config: Configuration = Configuration()

    assessments: Provider[AssessmentStore] = Singleton(SQLAssessmentStore)
    roster: Provider[RosterProvider] = Singleton(SQLRosterProvider)
    access: Provider[AccessPolicy] = Singleton(SQLAccessPolicy)
    audit: Provider[AuditSink] = Selector(
        config.audit.backend,
        sql=Singleton(SQLAuditSink),
        log=Singleton(LogAuditSink),
    )
