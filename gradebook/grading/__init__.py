__all__ = [
    "AccessPolicy",
    "AssessmentStore",
    "AuditSink",
    "LogAuditSink",
    "RosterProvider",
    "SQLAccessPolicy",
    "SQLAssessmentStore",
    "SQLAuditSink",
    "SQLRosterProvider",
    # services
    "catalog",
    "lifecycle",
    "orchestrator",
    "registry",
    "reporting",
]

from . import catalog, lifecycle, orchestrator, registry, reporting
from .provider import AccessPolicy, AssessmentStore, AuditSink, LogAuditSink, RosterProvider, SQLAccessPolicy, \
    SQLAssessmentStore, SQLAuditSink, SQLRosterProvider
