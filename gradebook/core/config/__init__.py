__all__ = [
    "AuditSettings",
    "AuthSecrets",
    "AuthSettings",
    "ComponentSettings",
    "ComputationSettings",
    "DatabaseSecrets",
    "DatabaseSettings",
    "FormulaSettings",
    "GradebookWebSettings",
    "GradingSettings",
    "LoggingSettings",
    "Secrets",
    "Settings",
    "StorageSettings",
    "WebSettings",
]


from .grading import AuditSettings, ComponentSettings, ComputationSettings, FormulaSettings, GradingSettings
from .logging import LoggingSettings
from .secrets import AuthSecrets, DatabaseSecrets, Secrets
from .settings import Settings
from .storage import DatabaseSettings, StorageSettings
from .web import AuthSettings, GradebookWebSettings, WebSettings
