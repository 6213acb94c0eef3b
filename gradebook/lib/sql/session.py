import logging
import typing as t

import sql_formatter.core
import sqlalchemy
import sqlalchemy.exc
import sqlalchemy.orm


class DebugSession(sqlalchemy.orm.Session):
    """Session that logs each statement it executes, formatted, at TRACE level."""

    logger = logging.getLogger(__name__)

    def format_statement(self, statement: sqlalchemy.Executable) -> str:
        conn = self.connection()
        compiled = statement.compile(  # pyright: ignore [reportAttributeAccessIssue]
            conn, compile_kwargs={"literal_binds": True}
        )
        return sql_formatter.core.format_sql(str(compiled))

    def execute(self, statement: t.Any, *args: t.Any, **kwargs: t.Any) -> t.Any:
        if self.logger.isEnabledFor(getattr(logging, "TRACE", 5)):
            try:
                formatted = self.format_statement(statement)
            except sqlalchemy.exc.CompileError:
                formatted = str(statement)
            self.logger.log(getattr(logging, "TRACE", 5), "executing statement\n%s", formatted)
        return super().execute(statement, *args, **kwargs)
