"""
FastAPI dependencies (DB session, workspace)
"""
from typing import Generator, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from envelope.application.workspace import Workspace
from envelope.infrastructure.db.session import Database


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(database: Database = Depends(get_database)) -> Generator[Session, None, None]:
    """
    Dependency - creates a session and closes it after the request

    Usage:
        @router.get("/budgets")
        def list_budgets(db: Session = Depends(get_db)):
            ...
    """
    db = database.session()
    try:
        yield db
    finally:
        db.close()


def get_current_month() -> Optional[str]:
    """
    "Now" for the recompute range; None means the real current month

    Tests override this through app.dependency_overrides.
    """
    return None


def get_workspace(
    budget_id: str,
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    current_month: Optional[str] = Depends(get_current_month),
) -> Workspace:
    """Workspace for the {budget_id} path parameter (404 if the budget is unknown)"""
    return Workspace(db, budget_id, month=month, current_month=current_month)
