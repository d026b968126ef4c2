# gymcheckin/auth.py

from typing import Iterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gymcheckin import models
from gymcheckin.errors import Unauthenticated
from gymcheckin.lifecycle import CheckinLifecycle
from gymcheckin.reconciliation import PaymentReconciliation
from gymcheckin.repository import CheckinRepository, SqlCheckinRepository

bearer_scheme = HTTPBearer(auto_error=False)

# ------------------------------------------------------------------
# DATABASE / REPOSITORY DEPENDENCIES
# ------------------------------------------------------------------
# Everything below reads the collaborators `create_app()` put on app.state.


def get_db(request: Request):
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        yield None
        return
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_repository(request: Request, db=Depends(get_db)) -> Iterator[CheckinRepository]:
    local = getattr(request.app.state, "local_repository", None)
    if local is not None:
        yield local
        return
    yield SqlCheckinRepository(db)


def get_lifecycle(request: Request, repository: CheckinRepository = Depends(get_repository)) -> CheckinLifecycle:
    state = request.app.state
    return CheckinLifecycle(
        repository,
        payment_bypassed=state.settings.payment_bypassed,
        clock=state.clock,
    )


def get_reconciliation(
    request: Request,
    repository: CheckinRepository = Depends(get_repository),
    lifecycle: CheckinLifecycle = Depends(get_lifecycle),
) -> PaymentReconciliation:
    return PaymentReconciliation(lifecycle, repository, gateway=request.app.state.gateway)


# ------------------------------------------------------------------
# AUTH DEPENDENCIES
# ------------------------------------------------------------------

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    repository: CheckinRepository = Depends(get_repository),
) -> models.User:
    """
    Resolve the bearer token through the identity provider and return the
    matching user, creating it on first sight and refreshing the display
    name on every call.
    """
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise Unauthenticated()

    identity = request.app.state.identity_provider.resolve(credentials.credentials)
    return repository.upsert_user(
        external_identity_id=identity.user_id,
        display_name=identity.display_name,
        picture_url=identity.picture_url,
    )
