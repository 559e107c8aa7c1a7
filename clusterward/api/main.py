from typing import Optional

from fastapi import FastAPI

from clusterward.api.middleware import AuthMiddleware
from clusterward.api.routes import status, suspension
from clusterward.modules.cluster.models import OperatorStatus
from clusterward.modules.operator.suspend import SuspensionRegistry


def create_app(registry: Optional[SuspensionRegistry] = None,
               operator_status: Optional[OperatorStatus] = None,
               token: str = "") -> FastAPI:
    """Build the API around the registry and status shared with the poller."""
    app = FastAPI(title="clusterward")
    app.state.registry = registry or SuspensionRegistry()
    app.state.status = operator_status or OperatorStatus()
    app.add_middleware(AuthMiddleware, token=token)

    app.include_router(status.router)
    app.include_router(suspension.router)
    return app


app = create_app()
