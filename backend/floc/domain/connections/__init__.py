"""Connection graph exports."""

from . import audit, reconcile, service  # noqa: F401
from .models import EDGE_INTENTS, Edge  # noqa: F401
from .reconcile import ConnectionReconciler, SweepReport  # noqa: F401
from .schemas import ConnectionView, ConnectRequest  # noqa: F401
from .service import ConnectionGraphManager  # noqa: F401
