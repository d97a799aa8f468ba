"""Activity participation exports."""

from . import audit, queries, service, visibility  # noqa: F401
from .models import ACTIVITIES, Activity, Joiner, JoinOutcome, JoinResult, PaymentRequired, PaymentStatus, is_joined  # noqa: F401
from .queries import ActivityPage, ActivityQueries, FeedItem  # noqa: F401
from .service import ActivityParticipationEngine  # noqa: F401
from .visibility import filter_for_viewer, is_visible  # noqa: F401
