"""User documents: sign-in sync, lookups and username propagation."""

from . import service  # noqa: F401
from .models import UserRecord, default_username  # noqa: F401
