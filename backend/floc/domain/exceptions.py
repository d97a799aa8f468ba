"""Domain-level exceptions shared by connections, activities and payments."""

from __future__ import annotations

from typing import Dict


class FlocError(Exception):
	"""Base class for Floc domain errors."""

	reason: str = "unknown"
	message: str = "Something went wrong. Please try again."

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class Unauthenticated(FlocError):
	reason = "unauthenticated"
	message = "You need to be signed in to do that."


class NotFound(FlocError):
	reason = "not_found"
	message = "We couldn't find what you were looking for."


class PermissionDenied(FlocError):
	reason = "forbidden"
	message = "Only the activity owner can do that."


class AlreadyConnected(FlocError):
	reason = "already_connected"
	message = "You are already connected with this user."


class SelfConnection(FlocError):
	reason = "self_connection"
	message = "You can't connect with yourself."


class VerificationFailed(FlocError):
	reason = "verification_failed"
	message = "We couldn't verify your payment. You have not been charged twice; please try again."


class PaymentNotRequired(FlocError):
	reason = "payment_not_required"
	message = "No payment is needed to join this activity."


class InconsistentEdge(FlocError):
	"""One-sided connection found during a read.

	Never raised to callers; logged as a warning while the read degrades to the
	one-sided view.
	"""

	reason = "inconsistent_edge"
	message = "This connection is still syncing."

	def __init__(self, user_id: str, peer_id: str) -> None:
		super().__init__(f"inconsistent_edge:{user_id}->{peer_id}")
		self.reason = InconsistentEdge.reason
		self.user_id = user_id
		self.peer_id = peer_id


PAYMENT_REQUIRED_MESSAGE = "This activity is paid. Complete checkout to join."

_MESSAGES: Dict[str, str] = {
	cls.reason: cls.message
	for cls in (
		Unauthenticated,
		NotFound,
		PermissionDenied,
		AlreadyConnected,
		SelfConnection,
		VerificationFailed,
		PaymentNotRequired,
		InconsistentEdge,
	)
}
_MESSAGES["payment_required"] = PAYMENT_REQUIRED_MESSAGE


def message_for(error: FlocError | str) -> str:
	"""Short user-facing message for an error or an error reason."""
	if isinstance(error, FlocError):
		return error.message
	return _MESSAGES.get(error, FlocError.message)
