"""Transient conversation models shared by the assistant services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

TERMINAL_RUN_STATUSES = frozenset({"completed", "failed", "cancelled", "expired"})
FAILED_RUN_STATUSES = TERMINAL_RUN_STATUSES - {"completed"}


@dataclass
class RunHandle:
	"""One assistant run observed on a thread.

	Attributes:
		run_id: Remote run identifier.
		status: Last observed status (queued, in_progress, completed, ...).
		error_detail: Remote-provided failure detail, if any.
	"""

	run_id: str
	status: str
	error_detail: Optional[str] = None

	@property
	def is_terminal(self) -> bool:
		return self.status in TERMINAL_RUN_STATUSES


@dataclass
class ConversationReply:
	"""Result of one converse() cycle."""

	thread_id: str
	run_id: str
	text: str
