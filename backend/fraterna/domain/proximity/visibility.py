"""Decide which location records a viewer may see.

Every failure path resolves to "not visible": a missing profile, an unknown
visibility mode and a relationship lookup that could not be loaded all hide
the candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Set, Tuple

from fraterna.domain.proximity.models import LocationRecord, OwnerProfile, VisibilityMode
from fraterna.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class LookupUnavailable(Exception):
	"""A relationship index could not be loaded."""

	reason = "lookup_unavailable"


class FriendshipLookup(Protocol):
	def are_friends(self, user_a: str, user_b: str) -> bool:
		...


class AllowlistLookup(Protocol):
	def allows(self, owner_id: str, viewer_id: str) -> bool:
		...


class FriendshipIndex:
	"""Accepted friendships, looked up in either direction."""

	def __init__(self, pairs: Iterable[Tuple[str, str]] = ()) -> None:
		self._pairs: Set[Tuple[str, str]] = set()
		for user_a, user_b in pairs:
			self.add(user_a, user_b)

	def add(self, user_a: str, user_b: str) -> None:
		self._pairs.add((str(user_a), str(user_b)))

	def are_friends(self, user_a: str, user_b: str) -> bool:
		a, b = str(user_a), str(user_b)
		return (a, b) in self._pairs or (b, a) in self._pairs

	def __len__(self) -> int:
		return len(self._pairs)


class AllowlistIndex:
	"""Explicit (owner, viewer) grants. Direction matters."""

	def __init__(self, entries: Iterable[Tuple[str, str]] = ()) -> None:
		self._entries: Set[Tuple[str, str]] = {(str(owner), str(viewer)) for owner, viewer in entries}

	def add(self, owner_id: str, viewer_id: str) -> None:
		self._entries.add((str(owner_id), str(viewer_id)))

	def allows(self, owner_id: str, viewer_id: str) -> bool:
		return (str(owner_id), str(viewer_id)) in self._entries

	def __len__(self) -> int:
		return len(self._entries)


class UnavailableIndex:
	"""Stand-in for an index whose backing query failed."""

	def __init__(self, source: str) -> None:
		self.source = source

	def are_friends(self, user_a: str, user_b: str) -> bool:
		raise LookupUnavailable(self.source)

	def allows(self, owner_id: str, viewer_id: str) -> bool:
		raise LookupUnavailable(self.source)


@dataclass
class VisibilitySnapshot:
	"""Everything one visible-set resolution needs, loaded together."""

	candidates: List[LocationRecord] = field(default_factory=list)
	profiles: Dict[str, OwnerProfile] = field(default_factory=dict)
	friendships: FriendshipLookup = field(default_factory=FriendshipIndex)
	allowlist: AllowlistLookup = field(default_factory=AllowlistIndex)

	def display_name(self, owner_id: str) -> Optional[str]:
		profile = self.profiles.get(owner_id)
		return profile.display_name if profile else None


def is_visible(
	viewer_id: str,
	owner_id: str,
	profile: Optional[OwnerProfile],
	friendships: FriendshipLookup,
	allowlist: AllowlistLookup,
) -> bool:
	if profile is None:
		obs_metrics.inc_fail_closed("missing_profile")
		return False
	if profile.stealth_mode or not profile.tracking_enabled:
		return False
	mode = profile.visibility_mode
	try:
		if mode is VisibilityMode.PUBLIC:
			return True
		if mode is VisibilityMode.FRIENDS:
			return friendships.are_friends(viewer_id, owner_id)
		if mode is VisibilityMode.FRIENDS_SELECTED:
			return allowlist.allows(owner_id, viewer_id)
	except Exception:
		obs_metrics.inc_fail_closed("lookup_failed")
		logger.warning(
			"visibility_lookup_failed",
			extra={"viewer_id": viewer_id, "owner_id": owner_id, "mode": getattr(mode, "value", None)},
			exc_info=True,
		)
		return False
	obs_metrics.inc_fail_closed("unknown_mode")
	return False


def resolve_visible(
	viewer_id: str,
	candidates: Iterable[LocationRecord],
	friendships: FriendshipLookup,
	allowlist: AllowlistLookup,
	profiles: Mapping[str, OwnerProfile],
) -> List[LocationRecord]:
	"""Return the candidates the viewer is allowed to see. Order is not significant."""

	visible: List[LocationRecord] = []
	for record in candidates:
		if record.owner_id == viewer_id:
			continue
		if is_visible(viewer_id, record.owner_id, profiles.get(record.owner_id), friendships, allowlist):
			visible.append(record)
		else:
			logger.debug("visibility_hidden", extra={"viewer_id": viewer_id, "owner_id": record.owner_id})
	return visible


def resolve_snapshot(viewer_id: str, snapshot: VisibilitySnapshot) -> List[LocationRecord]:
	return resolve_visible(
		viewer_id,
		snapshot.candidates,
		snapshot.friendships,
		snapshot.allowlist,
		snapshot.profiles,
	)
