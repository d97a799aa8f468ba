"""Post-query visibility filter.

The document store cannot combine "creator in [...]" with "isPrivate is
false" in one query, so every multi-document read that is not scoped to the
viewer as owner passes through here. Direct fetches by id skip it, which is
what lets a private activity be shared by link.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from floc.domain.activities.models import Activity, is_joined
from floc.obs import metrics as obs_metrics


def is_visible(activity: Activity, viewer_id: Optional[str]) -> bool:
    if not activity.is_private:
        return True
    if viewer_id and activity.user_id == str(viewer_id):
        return True
    return is_joined(activity, viewer_id)


def filter_for_viewer(activities: Iterable[Activity], viewer_id: Optional[str]) -> List[Activity]:
    kept: List[Activity] = []
    dropped = 0
    for activity in activities:
        if is_visible(activity, viewer_id):
            kept.append(activity)
        else:
            dropped += 1
    obs_metrics.inc_visibility_dropped(dropped)
    return kept
