"""
Reaction and subscription toggling.

Pure functions over in-memory snapshots: given the current sets and an actor,
compute the new sets. Nothing here touches the store.
"""

from enum import Enum
from typing import AbstractSet, FrozenSet, Iterable, Tuple

from core.exceptions import InvalidOperationError


class Polarity(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


def toggle_reaction(
    likes: Iterable[str],
    dislikes: Iterable[str],
    actor: str,
    polarity: Polarity,
) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """
    Toggle `actor`'s reaction of the given polarity.

    If the actor already holds that reaction it is withdrawn. Otherwise it is
    added and any opposite reaction is dropped in the same step. On return the
    actor is in at most one of the two sets, even when the inputs had it in
    both.

    Returns:
        (likes, dislikes) as frozensets
    """
    likes = frozenset(likes)
    dislikes = frozenset(dislikes)

    if polarity is Polarity.LIKE:
        same, opposite = likes, dislikes
    else:
        same, opposite = dislikes, likes

    if actor in same:
        same = same - {actor}
    else:
        same = same | {actor}
    opposite = opposite - {actor}

    if polarity is Polarity.LIKE:
        return same, opposite
    return opposite, same


def toggle_subscription(
    subscribed_channels: Iterable[str], subscriber: str, target: str
) -> Tuple[FrozenSet[str], int]:
    """
    Toggle `subscriber`'s follow of `target`.

    Returns:
        the subscriber's new channel set and the change to apply to the
        target's subscriber count (+1 or -1)

    Raises:
        InvalidOperationError: subscriber and target are the same user
    """
    if subscriber == target:
        raise InvalidOperationError(
            "Cannot subscribe to yourself", user_id=subscriber
        )

    channels = frozenset(subscribed_channels)
    if target in channels:
        return channels - {target}, -1
    return channels | {target}, 1


def as_stored(members: AbstractSet[str]) -> list:
    """Sorted unique list, the persisted form of a membership set"""
    return sorted(members)
