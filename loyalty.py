"""Loyalty ledger and tier bookkeeping.

The ledger is the pair (loyalty_points, lifetime_points) on ``User``. Every
write to it goes through ``adjust_ledger``; callers own the transaction.
Tier is stored, not derived: crossing a threshold never changes it, only
``set_tier`` does.
"""

import logging

from errors import NotFound
from models import Tier, User, db, isoformat

logger = logging.getLogger(__name__)

TIER_THRESHOLDS = {
    Tier.BRONZE: 0,
    Tier.SILVER: 1000,
    Tier.GOLD: 5000,
}

TIER_ORDER = [Tier.BRONZE, Tier.SILVER, Tier.GOLD]


def tier_rank(tier):
    return TIER_ORDER.index(Tier(tier))


def next_tier(tier):
    rank = tier_rank(tier)
    if rank + 1 < len(TIER_ORDER):
        return TIER_ORDER[rank + 1]
    return None


def points_to_next_tier(tier, lifetime_points):
    upcoming = next_tier(tier)
    if upcoming is None:
        return None
    return max(0, TIER_THRESHOLDS[upcoming] - lifetime_points)


def tier_progress(tier, lifetime_points):
    upcoming = next_tier(tier)
    if upcoming is None:
        return 100
    floor = TIER_THRESHOLDS[Tier(tier)]
    span = TIER_THRESHOLDS[upcoming] - floor
    return max(0, min(100, round((lifetime_points - floor) / span * 100)))


def loyalty_summary(user):
    tier = Tier(user.loyalty_tier)
    upcoming = next_tier(tier)
    return {
        "currentPoints": user.loyalty_points,
        "lifetimePoints": user.lifetime_points,
        "currentTier": tier.value,
        "memberSince": isoformat(user.member_since),
        "nextTier": upcoming.value if upcoming else None,
        "pointsToNextTier": points_to_next_tier(tier, user.lifetime_points),
        "tierProgress": tier_progress(tier, user.lifetime_points),
    }


def lock_user(user_id):
    """Load a user row for update inside the caller's transaction."""
    user = db.session.execute(
        db.select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    return user


def adjust_ledger(user, points_delta, lifetime_delta=0, clamp=False):
    """Apply deltas to a user's balances. Does not commit.

    Without ``clamp`` the balances may go negative.
    """
    points = user.loyalty_points + points_delta
    lifetime = user.lifetime_points + lifetime_delta
    if clamp:
        points = max(0, points)
        lifetime = max(0, lifetime)

    logger.info(
        "Ledger %s: points %s -> %s, lifetime %s -> %s",
        user.id, user.loyalty_points, points, user.lifetime_points, lifetime,
    )
    user.loyalty_points = points
    user.lifetime_points = lifetime
    return user


def admin_adjust_points(user_id, points):
    """Operator grant or removal. Balance floors at zero; lifetime only grows."""
    user = lock_user(user_id)
    adjust_ledger(
        user,
        max(-user.loyalty_points, points),
        lifetime_delta=points if points > 0 else 0,
    )
    db.session.commit()
    return user


def set_tier(user_id, tier):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    user.loyalty_tier = Tier(tier)
    db.session.commit()
    logger.info("Tier for %s set to %s", user.id, user.loyalty_tier.value)
    return user
