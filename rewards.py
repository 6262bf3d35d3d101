import logging
import secrets
from datetime import timedelta

from sqlalchemy.orm import selectinload

import config
from errors import InvalidRequest, InvalidState, NotFound
from loyalty import TIER_ORDER, adjust_ledger, lock_user, tier_rank
from models import Reward, Tier, UserReward, db, isoformat, utcnow

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8


def generate_redemption_code():
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def list_rewards(category=None, tier=None, now=None):
    now = now or utcnow()
    stmt = db.select(Reward).where(
        Reward.is_active.is_(True),
        db.or_(Reward.valid_from.is_(None), Reward.valid_from <= now),
        db.or_(Reward.valid_until.is_(None), Reward.valid_until >= now),
    )
    if category:
        stmt = stmt.where(Reward.category == category)
    if tier:
        try:
            level = tier_rank(tier.upper())
        except ValueError:
            level = 0
        stmt = stmt.where(Reward.min_tier.in_(TIER_ORDER[: level + 1]))

    stmt = stmt.order_by(Reward.category, Reward.points_cost)
    return db.session.execute(stmt).scalars().all()


def get_reward(reward_id):
    reward = db.session.get(Reward, reward_id)
    if reward is None or not reward.is_active:
        raise NotFound("Reward not found", code="REWARD_NOT_FOUND")
    return reward


def lock_reward(reward_id):
    """Load an active reward for update so the redemption cap check holds."""
    reward = db.session.execute(
        db.select(Reward)
        .where(Reward.id == reward_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if reward is None or not reward.is_active:
        raise NotFound("Reward not found", code="REWARD_NOT_FOUND")
    return reward


def redeem_reward(reward_id, user_id, now=None):
    """Spend points on a reward. Ledger decrement, counter and record commit together."""
    now = now or utcnow()
    try:
        reward = lock_reward(reward_id)

        if reward.valid_from and reward.valid_from > now:
            raise InvalidRequest("Reward is not yet available", code="REWARD_NOT_STARTED")
        if reward.valid_until and reward.valid_until < now:
            raise InvalidRequest("Reward has expired", code="REWARD_EXPIRED")
        if reward.max_redemptions and reward.total_redeemed >= reward.max_redemptions:
            raise InvalidRequest("Reward is no longer available", code="REWARD_SOLD_OUT")

        user = lock_user(user_id)
        if tier_rank(user.loyalty_tier) < tier_rank(reward.min_tier):
            raise InvalidRequest(
                f"This reward requires {Tier(reward.min_tier).value} tier or higher", code="TIER_REQUIRED"
            )
        if user.loyalty_points < reward.points_cost:
            raise InvalidRequest(
                f"Not enough points. You have {user.loyalty_points} points but need {reward.points_cost}",
                code="INSUFFICIENT_POINTS",
            )

        adjust_ledger(user, -reward.points_cost)
        reward.total_redeemed += 1
        user_reward = UserReward(
            user_id=user.id,
            reward=reward,
            redemption_code=generate_redemption_code(),
            redeemed_at=now,
            expires_at=now + timedelta(days=config.REWARD_EXPIRY_DAYS),
        )
        db.session.add(user_reward)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("User %s redeemed reward %s (%s)", user_id, reward.id, user_reward.redemption_code)
    return user_reward


def my_rewards(user_id, used=None, now=None):
    now = now or utcnow()
    stmt = db.select(UserReward).where(UserReward.user_id == user_id).options(selectinload(UserReward.reward))
    if used == "true":
        stmt = stmt.where(UserReward.used_at.is_not(None))
    elif used == "false":
        stmt = stmt.where(UserReward.used_at.is_(None), UserReward.expires_at >= now)
    stmt = stmt.order_by(UserReward.redeemed_at.desc())
    return db.session.execute(stmt).scalars().all()


def use_reward(user_reward_id, user_id, now=None):
    now = now or utcnow()
    user_reward = db.session.execute(
        db.select(UserReward).where(UserReward.id == user_reward_id, UserReward.user_id == user_id)
    ).scalar_one_or_none()
    if user_reward is None:
        raise NotFound("Reward not found", code="REWARD_NOT_FOUND")
    if user_reward.used_at:
        raise InvalidState("Reward has already been used", code="REWARD_USED")
    if user_reward.expires_at < now:
        raise InvalidState("Reward has expired", code="REWARD_EXPIRED")

    user_reward.used_at = now
    db.session.commit()
    return user_reward


def format_reward(reward):
    return {
        "id": reward.id,
        "name": reward.name,
        "description": reward.description,
        "pointsCost": reward.points_cost,
        "category": reward.category,
        "minTier": Tier(reward.min_tier).value,
        "validFrom": isoformat(reward.valid_from),
        "validUntil": isoformat(reward.valid_until),
        "limited": bool(reward.max_redemptions),
        "remaining": reward.max_redemptions - reward.total_redeemed if reward.max_redemptions else None,
    }


def format_user_reward(user_reward, now=None):
    now = now or utcnow()
    return {
        "id": user_reward.id,
        "redemptionCode": user_reward.redemption_code,
        "redeemedAt": isoformat(user_reward.redeemed_at),
        "expiresAt": isoformat(user_reward.expires_at),
        "usedAt": isoformat(user_reward.used_at),
        "isExpired": user_reward.expires_at < now,
        "isUsed": user_reward.used_at is not None,
        "reward": format_reward(user_reward.reward),
    }
