"""Read-only access to menu and locations."""

import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import selectinload

from errors import NotFound
from models import Category, Location, MenuItem, ModifierGroup, db

EARTH_RADIUS_MILES = 3959
WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@dataclass(frozen=True)
class MenuQuery:
    category: str = None
    popular: bool = False
    search: str = None


@dataclass(frozen=True)
class LocationQuery:
    search: str = None
    lat: float = None
    lng: float = None
    radius: float = 50


# -----------------------
# MENU
# -----------------------
def _with_modifiers(stmt):
    return stmt.options(
        selectinload(MenuItem.category),
        selectinload(MenuItem.modifier_groups).selectinload(ModifierGroup.modifiers),
    )


def list_categories():
    categories = db.session.execute(
        db.select(Category).where(Category.is_active.is_(True)).order_by(Category.sort_order)
    ).scalars().all()
    return [
        {
            "id": c.id,
            "name": c.name,
            "slug": c.slug,
            "description": c.description,
            "imageUrl": c.image_url,
            "itemCount": sum(1 for item in c.items if item.is_available),
        }
        for c in categories
    ]


def find_menu_items(query: MenuQuery):
    stmt = db.select(MenuItem).where(MenuItem.is_available.is_(True))

    if query.category and query.category != "all":
        category = db.session.execute(
            db.select(Category).where(db.or_(Category.id == query.category, Category.slug == query.category))
        ).scalars().first()
        if category is not None:
            stmt = stmt.where(MenuItem.category_id == category.id)

    if query.popular:
        stmt = stmt.where(MenuItem.is_popular.is_(True))

    if query.search:
        pattern = f"%{query.search}%"
        stmt = stmt.where(db.or_(MenuItem.name.ilike(pattern), MenuItem.description.ilike(pattern)))

    stmt = _with_modifiers(stmt).order_by(MenuItem.is_popular.desc(), MenuItem.is_new.desc(), MenuItem.name)
    return db.session.execute(stmt).scalars().all()


def featured_items(popular_limit=6, new_limit=4):
    """Return (popular, new) available items for the menu landing page."""
    base = db.select(MenuItem).where(MenuItem.is_available.is_(True)).options(selectinload(MenuItem.category))
    popular = db.session.execute(
        base.where(MenuItem.is_popular.is_(True)).order_by(MenuItem.name).limit(popular_limit)
    ).scalars().all()
    new = db.session.execute(
        base.where(MenuItem.is_new.is_(True)).order_by(MenuItem.name).limit(new_limit)
    ).scalars().all()
    return popular, new


def get_menu_item(item_id):
    item = db.session.execute(_with_modifiers(db.select(MenuItem).where(MenuItem.id == item_id))).scalar_one_or_none()
    if item is None:
        raise NotFound("Menu item not found", code="ITEM_NOT_FOUND")
    return item


def load_order_items(item_ids):
    """Menu items keyed by id, with modifier groups loaded, for pricing an order."""
    stmt = _with_modifiers(db.select(MenuItem).where(MenuItem.id.in_(set(item_ids))))
    return {item.id: item for item in db.session.execute(stmt).scalars()}


def format_featured_item(item):
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "price": float(item.price),
        "imageUrl": item.image_url,
        "calories": item.calories,
        "isPopular": item.is_popular,
        "isNew": item.is_new,
        "category": {"id": item.category.id, "name": item.category.name, "slug": item.category.slug},
    }


def format_menu_item(item):
    return {
        "id": item.id,
        "categoryId": item.category_id,
        "name": item.name,
        "description": item.description,
        "price": float(item.price),
        "imageUrl": item.image_url,
        "calories": item.calories,
        "prepTime": item.prep_time,
        "isPopular": item.is_popular,
        "isNew": item.is_new,
        "isAvailable": item.is_available,
        "category": {"id": item.category.id, "name": item.category.name, "slug": item.category.slug},
        "modifierGroups": [
            {
                "id": group.id,
                "name": group.name,
                "description": group.description,
                "isRequired": group.is_required,
                "minSelect": group.min_select,
                "maxSelect": group.max_select,
                "modifiers": [
                    {
                        "id": m.id,
                        "name": m.name,
                        "price": float(m.price),
                        "calories": m.calories,
                        "isDefault": m.is_default,
                    }
                    for m in group.modifiers
                    if m.is_available
                ],
            }
            for group in item.modifier_groups
        ],
    }


# -----------------------
# LOCATIONS
# -----------------------
def distance_miles(lat1, lng1, lat2, lng2):
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_MILES * c, 1)


def wall_clock():
    """Server-local time; location hours are local to the store."""
    return datetime.now()


def is_open(hours, now):
    """True if ``now``, a ``wall_clock()`` reading, falls inside today's open/close pair."""
    today = (hours or {}).get(WEEKDAYS[now.weekday()])
    if not today:
        return False
    current = now.hour * 100 + now.minute
    open_at = int(today["open"].replace(":", ""))
    close_at = int(today["close"].replace(":", ""))
    return open_at <= current < close_at


def get_active_location(location_id):
    location = db.session.get(Location, location_id)
    if location is None or not location.is_active:
        raise NotFound("Location not found or unavailable", code="LOCATION_NOT_FOUND")
    return location


def _by_distance(locations, lat, lng, radius):
    ranked = []
    for location in locations:
        distance = distance_miles(lat, lng, float(location.latitude), float(location.longitude))
        if distance <= radius:
            ranked.append((distance, location))
    ranked.sort(key=lambda pair: pair[0])
    return ranked


def find_locations(query: LocationQuery):
    """Active locations as (distance, location) pairs; distance is None without coordinates."""
    stmt = db.select(Location).where(Location.is_active.is_(True)).order_by(Location.name)
    if query.search:
        pattern = f"%{query.search}%"
        stmt = stmt.where(
            db.or_(
                Location.name.ilike(pattern),
                Location.city.ilike(pattern),
                Location.zip_code.startswith(query.search),
                Location.address.ilike(pattern),
            )
        )
    locations = db.session.execute(stmt).scalars().all()

    if query.lat is not None and query.lng is not None:
        return _by_distance(locations, query.lat, query.lng, query.radius)
    return [(None, location) for location in locations]


def nearby_locations(lat, lng, radius=25, limit=5):
    locations = db.session.execute(db.select(Location).where(Location.is_active.is_(True))).scalars().all()
    return _by_distance(locations, lat, lng, radius)[:limit]


def format_location(location, now, distance=None):
    return {
        "id": location.id,
        "name": location.name,
        "address": location.address,
        "city": location.city,
        "state": location.state,
        "zipCode": location.zip_code,
        "phone": location.phone,
        "latitude": float(location.latitude),
        "longitude": float(location.longitude),
        "hours": location.hours,
        "isOpen": is_open(location.hours, now),
        "amenities": {
            "dineIn": location.has_dine_in,
            "takeout": location.has_takeout,
            "driveThru": location.has_drive_thru,
            "wifi": location.has_wifi,
            "playground": location.has_playground,
            "accessible": location.is_accessible,
        },
        "distance": distance,
    }
