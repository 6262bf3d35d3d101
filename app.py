from flask import Flask, jsonify, request
from flask_socketio import SocketIO
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

import accounts
import admin
import catalog
import config
import loyalty
import ordering
import rewards
from auth import current_user_id, customer_required, login_required, optional_auth, shop_required
from errors import ApiError, InvalidRequest
from models import db, isoformat, utcnow
from pricing import OrderPolicy
from schemas import (
    AddressRequest,
    AddressUpdateRequest,
    CreateOrderRequest,
    FavoriteRequest,
    LoginRequest,
    PreferencesRequest,
    RegisterRequest,
    UpdateOrderStatusRequest,
    UpdatePasswordRequest,
    UpdatePointsRequest,
    UpdateProfileRequest,
    UpdateTierRequest,
)

app = Flask(__name__)

app.config['SECRET_KEY'] = config.SECRET_KEY
app.config['SQLALCHEMY_DATABASE_URI'] = config.DATABASE_URL
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['ORDER_POLICY'] = OrderPolicy.from_config(config)

db.init_app(app)

socketio = SocketIO(app, cors_allowed_origins=config.CORS_ORIGIN)


def body(schema):
    return schema.model_validate(request.get_json(silent=True) or {})


def page_args(default_limit=20):
    try:
        limit = int(request.args.get("limit", default_limit))
        offset = int(request.args.get("offset", 0))
    except ValueError:
        raise InvalidRequest("limit and offset must be integers") from None
    if limit < 1 or offset < 0:
        raise InvalidRequest("limit must be positive and offset non-negative")
    return limit, offset


def float_arg(value, name):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid {name}", code="INVALID_COORDINATES") from None


# -----------------------
# ERRORS
# -----------------------
@app.errorhandler(ApiError)
def handle_api_error(error):
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(ValidationError)
def handle_validation_error(error):
    details = {}
    for issue in error.errors():
        path = ".".join(str(part) for part in issue["loc"])
        details.setdefault(path, []).append(issue["msg"])
    return jsonify({"error": "Validation failed", "code": "VALIDATION_ERROR", "details": details}), 400


@app.errorhandler(IntegrityError)
def handle_integrity_error(error):
    db.session.rollback()
    return jsonify({"error": "Resource already exists", "code": "DUPLICATE_ENTRY"}), 409


@app.errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({"error": error.name}), error.code


@app.errorhandler(Exception)
def handle_unexpected_error(error):
    app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@app.route("/health")
def health():
    return {"status": "healthy", "timestamp": isoformat(utcnow())}


# -----------------------
# AUTH
# -----------------------
@app.route("/api/auth/register", methods=["POST"])
def register():
    user, token = accounts.register(body(RegisterRequest))
    return {"message": "Registration successful", "user": accounts.format_user(user), "token": token}, 201


@app.route("/api/auth/login", methods=["POST"])
def login():
    user, token = accounts.login(body(LoginRequest))
    return {
        "message": "Login successful",
        "user": accounts.format_user(user) if user else None,
        "token": token,
    }


@app.route("/api/auth/logout", methods=["POST"])
@login_required
def logout():
    # tokens are stateless; the client discards its copy
    return {"message": "Logged out successfully"}


@app.route("/api/auth/me")
@customer_required
def me():
    return {"user": accounts.format_user(accounts.get_user(current_user_id()))}


@app.route("/api/auth/password", methods=["PUT"])
@customer_required
def change_password():
    accounts.change_password(current_user_id(), body(UpdatePasswordRequest))
    return {"message": "Password updated successfully"}


# -----------------------
# USERS
# -----------------------
@app.route("/api/users/profile")
@customer_required
def profile():
    return {"user": accounts.format_user(accounts.get_user(current_user_id()))}


@app.route("/api/users/profile", methods=["PUT"])
@customer_required
def update_profile():
    user = accounts.update_profile(current_user_id(), body(UpdateProfileRequest))
    return {"user": accounts.format_user(user), "message": "Profile updated successfully"}


@app.route("/api/users/account", methods=["DELETE"])
@customer_required
def delete_account():
    accounts.delete_account(current_user_id())
    return {"message": "Account deleted successfully"}


@app.route("/api/users/loyalty")
@customer_required
def loyalty_status():
    return {"loyalty": loyalty.loyalty_summary(accounts.get_user(current_user_id()))}


@app.route("/api/users/addresses")
@customer_required
def addresses():
    return {"addresses": [accounts.format_address(a) for a in accounts.list_addresses(current_user_id())]}


@app.route("/api/users/addresses", methods=["POST"])
@customer_required
def add_address():
    address = accounts.add_address(current_user_id(), body(AddressRequest))
    return {"address": accounts.format_address(address), "message": "Address added successfully"}, 201


@app.route("/api/users/addresses/<address_id>", methods=["PUT"])
@customer_required
def update_address(address_id):
    address = accounts.update_address(current_user_id(), address_id, body(AddressUpdateRequest))
    return {"address": accounts.format_address(address), "message": "Address updated successfully"}


@app.route("/api/users/addresses/<address_id>", methods=["DELETE"])
@customer_required
def delete_address(address_id):
    accounts.delete_address(current_user_id(), address_id)
    return {"message": "Address deleted successfully"}


@app.route("/api/users/preferences")
@customer_required
def preferences():
    return {"preferences": accounts.format_preferences(accounts.get_preferences(current_user_id()))}


@app.route("/api/users/preferences", methods=["PUT"])
@customer_required
def update_preferences():
    prefs = accounts.update_preferences(current_user_id(), body(PreferencesRequest))
    return {"preferences": accounts.format_preferences(prefs), "message": "Preferences updated successfully"}


# -----------------------
# FAVORITES
# -----------------------
@app.route("/api/favorites")
@customer_required
def favorites():
    return {"favorites": [catalog.format_menu_item(i) for i in accounts.list_favorites(current_user_id())]}


@app.route("/api/favorites", methods=["POST"])
@customer_required
def add_favorite():
    item_id = body(FavoriteRequest).item_id
    accounts.add_favorite(current_user_id(), item_id)
    return {"itemId": item_id, "message": "Added to favorites"}, 201


@app.route("/api/favorites/<item_id>", methods=["DELETE"])
@customer_required
def remove_favorite(item_id):
    accounts.remove_favorite(current_user_id(), item_id)
    return {"itemId": item_id, "message": "Removed from favorites"}


# -----------------------
# MENU
# -----------------------
@app.route("/api/menu/categories")
def menu_categories():
    return {"categories": catalog.list_categories()}


@app.route("/api/menu/items")
def menu_items():
    query = catalog.MenuQuery(
        category=request.args.get("category"),
        popular=request.args.get("popular") == "true",
        search=request.args.get("search"),
    )
    return {"items": [catalog.format_menu_item(i) for i in catalog.find_menu_items(query)]}


@app.route("/api/menu/featured")
def menu_featured():
    popular, new = catalog.featured_items()
    return {
        "popular": [catalog.format_featured_item(i) for i in popular],
        "new": [catalog.format_featured_item(i) for i in new],
    }


@app.route("/api/menu/items/<item_id>")
def menu_item(item_id):
    return {"item": catalog.format_menu_item(catalog.get_menu_item(item_id))}


# -----------------------
# LOCATIONS
# -----------------------
@app.route("/api/locations")
def locations():
    lat, lng = request.args.get("lat"), request.args.get("lng")
    query = catalog.LocationQuery(
        search=request.args.get("search"),
        lat=float_arg(lat, "lat") if lat else None,
        lng=float_arg(lng, "lng") if lng else None,
        radius=float_arg(request.args.get("radius", 50), "radius"),
    )
    now = catalog.wall_clock()
    found = catalog.find_locations(query)
    return {
        "locations": [catalog.format_location(loc, now, distance) for distance, loc in found],
        "count": len(found),
    }


@app.route("/api/locations/<location_id>")
def location(location_id):
    return {"location": catalog.format_location(catalog.get_active_location(location_id), catalog.wall_clock())}


@app.route("/api/locations/nearby/<lat>/<lng>")
def nearby_locations(lat, lng):
    limit, _ = page_args(default_limit=5)
    found = catalog.nearby_locations(
        float_arg(lat, "lat"),
        float_arg(lng, "lng"),
        radius=float_arg(request.args.get("radius", 25), "radius"),
        limit=limit,
    )
    now = catalog.wall_clock()
    return {
        "locations": [catalog.format_location(loc, now, distance) for distance, loc in found],
        "count": len(found),
    }


# -----------------------
# ORDERS
# -----------------------
@app.route("/api/orders", methods=["POST"])
@optional_auth
def place_order():
    order = ordering.place_order(app.config["ORDER_POLICY"], body(CreateOrderRequest), current_user_id())
    payload = ordering.format_order(order)

    socketio.emit("new_order", {
        "id": order.id,
        "orderNumber": order.order_number,
        "locationId": order.location_id,
        "type": payload["type"],
        "status": payload["status"],
        "total": payload["total"],
        "customerName": order.customer_name,
    })

    return {"message": "Order placed successfully", "order": payload}, 201


@app.route("/api/orders")
@customer_required
def my_orders():
    limit, offset = page_args()
    return ordering.list_orders(current_user_id(), request.args.get("status"), limit, offset)


@app.route("/api/orders/<order_id>")
@optional_auth
def order_detail(order_id):
    return {"order": ordering.format_order(ordering.get_order(order_id, current_user_id()))}


@app.route("/api/orders/<order_id>/cancel", methods=["PUT"])
@optional_auth
def cancel_order(order_id):
    order = ordering.cancel_order(app.config["ORDER_POLICY"], order_id, current_user_id())

    socketio.emit("status_updated", {"id": order.id, "status": order.status.value})

    return {"message": "Order cancelled successfully", "order": {"id": order.id, "status": order.status.value}}


# -----------------------
# REWARDS
# -----------------------
@app.route("/api/rewards")
def reward_list():
    found = rewards.list_rewards(request.args.get("category"), request.args.get("tier"))
    return {"rewards": [rewards.format_reward(r) for r in found]}


@app.route("/api/rewards/<reward_id>")
def reward_detail(reward_id):
    return {"reward": rewards.format_reward(rewards.get_reward(reward_id))}


@app.route("/api/rewards/<reward_id>/redeem", methods=["POST"])
@customer_required
def redeem_reward(reward_id):
    user_reward = rewards.redeem_reward(reward_id, current_user_id())
    return {"message": "Reward redeemed successfully", "userReward": rewards.format_user_reward(user_reward)}, 201


@app.route("/api/rewards/user/my")
@customer_required
def my_rewards():
    found = rewards.my_rewards(current_user_id(), request.args.get("used"))
    return {"rewards": [rewards.format_user_reward(ur) for ur in found]}


@app.route("/api/rewards/user/my/<user_reward_id>/use", methods=["PUT"])
@customer_required
def use_reward(user_reward_id):
    user_reward = rewards.use_reward(user_reward_id, current_user_id())
    return {"message": "Reward marked as used", "userReward": {"id": user_reward.id, "usedAt": isoformat(user_reward.used_at)}}


# -----------------------
# SHOP DASHBOARD
# -----------------------
@app.route("/api/admin/users")
@shop_required
def admin_users():
    limit, offset = page_args()
    return admin.list_users(request.args.get("search"), limit, offset)


@app.route("/api/admin/users/<user_id>")
@shop_required
def admin_user(user_id):
    return {"user": admin.user_detail(user_id)}


@app.route("/api/admin/users/<user_id>/points", methods=["PATCH"])
@shop_required
def admin_points(user_id):
    data = body(UpdatePointsRequest)
    user = loyalty.admin_adjust_points(user_id, data.points)
    app.logger.info("Shop adjusted points for %s by %s (%s)", user_id, data.points, data.reason or "no reason")
    return {
        "message": f"Points {'added' if data.points >= 0 else 'removed'} successfully",
        "user": admin.ledger_snapshot(user),
    }


@app.route("/api/admin/users/<user_id>/tier", methods=["PATCH"])
@shop_required
def admin_tier(user_id):
    user = loyalty.set_tier(user_id, body(UpdateTierRequest).tier)
    return {"message": "Tier updated successfully", "user": {"id": user.id, "loyaltyTier": user.loyalty_tier.value}}


@app.route("/api/admin/orders")
@shop_required
def admin_orders():
    limit, offset = page_args()
    return ordering.list_all_orders(request.args.get("status"), request.args.get("locationId"), limit, offset)


@app.route("/api/admin/orders/<order_id>/status", methods=["PATCH"])
@shop_required
def admin_order_status(order_id):
    order = ordering.update_order_status(order_id, body(UpdateOrderStatusRequest).status)

    socketio.emit("status_updated", {"id": order.id, "status": order.status.value})

    return {
        "message": "Order status updated",
        "order": {
            "id": order.id,
            "orderNumber": order.order_number,
            "status": order.status.value,
            "completedAt": isoformat(order.completed_at),
        },
    }


@app.route("/api/admin/stats")
@shop_required
def admin_stats():
    return {"stats": admin.stats()}


@app.route("/api/admin/locations")
@shop_required
def admin_locations():
    return {"locations": admin.list_locations()}


# -----------------------
# RUN APP
# -----------------------
if __name__ == "__main__":
    with app.app_context():
        db.create_all()

    socketio.run(app, debug=True)
