"""Bearer-token identity for API requests.

Tokens are itsdangerous signed payloads ``{"userId", "email", "role"}``.
``role`` is "customer" for registered users and "shop" for the operator
account configured in config.py.
"""

from functools import wraps

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

import config
from errors import Forbidden, Unauthorized

CUSTOMER = "customer"
SHOP = "shop"

TOKEN_SALT = "auth-token"


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password_hash, password):
    return check_password_hash(password_hash, password)


def generate_token(user_id, email, role=CUSTOMER):
    return _serializer().dumps({"userId": user_id, "email": email, "role": role})


def verify_token(token):
    try:
        return _serializer().loads(token, max_age=config.TOKEN_MAX_AGE)
    except SignatureExpired:
        raise Unauthorized("Token expired", code="TOKEN_EXPIRED") from None
    except BadSignature:
        raise Unauthorized("Invalid token", code="INVALID_TOKEN") from None


def _bearer_token():
    header = request.headers.get("Authorization")
    if not header:
        raise Unauthorized("No authorization header", code="NO_AUTH_HEADER")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise Unauthorized("Invalid authorization format", code="INVALID_AUTH_FORMAT")
    return parts[1]


def current_user_id():
    """Id of the authenticated customer, or None for guests and the shop account."""
    user = g.get("user")
    if user and user.get("role") == CUSTOMER:
        return user["userId"]
    return None


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.user = verify_token(_bearer_token())
        return view(*args, **kwargs)
    return wrapper


def customer_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.user = verify_token(_bearer_token())
        if g.user.get("role") != CUSTOMER:
            raise Forbidden("Customer account required")
        return view(*args, **kwargs)
    return wrapper


def optional_auth(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.user = None
        try:
            g.user = verify_token(_bearer_token())
        except Unauthorized:
            pass  # anonymous
        return view(*args, **kwargs)
    return wrapper


def shop_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.user = verify_token(_bearer_token())
        if g.user.get("role") != SHOP:
            raise Forbidden("Shop access required", code="SHOP_ONLY")
        return view(*args, **kwargs)
    return wrapper
