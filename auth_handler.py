"""
Bearer token authentication and signup/login for the app.
"""
import logging
from datetime import timedelta
from functools import wraps

import jwt
from flask import current_app, g, request
from sqlalchemy import or_
from werkzeug.security import check_password_hash, generate_password_hash

from helpers import ResponseHelper, DateTimeNaiveHelper
from models import db, User

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def issue_token(user):
    now = DateTimeNaiveHelper.now()
    payload = {
        "user_id": user.id,
        "email": user.email,
        "username": user.username,
        "iat": now,
        "exp": now + timedelta(days=current_app.config["JWT_EXPIRY_DAYS"]),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def require_auth(view):
    """
    Require an "Authorization: Bearer <jwt>" header and expose the caller as g.user_id.
    """

    @wraps(view)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization")
        if not header:
            return ResponseHelper.error("No token provided.", 401)

        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            return ResponseHelper.error("Invalid token format.", 401)

        secret = current_app.config.get("JWT_SECRET")
        if not secret:
            logger.error("JWT_SECRET not set, rejecting bearer token")
            return ResponseHelper.error("Invalid or expired token.", 403)

        try:
            claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError as e:
            logger.info("JWT rejected: %s", e)
            return ResponseHelper.error("Invalid or expired token.", 403)

        user_id = claims.get("user_id")
        if not user_id:
            return ResponseHelper.error("Invalid or expired token.", 403)

        g.user_id = str(user_id)
        return view(*args, **kwargs)

    return wrapper


class AuthHandler:

    @staticmethod
    def signup(body):
        email = (body.get("email") or "").strip().lower()
        username = (body.get("username") or "").strip()
        password = body.get("password") or ""

        if not email or not username or not password:
            return ResponseHelper.error("Missing fields")

        exists = User.query.filter(or_(User.email == email, User.username == username)).first()
        if exists:
            return ResponseHelper.error("User exists")

        user = User(email=email, username=username, password_hash=generate_password_hash(password))
        db.session.add(user)
        db.session.commit()

        logger.info("User %s signed up", user.id)
        return ResponseHelper.success("Signup success", 201)

    @staticmethod
    def login(body):
        email = (body.get("email") or "").strip().lower()
        password = body.get("password") or ""

        if not email or not password:
            return ResponseHelper.error("Email and password are required.")

        user = User.query.filter_by(email=email).first()
        if not user or not check_password_hash(user.password_hash, password):
            return ResponseHelper.error("Invalid email or password.")

        if not current_app.config.get("JWT_SECRET"):
            logger.error("JWT_SECRET not set in environment variables")
            return ResponseHelper.error("Server configuration error.", 500)

        return ResponseHelper.success({
            "message": "Login successful",
            "token": issue_token(user),
            "user": {"id": user.id, "email": user.email, "username": user.username},
        })
