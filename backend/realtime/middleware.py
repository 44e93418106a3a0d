"""WebSocket authentication middleware for JWT and session-based auth."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

User = get_user_model()
logger = logging.getLogger(__name__)


@database_sync_to_async
def _user_for_token(raw_token):
    access = AccessToken(raw_token)
    return User.objects.get(id=access["user_id"])


class JWTOrSessionAuthMiddleware(BaseMiddleware):
    """
    Authenticate WebSocket connections using either:
    1. JWT in querystring (?token=...) - mobile apps
    2. The session user already resolved by AuthMiddlewareStack - browsers
    """

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())

        token_list = params.get("token")
        if token_list:
            try:
                scope["user"] = await _user_for_token(token_list[0])
            except (TokenError, User.DoesNotExist) as e:
                logger.debug("JWT auth failed: %s", e)
                scope["user"] = AnonymousUser()
        elif "user" not in scope:
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)
