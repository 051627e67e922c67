import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken, RefreshToken, UntypedToken

from common.exceptions import InvalidCredentials

logger = logging.getLogger("security.authentication")

COMPANY_ID_CLAIM = "companyId"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

User = get_user_model()


def _company_claim(user):
    return str(user.company_id) if user.company_id else None


def issue_access_token(user):
    token = AccessToken.for_user(user)
    token[COMPANY_ID_CLAIM] = _company_claim(user)
    return str(token)


def issue_refresh_token(user):
    token = RefreshToken.for_user(user)
    token[COMPANY_ID_CLAIM] = _company_claim(user)
    return str(token)


def issue_token_pair(user):
    return {
        "accessToken": issue_access_token(user),
        "refreshToken": issue_refresh_token(user),
    }


def _reject(reason, user_id=None, detail=""):
    logger.warning(
        "token_verification_failed reason=%s %s",
        reason,
        detail,
        extra={"reason": reason, "user_id": user_id},
    )
    return None


def _verify(token, expected_type):
    """Decode ``token`` and resolve it to an active user of the embedded company.

    Returns ``None`` for every failure. The caller cannot tell an expired token
    from a forged one; only the log line carries the reason.
    """
    if not token:
        return _reject("empty_token")

    try:
        payload = UntypedToken(token).payload
    except TokenError as exc:
        return _reject("invalid_signature_or_expired", detail=str(exc))

    token_type = payload.get(api_settings.TOKEN_TYPE_CLAIM)
    if token_type != expected_type:
        return _reject("wrong_token_type", detail=f"expected={expected_type} received={token_type}")

    user_id = payload.get(api_settings.USER_ID_CLAIM)
    if not user_id:
        return _reject("missing_user_claim")

    try:
        user = User.objects.select_related("company").get(**{api_settings.USER_ID_FIELD: user_id})
    except (User.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        return _reject("user_not_found", user_id=str(user_id))

    if not user.is_active:
        return _reject("user_inactive", user_id=str(user.id))

    if payload.get(COMPANY_ID_CLAIM) != _company_claim(user):
        return _reject("company_mismatch", user_id=str(user.id))

    return user


def verify_access_token(token):
    return _verify(token, ACCESS_TOKEN_TYPE)


def verify_refresh_token(token):
    return _verify(token, REFRESH_TOKEN_TYPE)


class CompanyBoundJWTAuthentication(JWTAuthentication):
    """Bearer authentication bound to the user's current company.

    A request without a bearer credential stays anonymous so the permission
    chain can answer 401. A credential that fails verification is rejected
    here with 403.
    """

    def authenticate(self, request):
        header = self.get_header(request)
        if header is None or len(header.split()) < 2:
            return None

        try:
            raw_token = self.get_raw_token(header)
        except AuthenticationFailed:
            raise InvalidCredentials()
        if raw_token is None:
            # Another scheme such as Basic.
            return None

        raw_token = raw_token.decode("latin-1")
        user = verify_access_token(raw_token)
        if user is None:
            raise InvalidCredentials()
        return user, raw_token
