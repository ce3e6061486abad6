"""
Handles authentication with the Kobo store: device registration, token
refresh, authorization headers and the web sign-in flow.
"""

import logging
import os
import time
import uuid
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from multidict import CIMultiDict
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_pascal

from kobo_cli.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DecodeError,
    LoginFlowError,
)
from kobo_cli.models.credentials import CredentialState
from kobo_cli.web.script_engine import QuickJsEvaluator, ScriptEvaluator
from kobo_cli.web.signin_page import build_login_script, extract_login_parameters

from .codecs import Form, Json, Text
from .device import (
    AFFILIATE,
    APPLICATION_VERSION,
    CLIENT_KEY,
    PLATFORM_ID,
    SIGN_IN_QUERY,
)
from .transport import RequestEnvelope, TransportResponse

if TYPE_CHECKING:
    from .client import KoboAPIClient

log = logging.getLogger(__name__)

DEVICE_AUTH_URL = "https://storeapi.kobo.com/v1/auth/device"
REFRESH_URL = "https://storeapi.kobo.com/v1/auth/refresh"
SIGN_IN_ACTION_PATH = "/ww/en/signin/signin"

MAX_AUTHORIZATION_ATTEMPTS = 3


def bearer_header(access_token: str | None) -> str | None:
    """Builds the Authorization value, or None if it is not a valid header."""
    if not access_token:
        return None
    value = f"Bearer {access_token}"
    if all(c == "\t" or 32 <= ord(c) <= 126 for c in value):
        return value
    return None


def uuid7() -> uuid.UUID:
    """A time-ordered UUID (RFC 9562 version 7)."""
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    rand_a = rand >> 62 & 0xFFF
    rand_b = rand & (1 << 62) - 1
    value = (
        (unix_ms & (1 << 48) - 1) << 80
        | 0x7 << 76
        | rand_a << 64
        | 0b10 << 62
        | rand_b
    )
    return uuid.UUID(int=value)


class _TokenResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    token_type: str
    access_token: str
    refresh_token: str
    user_key: str | None = None


def _parse_tokens(
    response: TransportResponse, expect_user_key: bool
) -> _TokenResponse:
    payload = Json.decode(response)
    try:
        tokens = _TokenResponse.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"Unexpected token response: {e}") from e
    if tokens.token_type != "Bearer":
        raise AuthenticationError(f"Unexpected token type '{tokens.token_type}'")
    if expect_user_key and not tokens.user_key:
        raise DecodeError("Device authentication response has no user key")
    return tokens


class KoboAuthenticator:
    """
    Manages the authentication flow for the Kobo API client.
    """

    def __init__(
        self,
        api_client: "KoboAPIClient",
        script_evaluator: ScriptEvaluator | None = None,
    ):
        """
        Initializes the authenticator.

        Args:
            api_client: A reference to the main KoboAPIClient instance.
            script_evaluator: Runs the sign-in page scripts; QuickJS by default.
        """
        self._api_client = api_client
        self._script_evaluator = script_evaluator or QuickJsEvaluator()

    @property
    def credentials(self) -> CredentialState:
        return self._api_client.credentials

    async def _post_json(
        self, url: str, body: dict[str, Any], authorization: str | None = None
    ) -> TransportResponse:
        headers = CIMultiDict()
        if authorization:
            headers["Authorization"] = authorization
        data = Json(body).encode(headers)
        return await self._api_client.raw_request(
            RequestEnvelope("POST", url, headers, data)
        )

    async def authenticate_device(self, user_key: str | None = None) -> None:
        """
        Registers the device with the store and stores the issued tokens.

        Does nothing when the session already has tokens and no user key is
        given. A new device id is generated if the session has none.
        """
        user_key = user_key or None
        credentials = self.credentials
        if credentials.is_auth_set() and user_key is None:
            return

        if credentials.device_id() is None:
            credentials.set_device_id(str(uuid7()))
            log.debug(f"Generated device id {credentials.device_id()}")

        body = {
            "AffiliateName": AFFILIATE,
            "AppVersion": APPLICATION_VERSION,
            "ClientKey": CLIENT_KEY,
            "DeviceId": credentials.device_id(),
            "PlatformId": PLATFORM_ID,
        }
        if user_key is not None:
            body["UserKey"] = user_key

        log.debug(f"Authenticating device (with user key: {user_key is not None})")
        response = await self._post_json(DEVICE_AUTH_URL, body)
        tokens = _parse_tokens(response, expect_user_key=user_key is not None)
        credentials.set_tokens(tokens.access_token, tokens.refresh_token)
        if user_key is not None and tokens.user_key:
            credentials.set_user_key(tokens.user_key)
        log.debug(f"Device authenticated, access token {tokens.access_token[:8]}...")

    async def refresh_auth(self) -> str:
        """
        Exchanges the refresh token for a new token pair, keeping the user
        identity, then returns a fresh authorization header.
        """
        credentials = self.credentials
        authorization = bearer_header(credentials.access_token())
        refresh_token = credentials.refresh_token()
        if authorization and refresh_token:
            body = {
                "AppVersion": APPLICATION_VERSION,
                "ClientKey": CLIENT_KEY,
                "PlatformId": PLATFORM_ID,
                "RefreshToken": refresh_token,
            }
            response = await self._post_json(REFRESH_URL, body, authorization)
            tokens = _parse_tokens(response, expect_user_key=False)
            credentials.refresh_tokens(tokens.access_token, tokens.refresh_token)
            credentials.save()
            log.debug(f"Tokens refreshed, access token {tokens.access_token[:8]}...")
        return await self.get_authorization()

    async def get_authorization(self) -> str:
        """
        Returns a bearer header, authenticating the device when needed.

        Raises:
            AuthorizationError: If no valid header exists after a bounded
                number of device authentications.
        """
        credentials = self.credentials
        for attempt in range(1, MAX_AUTHORIZATION_ATTEMPTS + 1):
            access_token = credentials.access_token()
            if access_token is not None:
                header = bearer_header(access_token)
                if header is not None:
                    return header
                log.warning("Stored access token is unusable, discarding it")
                credentials.clear_tokens()
            log.debug(f"Authorization attempt {attempt}/{MAX_AUTHORIZATION_ATTEMPTS}")
            await self.authenticate_device()
            credentials.save()
        raise AuthorizationError(
            f"No valid authorization after {MAX_AUTHORIZATION_ATTEMPTS} attempts."
        )

    async def login_parameters(self) -> tuple[str, str, str]:
        """
        Loads the sign-in page and extracts what the sign-in form needs.

        Returns:
            The workflow id, the verification token and the sign-in action URL.
        """
        resources = await self._api_client.settings()
        device_id = self.credentials.device_id()
        if device_id is None:
            await self.authenticate_device()
            self.credentials.save()
            device_id = self.credentials.device_id()

        page_url = urlsplit(resources.sign_in_page)
        extra = urlencode(
            [(k, device_id if v is None else v) for k, v in SIGN_IN_QUERY]
        )
        query = f"{page_url.query}&{extra}" if page_url.query else extra
        response = await self._api_client.raw_request(
            RequestEnvelope("GET", urlunsplit(page_url._replace(query=query)))
        )
        workflow_id, token = extract_login_parameters(Text.decode(response))
        action_url = urlunsplit(page_url._replace(path=SIGN_IN_ACTION_PATH, query=""))
        return workflow_id, token, action_url

    async def login(self, username: str, password: str, captcha: str) -> None:
        """
        Signs in through the web sign-in form.

        Raises:
            LoginFlowError: If the pages do not yield a user id and user key.
        """
        log.info(f"Signing in as: {username}")
        workflow_id, token, action_url = await self.login_parameters()
        form = Form(
            [
                ("LogInModel.WorkflowId", workflow_id),
                ("LogInModel.Provider", AFFILIATE),
                ("ReturnUrl", ""),
                ("__RequestVerificationToken", token),
                ("LogInModel.UserName", username),
                ("LogInModel.Password", password),
                ("g-recaptcha-response", captcha),
                ("h-captcha-response", captcha),
            ]
        )
        response = await self._api_client.anonymous_request(
            "POST", action_url, body=form.encode
        )
        script = build_login_script(Text.decode(response))
        href = self._script_evaluator.evaluate(script)
        if not href:
            raise LoginFlowError(
                "Sign-in did not redirect. Check your credentials and captcha."
            )

        user_id, user_key = _identity_from_href(href)
        await self.authenticate_device(user_key)
        self.credentials.set_user_id(user_id)
        self.credentials.save()
        log.info("[green]Signed in successfully.[/green]")


def _identity_from_href(href: str) -> tuple[str, str]:
    parts = urlsplit(href)
    if not parts.scheme:
        raise LoginFlowError("Sign-in redirected to an invalid URL.")
    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    user_id = params.get("userId")
    user_key = params.get("userKey")
    if not user_id or not user_key:
        raise LoginFlowError("Sign-in redirect carries no user id and user key.")
    return user_id, user_key
