"""Google and GitHub sign-in: authorize redirect, code exchange, local account lookup."""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import requests
from sqlalchemy.orm import Session

import config
from models import User

logger = logging.getLogger(__name__)

PROVIDERS = ("google", "github")


class OAuthError(Exception):
    def __init__(self, reason: str = "oauth_failed", message: str = ""):
        self.reason = reason
        super().__init__(message or reason)


@dataclass
class OAuthProfile:
    provider: str
    provider_id: str
    email: str
    name: str
    avatar: Optional[str] = None


def redirect_uri(provider: str) -> str:
    return f"{config.PUBLIC_BASE_URL}/api/auth/{provider}"


def authorize_url(provider: str) -> str:
    if provider == "google":
        params = {
            "client_id": config.GOOGLE_CLIENT_ID,
            "redirect_uri": redirect_uri("google"),
            "response_type": "code",
            "scope": "openid email profile",
            "state": "google-oauth",
        }
        return "https://accounts.google.com/o/oauth2/v2/auth?" + urlencode(params)
    if provider == "github":
        params = {
            "client_id": config.GITHUB_CLIENT_ID,
            "redirect_uri": redirect_uri("github"),
            "scope": "user:email",
            "state": "github-oauth",
        }
        return "https://github.com/login/oauth/authorize?" + urlencode(params)
    raise ValueError(f"Unknown OAuth provider: {provider}")


def _check(resp, what):
    if not resp.ok:
        logger.error("%s failed: %s %s", what, resp.status_code, resp.text)
        raise OAuthError(message=f"{what} failed with status {resp.status_code}")
    return resp.json()


def _google_profile(code: str, http) -> OAuthProfile:
    token_data = _check(
        http.post(
            "https://oauth2.googleapis.com/token",
            data={
                "client_id": config.GOOGLE_CLIENT_ID,
                "client_secret": config.GOOGLE_CLIENT_SECRET,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri("google"),
            },
            timeout=config.HTTP_TIMEOUT,
        ),
        "Google token exchange",
    )
    access_token = token_data.get("access_token")
    if not access_token:
        raise OAuthError(message="No access token received from Google")

    info = _check(
        http.get(
            "https://www.googleapis.com/oauth2/v2/userinfo",
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=config.HTTP_TIMEOUT,
        ),
        "Google userinfo",
    )
    if not info.get("email"):
        raise OAuthError("no_email", "Google returned no email address")
    return OAuthProfile(
        provider="google",
        provider_id=str(info.get("id", "")),
        email=info["email"],
        name=info.get("name") or info["email"].split("@")[0],
        avatar=info.get("picture"),
    )


def _github_profile(code: str, http) -> OAuthProfile:
    token_data = _check(
        http.post(
            "https://github.com/login/oauth/access_token",
            json={
                "client_id": config.GITHUB_CLIENT_ID,
                "client_secret": config.GITHUB_CLIENT_SECRET,
                "code": code,
            },
            headers={"Accept": "application/json"},
            timeout=config.HTTP_TIMEOUT,
        ),
        "GitHub token exchange",
    )
    access_token = token_data.get("access_token")
    if not access_token:
        raise OAuthError(message="No access token received from GitHub")

    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/vnd.github.v3+json",
    }
    gh_user = _check(
        http.get("https://api.github.com/user", headers=headers, timeout=config.HTTP_TIMEOUT),
        "GitHub user",
    )

    # GitHub leaves email out of /user when it is private
    email = gh_user.get("email")
    if not email:
        resp = http.get("https://api.github.com/user/emails", headers=headers, timeout=config.HTTP_TIMEOUT)
        if resp.ok:
            emails = resp.json() or []
            primary = next((e for e in emails if e.get("primary") and e.get("verified")), None)
            if primary is None and emails:
                primary = emails[0]
            email = primary.get("email") if primary else None
    if not email:
        raise OAuthError("no_email", "No email found for GitHub user")

    return OAuthProfile(
        provider="github",
        provider_id=str(gh_user.get("id", "")),
        email=email,
        name=gh_user.get("name") or gh_user.get("login") or email.split("@")[0],
        avatar=gh_user.get("avatar_url"),
    )


def fetch_profile(provider: str, code: str, http=requests) -> OAuthProfile:
    """Exchange an authorization code for the provider's view of the user."""
    try:
        if provider == "google":
            return _google_profile(code, http)
        if provider == "github":
            return _github_profile(code, http)
    except requests.RequestException as exc:
        logger.error("OAuth request to %s failed: %r", provider, exc)
        raise OAuthError(message=str(exc)) from exc
    raise ValueError(f"Unknown OAuth provider: {provider}")


def find_or_create_user(db: Session, profile: OAuthProfile) -> User:
    email = profile.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(
            name=profile.name[:50],
            email=email,
            avatar=profile.avatar,
            provider=profile.provider,
            provider_id=profile.provider_id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Created %s user %s", profile.provider, user.id)
    elif not user.provider_id:
        # link an existing password account to the provider
        user.provider = profile.provider
        user.provider_id = profile.provider_id
        if profile.avatar and not user.avatar:
            user.avatar = profile.avatar
        db.commit()
        db.refresh(user)
    return user
