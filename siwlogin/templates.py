"""
HTML page rendering.

Pages are small inline templates. Every dynamic value is escaped; the widget
bootstrap data is embedded as a JSON script block and read by the page
script, never interpolated into JavaScript source.
"""

import json
from html import escape
from typing import Dict

from siwlogin.models import WidgetBootstrap

SIGN_IN_WIDGET_VERSION = "7.14.0"
SIGN_IN_WIDGET_CDN = f"https://global.oktacdn.com/okta-signin-widget/{SIGN_IN_WIDGET_VERSION}"


# =============================================================================
# Layout
# =============================================================================

_STYLE = """
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
            background: #f3f4f6;
            color: #1f2937;
        }
        nav {
            background: #1f2937;
            padding: 12px 24px;
            display: flex;
            gap: 16px;
            align-items: center;
        }
        nav a, nav button {
            color: white;
            text-decoration: none;
            background: none;
            border: none;
            font-size: 15px;
            cursor: pointer;
        }
        nav form { margin-left: auto; }
        .container {
            background: white;
            border-radius: 12px;
            padding: 32px;
            max-width: 720px;
            margin: 32px auto;
            box-shadow: 0 4px 16px rgba(0,0,0,0.08);
        }
        h1 { font-size: 26px; margin-bottom: 16px; }
        p { color: #4b5563; line-height: 1.6; margin-bottom: 12px; }
        table { width: 100%; border-collapse: collapse; margin-top: 16px; }
        th, td { text-align: left; padding: 8px 12px; border-bottom: 1px solid #e5e7eb; }
        th { color: #6b7280; font-weight: 600; width: 35%; }
"""


def _render_layout(title: str, body: str, is_authenticated: bool, head_extra: str = "") -> str:
    if is_authenticated:
        session_link = """
            <form method="post" action="/logout">
                <button type="submit">Logout</button>
            </form>
        """
    else:
        session_link = '<a href="/login" style="margin-left: auto;">Login</a>'

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
    <style>{_STYLE}</style>
    {head_extra}
</head>
<body>
    <nav>
        <a href="/">Home</a>
        <a href="/profile">My Profile</a>
        {session_link}
    </nav>
    <div class="container">
        {body}
    </div>
</body>
</html>
"""


def _render_profile_table(profile: Dict[str, str]) -> str:
    rows = "\n".join(
        f"<tr><th>{escape(name)}</th><td>{escape(value)}</td></tr>"
        for name, value in sorted(profile.items())
    )
    return f'<table class="profile">\n{rows}\n</table>'


# =============================================================================
# Pages
# =============================================================================

def render_home_page(is_authenticated: bool, profile: Dict[str, str]) -> str:
    """Landing page showing the authentication state."""
    if is_authenticated:
        name = profile.get("name") or profile.get("preferred_username") or "there"
        body = f"""
        <h1>Welcome back, {escape(name)}!</h1>
        <p>You have successfully authenticated with the identity provider.</p>
        {_render_profile_table(profile) if profile else ""}
        """
    else:
        body = """
        <h1>Embedded Sign-In Widget</h1>
        <p>You are not signed in.</p>
        <p><a href="/login">Sign in</a> to see your profile.</p>
        """
    return _render_layout("Home", body, is_authenticated)


def render_profile_page(is_authenticated: bool, profile: Dict[str, str]) -> str:
    """Profile attributes returned by the userinfo endpoint."""
    if profile:
        body = f"""
        <h1>My Profile</h1>
        <p>Attributes returned by the userinfo endpoint.</p>
        {_render_profile_table(profile)}
        """
    elif is_authenticated:
        body = """
        <h1>My Profile</h1>
        <p>No profile information is available right now.</p>
        """
    else:
        body = """
        <h1>My Profile</h1>
        <p>You need to <a href="/login">sign in</a> to see your profile.</p>
        """
    return _render_layout("My Profile", body, is_authenticated)


def render_login_page(bootstrap: WidgetBootstrap) -> str:
    """
    Page hosting the sign-in widget.

    Args:
        bootstrap: Values used to initialize the widget

    Returns:
        HTML document
    """
    # "</" inside a script block would end it early
    bootstrap_json = json.dumps(bootstrap.model_dump(mode="json")).replace("</", "<\\/")

    head_extra = f"""
    <script src="{SIGN_IN_WIDGET_CDN}/js/okta-sign-in.min.js" type="text/javascript"></script>
    <link href="{SIGN_IN_WIDGET_CDN}/css/okta-sign-in.min.css" type="text/css" rel="stylesheet"/>
    """

    body = f"""
        <div id="sign-in-widget"></div>
        <script id="siw-bootstrap" type="application/json">{bootstrap_json}</script>
        <script type="text/javascript">
            var bootstrap = JSON.parse(document.getElementById("siw-bootstrap").textContent);
            var signIn = new OktaSignIn({{
                el: "#sign-in-widget",
                baseUrl: bootstrap.base_url,
                clientId: bootstrap.client_id,
                redirectUri: bootstrap.redirect_uri,
                useInteractionCodeFlow: true,
                interactionHandle: bootstrap.interaction_handle,
                codeChallenge: bootstrap.code_challenge,
                codeChallengeMethod: bootstrap.code_challenge_method,
                state: bootstrap.state,
                authParams: {{
                    issuer: bootstrap.issuer,
                    scopes: bootstrap.scopes,
                    nonce: bootstrap.nonce,
                    pkce: true
                }}
            }});
            signIn.showSignInAndRedirect().catch(function (err) {{
                console.log("Sign-in widget error", err);
            }});
        </script>
    """
    return _render_layout("Sign In", body, bootstrap.is_authenticated, head_extra=head_extra)
