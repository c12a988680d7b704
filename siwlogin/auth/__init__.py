"""
Authentication Package

This package handles the login flow for the embedded sign-in widget using
the identity provider's interaction code grant with PKCE.

Modules:
- routes: Login page, callback and logout endpoints
- pkce: PKCE verifier/challenge, nonce and state generation
- idx: Interaction handle and token exchange calls to the provider
- utils: JWKS fetching, caching, and ID token verification
- session: Signed-cookie session store

The authentication flow:
1. Browser loads /login; the session gets PKCE material and a state
2. Middleware trades the PKCE challenge for an interaction handle
3. The widget collects credentials and redirects to /login/callback
4. Middleware checks state and PKCE, exchanges the interaction code for
   tokens and verifies the ID token
5. Tokens are stored in the session cookie; the browser is authenticated

The router lives in ``siwlogin.auth.routes``.
"""
