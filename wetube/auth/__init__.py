"""
Account authentication for the wetube web app.

Design goals:
- One local user per verified email, whichever path (password, GitHub, Kakao) is used.
- Social-only accounts can never log in with a password.
- Cookie-based session (HttpOnly, signed) holding a snapshot of the user.
"""
