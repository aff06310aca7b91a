# Routes package init
"""
LudoLoop Backend — API Routes Package
=======================================

Route Inventory:
    - health.py:           GET    /health
    - session.py:          GET    /api/session
                           POST   /api/auth/sign-out
                           DELETE /api/account
    - games.py:            GET    /api/games/search?query=
    - events.py:           GET    /api/events/invitations
    - security_events.py:  POST   /api/security-events
                           GET    /api/security-events?limit=

Routes are thin: they read the session the middleware resolved, call one
service method and shape the response. Hosted backend calls are always made
through the rate-limit guard inside the services.
"""
