# Middleware package init
"""
LudoLoop Backend — Middleware Package
=======================================

What:  The per-request pipeline that runs in front of every route.

Middleware Chain (request direction):
    Request → [Request ID] → [Access Log] → [Security Events]
            → [Session Refresh] → [CORS] → Route Handler

    1. Request ID first: every later log line carries the correlation ID
    2. Access log wraps the rest so its duration covers the whole pipeline
    3. Security events are detected before any session work and never block
    4. Session refresh may short-circuit with a login redirect (protected
       pages) or an empty 500 (its own failure); otherwise it attaches
       refreshed/purged auth cookies to the route's response

Static assets and images are excluded from stages 2-4 by matcher.should_process().
"""
