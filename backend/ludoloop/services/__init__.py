# Services package init
"""
LudoLoop Backend — Services Layer
===================================

What:  Everything between the HTTP layer (middleware, routes) and the outside
       world (auth provider, hosted data API, security event store).

Service Inventory:
    Request pipeline
    - session_cookies:        cookie codec for the provider session (chunks, base64)
    - session_service:        refresh_session(): cookies → SessionRefreshResult
    - security_detector:      detect_security_events(): pure request inspection
    - rate_limit_guard:       RateLimitGuard, the process-wide 429 cooldown

    Hosted backend clients (httpx)
    - auth_client:            AuthClient (GoTrue REST)
    - backend_client:         BackendClient (PostgREST tables)

    Data endpoints
    - community_service:      game catalog search, event invitations
    - account_service:        sign-out, account deletion
    - security_event_service: security event log + login history checks

Pure pieces (cookie codec, detector, refresh result) take plain values and
return plain values; only the clients and the event service do I/O.
"""
