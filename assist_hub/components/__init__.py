"""
Relay hub components.

- core: constants, channel abstraction, error taxonomy
- connection: registry, lifecycle, liveness reaper
- events: message envelope, router, relays
- broadcast: fan-out and status snapshots
- endpoints: WebSocket connection handler
"""
