# Routes package init
"""
StitchCraft Backend — API Routes Package
=========================================

What:  HTTP route handlers that accept requests and return responses.
How:   Each route module handles one resource.

Route Inventory:
    - clients.py:      POST /api/clients
                       GET  /api/clients/{id}
                       GET  /api/clients/{id}/measurements            (latest)
                       POST /api/clients/{id}/measurements            (record)
                       GET  /api/clients/{id}/measurements/history
                       GET  /api/clients/{id}/measurements/comparison
                       POST /api/clients/{id}/measurements/sync
                       POST /api/clients/{id}/measurements/push-to-profile
    - measurements.py: POST /api/measurements/compare
                       POST /api/measurements/sync                    (offline batch)
    - profiles.py:     POST /api/profiles
                       GET  /api/profiles/{id}/measurements
                       PUT  /api/profiles/{id}/measurements
    - health.py:       GET  /health

Design Principle:
    Routes stay THIN: extract data from the request, call a service, set
    headers. Business logic belongs in services.
"""
