# Services package init
"""
StitchCraft Backend — Services Layer
=====================================

What:  Business logic layer sitting between routes (HTTP) and database (persistence).
How:   Services receive the request session (and, for tenant-scoped work,
       the RequestContext), apply business rules, and return response models.

Service Inventory:
    - reconciliation: pure comparison, strategy resolution and normalization
                      (no I/O, unit-tested directly)
    - ClientService: tenant-scoped client lookup and creation
    - MeasurementService: snapshots, profile sync, push-to-profile, offline batch sync
    - ProfileService: customer studio reads and fan-out on profile update
"""
