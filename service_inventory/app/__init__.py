"""
Inventory Gateway service package for the Resource Inventory.

The gateway turns N single-resource Azure Resource Manager calls into one
client-facing call:
- ArmGateway: expands a ``$name`` route template per resource id and unions
  the returned items, tagging each with the values that produced it
- CostGateway: runs one cost query per scope and unions the result tables

Structure:
- app.main: FastAPI app, routes, and error rendering.
- app.fanout: route templater, concurrent executor, and merge strategies.
- app.domain: inbound parameter parsing and the aggregation use cases.
- app.auth: cached access token acquisition for ARM.
"""
