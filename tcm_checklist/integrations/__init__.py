"""tcm_checklist.integrations: Outbound HTTP gateway modules.

All client-side calls to the checklist REST API go through a gateway in this
package, never via bare `requests` calls in the sync layer.

Every call:
  - Carries the bearer token when one is configured
  - Is logged with method, path, status and latency
  - Returns a GatewayResult instead of raising

Current gateways:
  checklist_gateway.ChecklistGateway: /api/v1/migrations REST API
"""
