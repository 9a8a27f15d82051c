"""app.integrations — outbound HTTP gateways.

All outbound calls made by notification hooks go through a gateway in this
package, never via bare `requests` calls in services or blueprints.  Every
call is:
  - Serialised once and signed over the exact bytes sent
  - Retried on 5xx / network errors with a short backoff
  - Logged, and returned as a result object instead of raising

Current gateways:
  webhook_gateway.WebhookGateway — signed webhooks + n8n workflow triggers
"""
