"""Webhook delivery for share and revoke notifications.

Usage::

    from docvault import VaultAsync
    from docvault.integrations.webhook import WebhookNotifier

    vault = await VaultAsync.open(config)
    WebhookNotifier("https://hooks.example.com/mail").attach(vault.dispatcher)
"""

from docvault.integrations.webhook._notifier import WebhookNotifier, build_message

__all__ = ["WebhookNotifier", "build_message"]
