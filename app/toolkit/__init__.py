"""
Toolkit: outbound integration helpers shared by the apps.

    services/email.py  EmailService (Django templates + Django mail)
    protocols.py       EmailSender, NotificationSender and PaymentGateway
                       interfaces the subscription engine depends on

No models.
"""
