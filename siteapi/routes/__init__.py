from . import accounts, admission, analytics, appeals, contact, donations, health, moderation, newsletter, notify, users

BLUEPRINTS = (
    health.bp,
    admission.bp,
    appeals.bp,
    moderation.bp,
    newsletter.bp,
    newsletter.admin_bp,
    contact.bp,
    donations.bp,
    accounts.bp,
    users.bp,
    analytics.bp,
    notify.bp,
)


def register_blueprints(app):
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
