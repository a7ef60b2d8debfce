from .customers import bp as customers_bp
from .orders import bp as orders_bp
from .packages import bp as packages_bp
from .payment_methods import bp as payment_methods_bp
from .payments import bp as payments_bp
from .subscriptions import bp as subscriptions_bp

BLUEPRINTS = (orders_bp, payments_bp, payment_methods_bp, subscriptions_bp, customers_bp, packages_bp)


def register_blueprints(app):
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)


__all__ = ["BLUEPRINTS", "register_blueprints"]
